"""
Tests for report export formatting (JSON dict and CSV)
"""
from datetime import datetime, timezone

import pytest

from intelliservice.reports.base import ExportColumn, ExportData
from intelliservice.reports.export import export_to_csv, export_to_dict, format_value


@pytest.fixture
def export_data():
    return ExportData(
        title="Sample Report",
        subtitle="Export formatting",
        start=datetime(2024, 6, 1, tzinfo=timezone.utc),
        end=datetime(2024, 6, 30, tzinfo=timezone.utc),
        columns=[
            ExportColumn("Customer", "name"),
            ExportColumn("Revenue", "revenue", "currency"),
            ExportColumn("Share", "share", "percent"),
        ],
        rows=[
            {"name": "Alice", "revenue": 1234.5, "share": 0.25},
            {"name": "Bob, Inc", "revenue": 10, "share": 0.75},
        ],
        summary={"total_revenue": "$1,245"},
    )


class TestFormatValue:
    """Test per-column cell formatting"""

    def test_currency(self):
        assert format_value(1234.5, "currency") == "$1,234.50"
        assert format_value("99", "currency") == "$99.00"

    def test_percent_takes_fractions(self):
        assert format_value(0.25, "percent") == "25.0%"
        assert format_value(1, "percent") == "100.0%"

    def test_number(self):
        assert format_value(3.0, "number") == "3"
        assert format_value(2.5, "number") == "2.50"

    def test_date(self):
        assert format_value("2024-06-05T10:00:00Z", "date") == "2024-06-05"
        assert format_value(datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc), "date") == "2024-01-02"

    def test_missing_values_are_blank(self):
        assert format_value(None, "currency") == ""
        assert format_value("", "date") == ""

    def test_text(self):
        assert format_value(42, "text") == "42"


class TestExportToCSV:
    """Test CSV layout"""

    def test_layout(self, export_data):
        csv_text = export_to_csv(export_data)

        assert csv_text == (
            "Customer,Revenue,Share\n"
            "Alice,\"$1,234.50\",25.0%\n"
            "\"Bob, Inc\",$10.00,75.0%\n"
            "\n"
            "total_revenue,\"$1,245\"\n"
        )

    def test_no_summary_section_when_empty(self, export_data):
        export_data.summary = {}
        lines = export_to_csv(export_data).splitlines()

        assert lines[0] == "Customer,Revenue,Share"
        assert len(lines) == 3


class TestExportToDict:
    """Test JSON export"""

    def test_dates_are_iso_strings(self, export_data):
        data = export_to_dict(export_data)

        assert data["start"] == "2024-06-01T00:00:00+00:00"
        assert data["columns"][1] == {"header": "Revenue", "key": "revenue", "format": "currency"}
        assert data["rows"][0]["name"] == "Alice"
