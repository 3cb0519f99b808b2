"""
Report Export

Renders ExportData as a JSON-ready dict or CSV text.
"""

import csv
import io
from datetime import datetime
from typing import Any, Dict

from intelliservice.reports.base import ExportColumn, ExportData, parse_timestamp, to_dict


def format_value(value: Any, column_format: str) -> str:
    """Format a single cell according to its column format"""
    if value is None or value == "":
        return ""

    if column_format == "currency":
        return f"${float(value):,.2f}"
    if column_format == "percent":
        # Percent cells are stored as fractions (0.25 -> 25.0%)
        return f"{float(value) * 100:.1f}%"
    if column_format == "number":
        number = float(value)
        return str(int(number)) if number.is_integer() else f"{number:.2f}"
    if column_format == "date":
        parsed = value if isinstance(value, datetime) else parse_timestamp(value)
        return parsed.date().isoformat() if parsed else str(value)
    return str(value)


def export_to_dict(export: ExportData) -> Dict[str, Any]:
    return to_dict(export)


def export_to_csv(export: ExportData) -> str:
    """
    CSV layout:
        header row (column headers)
        one row per record, formatted per column
        blank line
        key,value summary lines
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    writer.writerow([column.header for column in export.columns])
    for row in export.rows:
        writer.writerow([_cell(row, column) for column in export.columns])

    if export.summary:
        writer.writerow([])
        for key, value in export.summary.items():
            writer.writerow([key, value])

    return buffer.getvalue()


def _cell(row: Dict[str, Any], column: ExportColumn) -> str:
    return format_value(row.get(column.key), column.format)
