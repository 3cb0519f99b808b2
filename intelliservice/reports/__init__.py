"""
BI Reports

Each report is a ReportDefinition (fetch -> pure reduce -> export)
run through run_report.
"""

from .base import (
    DateRange,
    RangePreset,
    ReportDefinition,
    resolve_date_range,
    run_report,
    to_dict,
)
from .customer_value import CUSTOMER_VALUE_REPORT
from .dso import DSO_REPORT
from .financials import FINANCIALS_REPORT
from .labor_efficiency import LABOR_EFFICIENCY_REPORT
from .project_margins import PROJECT_MARGINS_REPORT
from .revenue_trends import REVENUE_TRENDS_REPORT
from .technician_metrics import TECHNICIAN_METRICS_REPORT
from .export import export_to_csv, export_to_dict

REPORTS = {
    definition.key: definition
    for definition in (
        CUSTOMER_VALUE_REPORT,
        DSO_REPORT,
        FINANCIALS_REPORT,
        LABOR_EFFICIENCY_REPORT,
        PROJECT_MARGINS_REPORT,
        REVENUE_TRENDS_REPORT,
        TECHNICIAN_METRICS_REPORT,
    )
}


def get_report(key: str) -> ReportDefinition:
    """Look up a report by key; raises ValueError when unknown"""
    if key not in REPORTS:
        raise ValueError(f"Unknown report: {key}")
    return REPORTS[key]


__all__ = [
    "DateRange",
    "RangePreset",
    "ReportDefinition",
    "REPORTS",
    "get_report",
    "resolve_date_range",
    "run_report",
    "to_dict",
    "export_to_csv",
    "export_to_dict",
]
