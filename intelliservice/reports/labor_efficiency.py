"""
Labor Efficiency Report

Billable vs non-billable hours from clocked time logs, overall and per technician.
A log counts as billable unless is_billable is explicitly false.
Open logs (no clock_out) are ignored.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from intelliservice.reports.base import (
    Dataset,
    DateRange,
    ExportColumn,
    ExportData,
    ReportDefinition,
    format_currency,
    parse_timestamp,
    percent,
    to_number,
)

TOP_TECHS_LIMIT = 10


@dataclass
class TechUtilization:
    name: str
    billable: float = 0.0
    non_billable: float = 0.0
    utilization: float = 0.0


@dataclass
class LaborMetrics:
    billable_hours: float = 0.0
    non_billable_hours: float = 0.0
    utilization_percent: float = 0.0
    labor_cost: float = 0.0
    labor_billed: float = 0.0
    labor_margin: float = 0.0
    tech_breakdown: List[TechUtilization] = field(default_factory=list)


def utilization(billable_hours: float, non_billable_hours: float) -> float:
    """Billable share of total hours as a percentage, 0 with no hours"""
    return percent(billable_hours, billable_hours + non_billable_hours)


def log_hours(log: dict) -> float:
    clock_in = parse_timestamp(log.get("clock_in"))
    clock_out = parse_timestamp(log.get("clock_out"))
    if clock_in is None or clock_out is None:
        return 0.0
    return (clock_out - clock_in).total_seconds() / 3600


async def fetch_labor_dataset(db, date_range: DateRange) -> Dataset:
    result = db.table("time_logs") \
        .select("*, profiles!time_logs_user_id_fkey(full_name)") \
        .gte("clock_in", date_range.start.isoformat()) \
        .lte("clock_in", date_range.end.isoformat()) \
        .execute()
    return {"time_logs": result.data or []}


def reduce_labor_efficiency(dataset: Dataset, date_range: DateRange, now: datetime) -> LaborMetrics:
    billable_hours = 0.0
    non_billable_hours = 0.0
    labor_cost = 0.0
    labor_billed = 0.0
    tech_stats: Dict[str, TechUtilization] = {}

    for log in dataset.get("time_logs") or []:
        if not log.get("clock_out"):
            continue

        hours = log_hours(log)
        is_billable = log.get("is_billable") is not False

        if is_billable:
            billable_hours += hours
            labor_billed += to_number(log.get("billing_amount"))
        else:
            non_billable_hours += hours

        labor_cost += to_number(log.get("cost_amount"))

        tech_id = log.get("user_id")
        if tech_id not in tech_stats:
            profile = log.get("profiles") or {}
            tech_stats[tech_id] = TechUtilization(name=profile.get("full_name") or "Unknown")

        if is_billable:
            tech_stats[tech_id].billable += hours
        else:
            tech_stats[tech_id].non_billable += hours

    for tech in tech_stats.values():
        tech.utilization = utilization(tech.billable, tech.non_billable)

    breakdown = sorted(tech_stats.values(), key=lambda t: t.billable, reverse=True)

    return LaborMetrics(
        billable_hours=billable_hours,
        non_billable_hours=non_billable_hours,
        utilization_percent=utilization(billable_hours, non_billable_hours),
        labor_cost=labor_cost,
        labor_billed=labor_billed,
        labor_margin=round(percent(labor_billed - labor_cost, labor_billed), 2),
        tech_breakdown=breakdown[:TOP_TECHS_LIMIT],
    )


def export_labor_efficiency(metrics: LaborMetrics, date_range: DateRange) -> ExportData:
    return ExportData(
        title="Labor Efficiency Report",
        subtitle="Productivity and billable utilization analysis",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Technician", "name"),
            ExportColumn("Billable Hours", "billable", "number"),
            ExportColumn("Non-Billable Hours", "non_billable", "number"),
            ExportColumn("Utilization %", "utilization", "percent"),
        ],
        rows=[
            {
                "name": tech.name,
                "billable": tech.billable,
                "non_billable": tech.non_billable,
                "utilization": tech.utilization / 100,
            }
            for tech in metrics.tech_breakdown
        ],
        summary={
            "total_billable_hours": f"{round(metrics.billable_hours)} hrs",
            "total_non_billable_hours": f"{round(metrics.non_billable_hours)} hrs",
            "overall_utilization": f"{metrics.utilization_percent:.1f}%",
            "labor_revenue": format_currency(metrics.labor_billed),
        },
    )


LABOR_EFFICIENCY_REPORT = ReportDefinition(
    key="labor-efficiency",
    title="Labor Efficiency",
    subtitle="Productivity and billable utilization analysis",
    fetch=fetch_labor_dataset,
    reduce=reduce_labor_efficiency,
    empty=LaborMetrics,
    export=export_labor_efficiency,
)
