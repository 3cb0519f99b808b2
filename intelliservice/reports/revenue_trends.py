"""
Revenue Trends Report

Compares revenue in the selected range against the equal-length window
immediately before it.
"""

from dataclasses import dataclass
from datetime import datetime

from intelliservice.reports.base import (
    Dataset,
    DateRange,
    ExportColumn,
    ExportData,
    ReportDefinition,
    format_currency,
    safe_div,
    sum_totals,
)


@dataclass
class RevenueMetrics:
    current_revenue: float = 0.0
    prior_revenue: float = 0.0
    revenue_change: float = 0.0
    percent_change: float = 0.0
    avg_invoice_value: float = 0.0
    invoice_count: int = 0


def percent_change(current: float, prior: float) -> float:
    """Period-over-period change in percent, 0 when the prior period had nothing"""
    return (current - prior) / prior * 100 if prior > 0 else 0.0


async def fetch_revenue_dataset(db, date_range: DateRange) -> Dataset:
    prior = date_range.prior()

    current = db.table("invoices") \
        .select("total") \
        .gte("invoice_date", date_range.start.isoformat()) \
        .lte("invoice_date", date_range.end.isoformat()) \
        .execute()

    # Prior window excludes its end so no invoice is counted twice
    previous = db.table("invoices") \
        .select("total") \
        .gte("invoice_date", prior.start.isoformat()) \
        .lt("invoice_date", prior.end.isoformat()) \
        .execute()

    return {
        "current_invoices": current.data or [],
        "prior_invoices": previous.data or [],
    }


def reduce_revenue_trends(dataset: Dataset, date_range: DateRange, now: datetime) -> RevenueMetrics:
    current_invoices = dataset.get("current_invoices") or []
    current_revenue = sum_totals(current_invoices)
    prior_revenue = sum_totals(dataset.get("prior_invoices"))

    return RevenueMetrics(
        current_revenue=current_revenue,
        prior_revenue=prior_revenue,
        revenue_change=current_revenue - prior_revenue,
        percent_change=percent_change(current_revenue, prior_revenue),
        avg_invoice_value=safe_div(current_revenue, len(current_invoices)),
        invoice_count=len(current_invoices),
    )


def export_revenue_trends(metrics: RevenueMetrics, date_range: DateRange) -> ExportData:
    sign = "+" if metrics.percent_change >= 0 else ""
    return ExportData(
        title="Revenue Trends Report",
        subtitle="Revenue analysis and period comparison",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Metric", "metric"),
            ExportColumn("Value", "value", "currency"),
        ],
        rows=[
            {"metric": "Current Period Revenue", "value": metrics.current_revenue},
            {"metric": "Prior Period Revenue", "value": metrics.prior_revenue},
            {"metric": "Revenue Change", "value": metrics.revenue_change},
            {"metric": "Average Invoice Value", "value": metrics.avg_invoice_value},
        ],
        summary={
            "current_period": format_currency(metrics.current_revenue),
            "prior_period": format_currency(metrics.prior_revenue),
            "period_change": f"{sign}{metrics.percent_change:.1f}%",
            "avg_invoice": format_currency(metrics.avg_invoice_value),
        },
    )


REVENUE_TRENDS_REPORT = ReportDefinition(
    key="revenue-trends",
    title="Revenue Trends",
    subtitle="Revenue analysis and period comparison",
    fetch=fetch_revenue_dataset,
    reduce=reduce_revenue_trends,
    empty=RevenueMetrics,
    export=export_revenue_trends,
)
