"""
Days Sales Outstanding (DSO) Report

Cash collection efficiency:
    DSO = total open AR / average daily sales
Average daily sales is sales invoiced in the range divided by the range's days.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from intelliservice.reports.aging import AgingBucket, build_aging_buckets, empty_aging_buckets
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

DSO_TARGET_DAYS = 30


@dataclass
class DSOMetrics:
    dso: float = 0.0
    total_ar: float = 0.0
    avg_daily_sales: float = 0.0
    dso_target: int = DSO_TARGET_DAYS
    aging_buckets: List[AgingBucket] = field(default_factory=empty_aging_buckets)


def compute_dso(total_ar: float, avg_daily_sales: float) -> float:
    """Days sales outstanding, 0 when there were no sales"""
    return total_ar / avg_daily_sales if avg_daily_sales > 0 else 0.0


async def fetch_dso_dataset(db, date_range: DateRange) -> Dataset:
    open_invoices = db.table("invoices") \
        .select("*") \
        .neq("status", "paid") \
        .neq("status", "void") \
        .execute()

    period_invoices = db.table("invoices") \
        .select("total, invoice_date") \
        .gte("invoice_date", date_range.start.isoformat()) \
        .lte("invoice_date", date_range.end.isoformat()) \
        .execute()

    return {
        "open_invoices": open_invoices.data or [],
        "period_invoices": period_invoices.data or [],
    }


def reduce_dso(dataset: Dataset, date_range: DateRange, now: datetime) -> DSOMetrics:
    open_invoices = dataset.get("open_invoices") or []

    total_ar = sum_totals(open_invoices)
    total_sales = sum_totals(dataset.get("period_invoices"))
    avg_daily_sales = safe_div(total_sales, date_range.days)

    return DSOMetrics(
        dso=compute_dso(total_ar, avg_daily_sales),
        total_ar=total_ar,
        avg_daily_sales=avg_daily_sales,
        aging_buckets=build_aging_buckets(open_invoices, now),
    )


def export_dso(metrics: DSOMetrics, date_range: DateRange) -> ExportData:
    return ExportData(
        title="Days Sales Outstanding (DSO) Report",
        subtitle="Cash collection efficiency analysis",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Aging Bucket", "label"),
            ExportColumn("Invoice Count", "count", "number"),
            ExportColumn("Amount", "amount", "currency"),
            ExportColumn("% of Total", "percentage", "percent"),
        ],
        rows=[
            {
                "label": bucket.label,
                "count": bucket.count,
                "amount": bucket.amount,
                "percentage": safe_div(bucket.amount, metrics.total_ar),
            }
            for bucket in metrics.aging_buckets
        ],
        summary={
            "dso": f"{round(metrics.dso)} days",
            "total_ar": format_currency(metrics.total_ar),
            "avg_daily_sales": format_currency(metrics.avg_daily_sales),
            "dso_target": f"{metrics.dso_target} days",
        },
    )


DSO_REPORT = ReportDefinition(
    key="dso",
    title="Days Sales Outstanding (DSO)",
    subtitle="Cash collection efficiency analysis",
    fetch=fetch_dso_dataset,
    reduce=reduce_dso,
    empty=DSOMetrics,
    export=export_dso,
)
