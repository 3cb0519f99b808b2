"""
Financials Report

Revenue, payments and outstanding balances for invoices dated in the range.
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
    is_open_invoice,
    parse_timestamp,
    percent,
    sum_totals,
)


@dataclass
class FinancialsMetrics:
    total_revenue: float = 0.0
    paid_amount: float = 0.0
    outstanding_amount: float = 0.0
    overdue_count: int = 0
    overdue_amount: float = 0.0
    invoice_count: int = 0
    collection_rate: float = 0.0


def is_overdue(invoice: dict, now: datetime) -> bool:
    """Open invoice whose due date has passed"""
    if not is_open_invoice(invoice):
        return False
    due = parse_timestamp(invoice.get("due_date"))
    return due is not None and due < now


async def fetch_financials_dataset(db, date_range: DateRange) -> Dataset:
    result = db.table("invoices") \
        .select("*") \
        .gte("invoice_date", date_range.start.isoformat()) \
        .lte("invoice_date", date_range.end.isoformat()) \
        .execute()
    return {"invoices": result.data or []}


def reduce_financials(dataset: Dataset, date_range: DateRange, now: datetime) -> FinancialsMetrics:
    invoices = dataset.get("invoices") or []

    total_revenue = sum_totals(invoices)
    paid_amount = sum_totals([inv for inv in invoices if inv.get("status") == "paid"])
    outstanding_amount = sum_totals([inv for inv in invoices if is_open_invoice(inv)])
    overdue = [inv for inv in invoices if is_overdue(inv, now)]

    return FinancialsMetrics(
        total_revenue=total_revenue,
        paid_amount=paid_amount,
        outstanding_amount=outstanding_amount,
        overdue_count=len(overdue),
        overdue_amount=sum_totals(overdue),
        invoice_count=len(invoices),
        collection_rate=round(percent(paid_amount, total_revenue), 2),
    )


def export_financials(metrics: FinancialsMetrics, date_range: DateRange) -> ExportData:
    return ExportData(
        title="Financial Report",
        subtitle="Revenue, payments, and outstanding balances",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Metric", "metric"),
            ExportColumn("Amount", "amount", "currency"),
        ],
        rows=[
            {"metric": "Total Revenue", "amount": metrics.total_revenue},
            {"metric": "Paid Amount", "amount": metrics.paid_amount},
            {"metric": "Outstanding Amount", "amount": metrics.outstanding_amount},
            {"metric": "Overdue Amount", "amount": metrics.overdue_amount},
        ],
        summary={
            "total_invoices": metrics.invoice_count,
            "overdue_invoices": f"{metrics.overdue_count} overdue invoices",
            "collected": format_currency(metrics.paid_amount),
            "collection_rate": f"{metrics.collection_rate:.1f}%",
        },
    )


FINANCIALS_REPORT = ReportDefinition(
    key="financials",
    title="Financial Report",
    subtitle="Revenue, payments, and outstanding balances",
    fetch=fetch_financials_dataset,
    reduce=reduce_financials,
    empty=FinancialsMetrics,
    export=export_financials,
)
