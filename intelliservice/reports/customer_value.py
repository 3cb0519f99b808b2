"""
Customer Value Report

Ranks customers by revenue invoiced since the start of the range, with
open AR and last completed service date.

Three batched queries (customers, invoices, completed tickets) are grouped
by customer id in one pass instead of querying per customer.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from intelliservice.reports.base import (
    Dataset,
    DateRange,
    ExportColumn,
    ExportData,
    ReportDefinition,
    format_currency,
    is_open_invoice,
    parse_timestamp,
    safe_div,
    to_number,
)

TOP_CUSTOMERS_LIMIT = 20


@dataclass
class CustomerValue:
    id: str
    name: str
    lifetime_revenue: float = 0.0
    open_ar: float = 0.0
    last_service_date: Optional[str] = None


@dataclass
class CustomerMetrics:
    top_customer_name: str = "N/A"
    top_customer_revenue: float = 0.0
    avg_revenue_per_customer: float = 0.0
    total_customers: int = 0
    customers: List[CustomerValue] = field(default_factory=list)


async def fetch_customer_value_dataset(db, date_range: DateRange) -> Dataset:
    customers = db.table("customers") \
        .select("id, name, created_at") \
        .execute()

    # Lower bound only: revenue accrues from the start of the range onward
    invoices = db.table("invoices") \
        .select("customer_id, total, status, invoice_date") \
        .gte("invoice_date", date_range.start.isoformat()) \
        .execute()

    tickets = db.table("tickets") \
        .select("customer_id, completed_date") \
        .not_.is_("completed_date", "null") \
        .order("completed_date", desc=True) \
        .execute()

    return {
        "customers": customers.data or [],
        "invoices": invoices.data or [],
        "tickets": tickets.data or [],
    }


def latest_service_dates(tickets: List[dict]) -> Dict[str, str]:
    """Most recent completed_date per customer"""
    latest: Dict[str, str] = {}
    latest_parsed: Dict[str, datetime] = {}

    for ticket in tickets:
        customer_id = ticket.get("customer_id")
        completed = parse_timestamp(ticket.get("completed_date"))
        if customer_id is None or completed is None:
            continue
        if customer_id not in latest_parsed or completed > latest_parsed[customer_id]:
            latest_parsed[customer_id] = completed
            latest[customer_id] = ticket["completed_date"]

    return latest


def reduce_customer_value(dataset: Dataset, date_range: DateRange, now: datetime) -> CustomerMetrics:
    revenue: Dict[str, float] = defaultdict(float)
    open_ar: Dict[str, float] = defaultdict(float)

    for invoice in dataset.get("invoices") or []:
        customer_id = invoice.get("customer_id")
        total = to_number(invoice.get("total"))
        revenue[customer_id] += total
        if is_open_invoice(invoice):
            open_ar[customer_id] += total

    last_service = latest_service_dates(dataset.get("tickets") or [])

    customers = [
        CustomerValue(
            id=customer["id"],
            name=customer.get("name") or "Unknown",
            lifetime_revenue=revenue.get(customer["id"], 0.0),
            open_ar=open_ar.get(customer["id"], 0.0),
            last_service_date=last_service.get(customer["id"]),
        )
        for customer in dataset.get("customers") or []
    ]

    customers.sort(key=lambda c: c.lifetime_revenue, reverse=True)

    total_revenue = sum(c.lifetime_revenue for c in customers)
    top = customers[0] if customers else None

    return CustomerMetrics(
        top_customer_name=top.name if top else "N/A",
        top_customer_revenue=top.lifetime_revenue if top else 0.0,
        avg_revenue_per_customer=safe_div(total_revenue, len(customers)),
        total_customers=len(customers),
        customers=customers[:TOP_CUSTOMERS_LIMIT],
    )


def export_customer_value(metrics: CustomerMetrics, date_range: DateRange) -> ExportData:
    return ExportData(
        title="Customer Value Analysis Report",
        subtitle="Lifetime value and customer insights",
        start=date_range.start,
        end=date_range.end,
        columns=[
            ExportColumn("Customer", "name"),
            ExportColumn("Lifetime Revenue", "lifetime_revenue", "currency"),
            ExportColumn("Last Service", "last_service_date", "date"),
            ExportColumn("Open AR", "open_ar", "currency"),
        ],
        rows=[
            {
                "name": c.name,
                "lifetime_revenue": c.lifetime_revenue,
                "last_service_date": c.last_service_date,
                "open_ar": c.open_ar,
            }
            for c in metrics.customers
        ],
        summary={
            "top_customer": f"{metrics.top_customer_name} ({format_currency(metrics.top_customer_revenue)})",
            "avg_revenue_per_customer": format_currency(metrics.avg_revenue_per_customer),
            "total_customers": metrics.total_customers,
        },
    )


CUSTOMER_VALUE_REPORT = ReportDefinition(
    key="customer-value",
    title="Customer Value Analysis",
    subtitle="Lifetime value and customer insights",
    fetch=fetch_customer_value_dataset,
    reduce=reduce_customer_value,
    empty=CustomerMetrics,
    export=export_customer_value,
)
