"""
AR Aging Buckets

Classifies open invoices by days past due:
    < 0      -> Current
    0 - 30   -> 1-30 days
    31 - 60  -> 31-60 days
    61 - 90  -> 61-90 days
    > 90     -> 90+ days
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from intelliservice.reports.base import parse_timestamp, to_number

AGING_BUCKET_LABELS = [
    "Current",
    "1-30 days",
    "31-60 days",
    "61-90 days",
    "90+ days",
]


@dataclass
class AgingBucket:
    label: str
    amount: float = 0.0
    count: int = 0


def classify_days_overdue(days: int) -> int:
    """Bucket index for a days-overdue value"""
    if days < 0:
        return 0
    elif days <= 30:
        return 1
    elif days <= 60:
        return 2
    elif days <= 90:
        return 3
    return 4


def days_overdue(due_date, now: datetime) -> Optional[int]:
    """Whole days past due (negative when not yet due), None without a due date"""
    due = parse_timestamp(due_date)
    if due is None:
        return None
    return math.floor((now - due).total_seconds() / 86400)


def empty_aging_buckets() -> List[AgingBucket]:
    return [AgingBucket(label=label) for label in AGING_BUCKET_LABELS]


def build_aging_buckets(open_invoices: List[dict], now: datetime) -> List[AgingBucket]:
    """Sum open invoice totals into aging buckets. Invoices without a due date are skipped."""
    buckets = empty_aging_buckets()

    for invoice in open_invoices or []:
        overdue = days_overdue(invoice.get("due_date"), now)
        if overdue is None:
            continue

        bucket = buckets[classify_days_overdue(overdue)]
        bucket.amount += to_number(invoice.get("total"))
        bucket.count += 1

    return buckets
