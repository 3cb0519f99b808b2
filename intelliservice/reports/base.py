"""
Report Query Base

Shared building blocks for every BI report:
- DateRange and preset resolution
- Guarded arithmetic helpers (no divide-by-zero)
- Export shape (columns, rows, summary)
- ReportDefinition + run_report: fetch -> pure reduce, zeroed fallback on failure

Reducers never touch the database. Each report module supplies:
    fetch(db, date_range)            -> dataset dict of row lists
    reduce(dataset, date_range, now) -> summary dataclass
    empty()                          -> zeroed summary
    export(summary, date_range)      -> ExportData
"""

import math
import re
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# Invoice statuses that close out a balance
CLOSED_INVOICE_STATUSES = ("paid", "void")

_FRACTION_RE = re.compile(r"^(.*T\d{2}:\d{2}:\d{2}\.)(\d+)(.*)$")


# ============== Date Ranges ==============

@dataclass(frozen=True)
class DateRange:
    """Inclusive reporting window (timezone-aware)"""
    start: datetime
    end: datetime

    @property
    def days(self) -> int:
        """Span in whole days, rounded up"""
        seconds = (self.end - self.start).total_seconds()
        return math.ceil(seconds / 86400) if seconds > 0 else 0

    def prior(self) -> "DateRange":
        """Window of equal length ending where this one starts"""
        return DateRange(start=self.start - (self.end - self.start), end=self.start)

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class RangePreset(str, Enum):
    """Predefined date ranges"""
    TODAY = "today"
    LAST_7 = "last_7"
    LAST_30 = "last_30"
    LAST_90 = "last_90"
    MTD = "mtd"
    YTD = "ytd"
    CUSTOM = "custom"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_date_range(
    preset: Union[RangePreset, str] = RangePreset.LAST_30,
    start: Optional[str] = None,
    end: Optional[str] = None,
    now: Optional[datetime] = None
) -> DateRange:
    """
    Resolve a preset (or custom bounds) into a DateRange.

    Raises:
        ValueError for unknown presets or an incomplete/inverted custom range
    """
    preset = RangePreset(preset)
    now = now or utcnow()
    today_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)

    if preset == RangePreset.CUSTOM:
        start_dt = parse_timestamp(start)
        end_dt = parse_timestamp(end)
        if not start_dt or not end_dt:
            raise ValueError("Custom range requires both start and end")
        if end_dt < start_dt:
            raise ValueError("End of range is before start")
        return DateRange(start=start_dt, end=end_dt)

    if preset == RangePreset.TODAY:
        return DateRange(start=today_start, end=now)
    if preset == RangePreset.LAST_7:
        return DateRange(start=now - timedelta(days=7), end=now)
    if preset == RangePreset.LAST_90:
        return DateRange(start=now - timedelta(days=90), end=now)
    if preset == RangePreset.MTD:
        return DateRange(start=today_start.replace(day=1), end=now)
    if preset == RangePreset.YTD:
        return DateRange(start=today_start.replace(month=1, day=1), end=now)
    return DateRange(start=now - timedelta(days=30), end=now)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a database timestamp into an aware datetime.

    Accepts ISO strings (with 'Z' or an offset), date-only strings
    (midnight UTC), date/datetime objects. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # fromisoformat on 3.9/3.10 only takes 3 or 6 fractional digits
        fraction = _FRACTION_RE.match(text)
        if fraction:
            text = fraction.group(1) + fraction.group(2)[:6].ljust(6, "0") + fraction.group(3)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ============== Arithmetic Helpers ==============

def to_number(value: Any, default: float = 0.0) -> float:
    """Safely convert a DB numeric (int, float, numeric string, None) to float."""
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safe division with default."""
    return numerator / denominator if denominator else default


def percent(part: float, whole: float) -> float:
    """part / whole * 100, 0 when whole is 0"""
    return safe_div(part, whole) * 100 if whole else 0.0


def sum_totals(rows: Optional[List[dict]], key: str = "total") -> float:
    """Sum a numeric column, treating missing values as 0"""
    return sum(to_number(row.get(key)) for row in rows or [])


def is_open_invoice(invoice: dict) -> bool:
    """Unpaid and not voided"""
    return invoice.get("status") not in CLOSED_INVOICE_STATUSES


def format_currency(value: float) -> str:
    """$1,235 style (whole dollars)"""
    return f"${round(value):,}"


# ============== Export Shape ==============

@dataclass
class ExportColumn:
    header: str
    key: str
    format: str = "text"  # text, number, currency, percent, date


@dataclass
class ExportData:
    """Tabular/file export of a report"""
    title: str
    subtitle: str
    start: datetime
    end: datetime
    columns: List[ExportColumn] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)


# ============== Report Definitions ==============

Dataset = Dict[str, List[dict]]


@dataclass(frozen=True)
class ReportDefinition:
    """One BI report: how to fetch it, reduce it, zero it, export it"""
    key: str
    title: str
    subtitle: str
    fetch: Callable[[Any, DateRange], Awaitable[Dataset]]
    reduce: Callable[[Dataset, DateRange, datetime], Any]
    empty: Callable[[], Any]
    export: Callable[[Any, DateRange], ExportData]


async def run_report(
    definition: ReportDefinition,
    db: Any,
    date_range: DateRange,
    now: Optional[datetime] = None
) -> Any:
    """
    Fetch the report dataset and reduce it to a summary.

    Any failure is logged and yields the zeroed summary.
    No retry and no partial results.
    """
    try:
        dataset = await definition.fetch(db, date_range)
        return definition.reduce(dataset, date_range, now or utcnow())
    except Exception as e:
        logger.error(f"[Reports] Error loading {definition.key}: {e}")
        return definition.empty()


def to_dict(obj) -> Any:
    """Convert dataclass (recursively) to dictionary for JSON serialization."""
    if hasattr(obj, '__dataclass_fields__'):
        result = {}
        for field_name in obj.__dataclass_fields__:
            result[field_name] = to_dict(getattr(obj, field_name))
        return result
    if isinstance(obj, list):
        return [to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj
