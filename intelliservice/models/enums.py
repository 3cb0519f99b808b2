"""
Status Codes and Enums

Standardized constants for IntelliService table values.
"""

from enum import Enum


class TicketStatus(str, Enum):
    """Service ticket status"""
    OPEN = "open"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED_BILLED = "closed_billed"
    CANCELLED = "cancelled"

    @classmethod
    def active(cls):
        return [cls.OPEN.value, cls.SCHEDULED.value, cls.IN_PROGRESS.value]

    @classmethod
    def finished(cls):
        return [cls.COMPLETED.value, cls.CLOSED_BILLED.value]


class InvoiceStatus(str, Enum):
    """Invoice lifecycle"""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    VOID = "void"


class PayrollRunStatus(str, Enum):
    """Payroll run lifecycle"""
    DRAFT = "draft"
    PROCESSING = "processing"
    PAID = "paid"
    CANCELLED = "cancelled"


class DeductionMethod(str, Enum):
    """How a deduction amount is applied to gross pay"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class TimeType(str, Enum):
    """time_logs.time_type"""
    REGULAR = "regular"
    OVERTIME = "overtime"


class PayerType(str, Enum):
    """Who pays an estimate line item on a warranty ticket"""
    AHS = "AHS"
    CUSTOMER = "CUSTOMER"


class PhotoType(str, Enum):
    """ticket_photos.photo_type"""
    BEFORE = "before"
    DURING = "during"
    AFTER = "after"
    ISSUE = "issue"
    EQUIPMENT = "equipment"
    OTHER = "other"


class LocationStatus(str, Enum):
    """Freshness of a technician's last reported location"""
    ACTIVE = "active"
    IDLE = "idle"
    STALE = "stale"
    UNKNOWN = "unknown"

    @classmethod
    def to_label(cls, status: str) -> str:
        labels = {
            "active": "Active",
            "idle": "Idle",
            "stale": "Stale",
            "unknown": "No Data",
        }
        return labels.get(status, f"Unknown ({status})")


class InteractionType(str, Enum):
    """customer_interactions.interaction_type"""
    CALL = "call"
    EMAIL = "email"
    SMS = "sms"
    MEETING = "meeting"
    NOTE = "note"
    SITE_VISIT = "site_visit"
