"""
AHS Invoice Service

Splits a warranty ticket's estimate lines by payer and creates draft invoices:
    AHS invoice       -> billed to the configured AHS bill-to customer,
                         diagnosis fee first, then AHS-payer lines
    Customer invoice  -> billed to the ticket's customer, CUSTOMER-payer lines

Invoice numbers are INV-YYMM-NNNN. invoices.invoice_number is unique, so a
number taken between read and insert is re-read and retried.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from intelliservice.models.enums import InvoiceStatus, PayerType
from intelliservice.reports.base import to_number
from intelliservice.services.ahs_settings import AHSSettingsService
from intelliservice.services.supabase_client import first_row, get_supabase, is_unique_violation

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"
MAX_INVOICE_NUMBER_ATTEMPTS = 5
INVOICE_SEQUENCE_WIDTH = 4

LINE_ITEM_FIELDS = "description, item_type, quantity, unit_price, line_total, part_id, payer_type, " \
                   "estimate:estimates!inner(ticket_id)"


class InvoiceNumberAllocationError(Exception):
    """No free invoice number after the allowed attempts"""


@dataclass
class BillingBreakdown:
    ahs_total: float = 0.0
    customer_total: float = 0.0
    diagnosis_fee: float = 0.0
    ahs_labor: float = 0.0
    ahs_parts: float = 0.0
    customer_labor: float = 0.0
    customer_parts: float = 0.0


@dataclass
class InvoiceCreateResult:
    success: bool
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "InvoiceCreateResult":
        return cls(success=False, error=error)


# ============== Pure Helpers ==============

def parse_billing_breakdown(data: Any) -> BillingBreakdown:
    """Map the breakdown function result (row or list of rows)"""
    row = data[0] if isinstance(data, list) and data else data
    if not isinstance(row, dict):
        return BillingBreakdown()
    return BillingBreakdown(
        ahs_total=to_number(row.get("ahs_total")),
        customer_total=to_number(row.get("customer_total")),
        diagnosis_fee=to_number(row.get("diagnosis_fee")),
        ahs_labor=to_number(row.get("ahs_labor")),
        ahs_parts=to_number(row.get("ahs_parts")),
        customer_labor=to_number(row.get("customer_labor")),
        customer_parts=to_number(row.get("customer_parts")),
    )


def split_line_items_by_payer(items: List[dict]) -> Dict[str, List[dict]]:
    split = {PayerType.AHS.value: [], PayerType.CUSTOMER.value: []}
    for item in items or []:
        payer = item.get("payer_type")
        if payer in split:
            split[payer].append(item)
    return split


def _invoice_line(item: dict, payer: PayerType, sort_order: int, ticket_id: str) -> dict:
    return {
        "description": item.get("description"),
        "item_type": item.get("item_type"),
        "quantity": item.get("quantity") or 1,
        "unit_price": to_number(item.get("unit_price")),
        "line_total": to_number(item.get("line_total")),
        "part_id": item.get("part_id"),
        "payer_type": payer.value,
        "sort_order": sort_order,
        "ticket_id": ticket_id,
    }


def build_ahs_line_items(ticket_id: str, diagnosis_fee: float, items: List[dict]) -> List[dict]:
    """Diagnosis fee (when > 0) followed by AHS-payer estimate lines"""
    lines = []
    if diagnosis_fee > 0:
        lines.append({
            "description": "AHS Diagnosis Fee",
            "item_type": "service",
            "quantity": 1,
            "unit_price": diagnosis_fee,
            "line_total": diagnosis_fee,
            "payer_type": PayerType.AHS.value,
            "sort_order": 0,
            "ticket_id": ticket_id,
        })
    for item in items or []:
        lines.append(_invoice_line(item, PayerType.AHS, len(lines), ticket_id))
    return lines


def build_customer_line_items(ticket_id: str, items: List[dict]) -> List[dict]:
    return [
        _invoice_line(item, PayerType.CUSTOMER, index, ticket_id)
        for index, item in enumerate(items or [])
    ]


def invoice_number_prefix(now: datetime) -> str:
    return f"{INVOICE_PREFIX}-{now:%y%m}-"


def next_invoice_number(last_invoice_number: Optional[str], now: datetime) -> str:
    """
    Next number in the month's sequence.

    >>> next_invoice_number("INV-2401-0042", datetime(2024, 1, 15))
    'INV-2401-0043'
    """
    sequence = 1
    if last_invoice_number:
        parts = last_invoice_number.split("-")
        if len(parts) >= 3:
            try:
                sequence = int(parts[2]) + 1
            except ValueError:
                sequence = 1
    return f"{invoice_number_prefix(now)}{sequence:0{INVOICE_SEQUENCE_WIDTH}d}"


def ahs_invoice_notes(ticket: dict) -> str:
    return f"AHS Warranty - Dispatch #{ticket.get('ahs_dispatch_number') or 'N/A'} - Ticket {ticket.get('ticket_number')}"


def customer_invoice_notes(ticket: dict) -> str:
    return f"Customer responsibility - AHS Warranty Ticket {ticket.get('ticket_number')}"


# ============== Service ==============

class AHSInvoiceService:
    """Create and list invoices for AHS warranty tickets"""

    def __init__(self, db: Optional[Client] = None, settings: Optional[AHSSettingsService] = None):
        self.db = db or get_supabase()
        self.settings = settings or AHSSettingsService(self.db)

    async def get_billing_breakdown(self, ticket_id: str) -> BillingBreakdown:
        """Totals by payer; zeroed on error"""
        try:
            result = self.db.rpc("fn_get_ahs_billing_breakdown", {"p_ticket_id": ticket_id}).execute()
        except Exception as e:
            logger.error(f"[AHS] Error getting billing breakdown for {ticket_id}: {e}")
            return BillingBreakdown()
        return parse_billing_breakdown(result.data)

    async def _get_ticket(self, ticket_id: str) -> Optional[dict]:
        try:
            result = self.db.table("tickets") \
                .select("id, ticket_number, customer_id, ahs_dispatch_number") \
                .eq("id", ticket_id) \
                .maybe_single() \
                .execute()
        except Exception as e:
            logger.error(f"[AHS] Error loading ticket {ticket_id}: {e}")
            return None
        return first_row(result)

    async def _get_estimate_items(self, ticket_id: str, payer: PayerType) -> List[dict]:
        result = self.db.table("estimate_line_items") \
            .select(LINE_ITEM_FIELDS) \
            .eq("payer_type", payer.value) \
            .eq("estimate.ticket_id", ticket_id) \
            .execute()
        return result.data or []

    async def _last_invoice_number(self, now: datetime) -> Optional[str]:
        """
        Highest number in the month's sequence.

        Text order matches numeric order only among equal-width sequences,
        so each width is read in turn, starting at four digits, until one
        has no rows.
        """
        prefix = invoice_number_prefix(now)
        last = None
        width = INVOICE_SEQUENCE_WIDTH
        while True:
            result = self.db.table("invoices") \
                .select("invoice_number") \
                .like("invoice_number", prefix + "_" * width) \
                .order("invoice_number", desc=True) \
                .limit(1) \
                .execute()
            row = first_row(result)
            if not row:
                return last
            last = row.get("invoice_number")
            width += 1

    async def _insert_invoice(self, record: dict, now: datetime) -> dict:
        """Insert with a freshly read number; retry on a unique violation"""
        for attempt in range(1, MAX_INVOICE_NUMBER_ATTEMPTS + 1):
            invoice_number = next_invoice_number(await self._last_invoice_number(now), now)
            try:
                result = self.db.table("invoices") \
                    .insert({**record, "invoice_number": invoice_number}) \
                    .execute()
                return first_row(result)
            except Exception as e:
                if not is_unique_violation(e):
                    raise
                logger.warning(f"[AHS] Invoice number {invoice_number} taken (attempt {attempt}), retrying")

        raise InvoiceNumberAllocationError(
            f"Could not allocate an invoice number after {MAX_INVOICE_NUMBER_ATTEMPTS} attempts"
        )

    async def _create_invoice(
        self,
        ticket_id: str,
        customer_id: str,
        line_items: List[dict],
        notes: str,
        user_id: str,
        audit_action: str,
        now: Optional[datetime] = None
    ) -> InvoiceCreateResult:
        now = now or datetime.now(timezone.utc)
        subtotal = sum(to_number(item.get("line_total")) for item in line_items)

        try:
            invoice = await self._insert_invoice({
                "customer_id": customer_id,
                "source_ticket_id": ticket_id,
                "subtotal": subtotal,
                "tax": 0,
                "total": subtotal,
                "status": InvoiceStatus.DRAFT.value,
                "notes": notes,
                "created_by": user_id,
            }, now)
        except Exception as e:
            logger.error(f"[AHS] Error creating invoice for ticket {ticket_id}: {e}")
            return InvoiceCreateResult.failed(f"Failed to create invoice: {e}")

        try:
            self.db.table("invoice_line_items") \
                .insert([{**item, "invoice_id": invoice["id"]} for item in line_items]) \
                .execute()
        except Exception as e:
            logger.error(f"[AHS] Error creating invoice line items: {e}")
            self.db.table("invoices").delete().eq("id", invoice["id"]).execute()
            return InvoiceCreateResult.failed(f"Failed to create line items: {e}")

        self.db.table("ahs_audit_log").insert({
            "entity_type": "ticket",
            "entity_id": ticket_id,
            "action": audit_action,
            "new_value": {
                "invoice_id": invoice["id"],
                "invoice_number": invoice.get("invoice_number"),
                "total": subtotal,
            },
            "performed_by": user_id,
        }).execute()

        logger.info(f"[AHS] {audit_action}: {invoice.get('invoice_number')} (${subtotal:.2f})")
        return InvoiceCreateResult(
            success=True,
            invoice_id=invoice["id"],
            invoice_number=invoice.get("invoice_number"),
        )

    async def create_ahs_invoice(self, ticket_id: str, user_id: str, now: Optional[datetime] = None) -> InvoiceCreateResult:
        try:
            defaults = await self.settings.get_defaults()
            if not defaults.bill_to_customer_id:
                return InvoiceCreateResult.failed("AHS Bill-To Customer not configured in settings")

            ticket = await self._get_ticket(ticket_id)
            if not ticket:
                return InvoiceCreateResult.failed("Ticket not found")

            breakdown = await self.get_billing_breakdown(ticket_id)
            items = await self._get_estimate_items(ticket_id, PayerType.AHS)
            line_items = build_ahs_line_items(ticket_id, breakdown.diagnosis_fee, items)

            if not line_items:
                return InvoiceCreateResult.failed("No AHS-billable items found")

            return await self._create_invoice(
                ticket_id,
                defaults.bill_to_customer_id,
                line_items,
                ahs_invoice_notes(ticket),
                user_id,
                "ahs_invoice_created",
                now,
            )
        except Exception as e:
            logger.error(f"[AHS] Error in create_ahs_invoice: {e}")
            return InvoiceCreateResult.failed("An unexpected error occurred")

    async def create_customer_invoice(self, ticket_id: str, user_id: str, now: Optional[datetime] = None) -> InvoiceCreateResult:
        try:
            ticket = await self._get_ticket(ticket_id)
            if not ticket:
                return InvoiceCreateResult.failed("Ticket not found")

            items = await self._get_estimate_items(ticket_id, PayerType.CUSTOMER)
            if not items:
                return InvoiceCreateResult.failed("No customer-billable items found")

            return await self._create_invoice(
                ticket_id,
                ticket.get("customer_id"),
                build_customer_line_items(ticket_id, items),
                customer_invoice_notes(ticket),
                user_id,
                "customer_invoice_created",
                now,
            )
        except Exception as e:
            logger.error(f"[AHS] Error in create_customer_invoice: {e}")
            return InvoiceCreateResult.failed("An unexpected error occurred")

    async def get_ticket_invoices(self, ticket_id: str) -> Dict[str, List[dict]]:
        """Invoices for a ticket, split by whether AHS is the bill-to customer"""
        split = {"ahs_invoices": [], "customer_invoices": []}
        try:
            result = self.db.table("invoices") \
                .select("id, invoice_number, customer_id, total, status, created_at, "
                        "customer:customers(company_name)") \
                .or_(f"ticket_id.eq.{ticket_id},source_ticket_id.eq.{ticket_id}") \
                .order("created_at", desc=True) \
                .execute()
            defaults = await self.settings.get_defaults()
        except Exception as e:
            logger.error(f"[AHS] Error fetching invoices for ticket {ticket_id}: {e}")
            return split

        for invoice in result.data or []:
            if defaults.bill_to_customer_id and invoice.get("customer_id") == defaults.bill_to_customer_id:
                split["ahs_invoices"].append(invoice)
            else:
                split["customer_invoices"].append(invoice)
        return split
