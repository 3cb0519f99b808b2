"""
CRM Service

Deal pipelines, the estimate sales pipeline, customer interactions,
customer timeline / 360 view, leads and sales opportunities.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from intelliservice.models.enums import InteractionType, InvoiceStatus
from intelliservice.reports.base import parse_timestamp, safe_div, to_number
from intelliservice.services.supabase_client import first_row, get_supabase

logger = logging.getLogger(__name__)

PIPELINE_FIELDS = "*, stages:deal_stages(*)"
INTERACTION_FIELDS = "*, creator:profiles!created_by(full_name)"

TIMELINE_LIMIT = 50
FOLLOW_UP_DAYS = 7

CLOSED_TICKET_STATUSES = ("completed", "cancelled")
PENDING_ESTIMATE_STATUS = "sent"


@dataclass
class CustomerStats:
    total_tickets: int = 0
    open_tickets: int = 0
    total_estimates: int = 0
    pending_estimates: int = 0
    total_revenue: float = 0.0
    lifetime_value: float = 0.0
    avg_ticket_value: float = 0.0
    last_service_date: Optional[str] = None


@dataclass
class Customer360:
    customer: Dict[str, Any]
    stats: CustomerStats
    timeline: List[dict] = field(default_factory=list)
    equipment: List[dict] = field(default_factory=list)


def sort_pipeline_stages(pipeline: Optional[dict]) -> Optional[dict]:
    if pipeline is None:
        return None
    stages = sorted(pipeline.get("stages") or [], key=lambda s: s.get("sort_order") or 0)
    return {**pipeline, "stages": stages}


def invoice_amount(invoice: dict) -> float:
    """Invoice value from total_amount, falling back to total"""
    amount = invoice.get("total_amount")
    if amount is None:
        amount = invoice.get("total")
    return to_number(amount)


def summarize_customer_activity(
    tickets: List[dict],
    estimates: List[dict],
    paid_invoices: List[dict]
) -> CustomerStats:
    """Ticket, estimate and revenue stats for one customer"""
    tickets = tickets or []
    estimates = estimates or []

    completed = [t for t in tickets if t.get("status") == "completed"]
    revenue = sum(invoice_amount(i) for i in paid_invoices or [])

    last_service = None
    latest = None
    for ticket in completed:
        completed_at = parse_timestamp(ticket.get("completed_at"))
        if completed_at and (latest is None or completed_at > latest):
            latest = completed_at
            last_service = ticket.get("completed_at")

    return CustomerStats(
        total_tickets=len(tickets),
        open_tickets=len([t for t in tickets if t.get("status") not in CLOSED_TICKET_STATUSES]),
        total_estimates=len(estimates),
        pending_estimates=len([e for e in estimates if e.get("status") == PENDING_ESTIMATE_STATUS]),
        total_revenue=revenue,
        lifetime_value=revenue,
        avg_ticket_value=safe_div(sum(to_number(t.get("billed_amount")) for t in completed), len(completed)),
        last_service_date=last_service,
    )


class CRMService:
    """Customer relationship management queries and mutations"""

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase()

    # =========================================================================
    # PIPELINES
    # =========================================================================

    async def get_pipelines(self) -> List[dict]:
        result = self.db.table("deal_pipelines") \
            .select(PIPELINE_FIELDS) \
            .eq("is_active", True) \
            .order("sort_order") \
            .execute()
        return [sort_pipeline_stages(p) for p in result.data or []]

    async def get_pipeline(self, pipeline_id: str) -> Optional[dict]:
        result = self.db.table("deal_pipelines") \
            .select(PIPELINE_FIELDS) \
            .eq("id", pipeline_id) \
            .maybe_single() \
            .execute()
        return sort_pipeline_stages(first_row(result))

    async def get_default_pipeline(self) -> Optional[dict]:
        result = self.db.table("deal_pipelines") \
            .select(PIPELINE_FIELDS) \
            .eq("is_default", True) \
            .eq("is_active", True) \
            .maybe_single() \
            .execute()
        return sort_pipeline_stages(first_row(result))

    async def get_sales_pipeline(self, pipeline_id: Optional[str] = None) -> List[dict]:
        """Estimates in the sales pipeline view, optionally limited to one pipeline's stages"""
        query = self.db.table("vw_sales_pipeline") \
            .select("*") \
            .order("stage_order") \
            .order("updated_at", desc=True)

        if pipeline_id:
            pipeline = await self.get_pipeline(pipeline_id)
            if pipeline and pipeline.get("stages"):
                query = query.in_("deal_stage_id", [s["id"] for s in pipeline["stages"]])

        result = query.execute()
        return result.data or []

    async def move_estimate_to_stage(self, estimate_id: str, stage_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.db.table("estimates") \
            .update({
                "deal_stage_id": stage_id,
                "stage_entered_at": now,
                "days_in_stage": 0,
                "updated_at": now,
            }) \
            .eq("id", estimate_id) \
            .execute()
        logger.info(f"[CRM] Estimate {estimate_id} moved to stage {stage_id}")

    async def add_estimate_to_pipeline(
        self,
        estimate_id: str,
        stage_id: str,
        expected_close_date: Optional[str] = None
    ) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.db.table("estimates") \
            .update({
                "deal_stage_id": stage_id,
                "stage_entered_at": now,
                "expected_close_date": expected_close_date,
                "days_in_stage": 0,
                "updated_at": now,
            }) \
            .eq("id", estimate_id) \
            .execute()

    async def mark_estimate_lost(self, estimate_id: str, reason: str, lost_stage_id: str) -> None:
        self.db.table("estimates") \
            .update({
                "deal_stage_id": lost_stage_id,
                "lost_reason": reason,
                "status": "rejected",
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }) \
            .eq("id", estimate_id) \
            .execute()
        logger.info(f"[CRM] Estimate {estimate_id} marked lost: {reason}")

    # =========================================================================
    # INTERACTIONS
    # =========================================================================

    async def get_customer_interactions(self, customer_id: str) -> List[dict]:
        result = self.db.table("customer_interactions") \
            .select(INTERACTION_FIELDS) \
            .eq("customer_id", customer_id) \
            .order("created_at", desc=True) \
            .execute()
        return result.data or []

    async def create_interaction(self, data: Dict[str, Any], user_id: str) -> dict:
        interaction_type = data.get("interaction_type")
        if interaction_type not in [t.value for t in InteractionType]:
            raise ValueError(f"Unknown interaction type: {interaction_type}")

        record = {k: v for k, v in data.items() if v is not None}
        result = self.db.table("customer_interactions") \
            .insert({**record, "created_by": user_id}) \
            .execute()
        return first_row(result)

    async def get_upcoming_follow_ups(self, days: int = FOLLOW_UP_DAYS, now: Optional[datetime] = None) -> List[dict]:
        now = now or datetime.now(timezone.utc)
        today = now.date().isoformat()
        until = (now + timedelta(days=days)).date().isoformat()

        result = self.db.table("customer_interactions") \
            .select(INTERACTION_FIELDS) \
            .gte("follow_up_date", today) \
            .lte("follow_up_date", until) \
            .order("follow_up_date") \
            .execute()
        return result.data or []

    # =========================================================================
    # CUSTOMER 360
    # =========================================================================

    async def get_customer_timeline(self, customer_id: str, limit: int = TIMELINE_LIMIT) -> List[dict]:
        result = self.db.table("vw_customer_timeline") \
            .select("*") \
            .eq("customer_id", customer_id) \
            .order("event_date", desc=True) \
            .limit(limit) \
            .execute()
        return result.data or []

    async def get_customer_360(self, customer_id: str) -> Customer360:
        customer = first_row(
            self.db.table("customers")
            .select("*")
            .eq("id", customer_id)
            .maybe_single()
            .execute()
        )
        if not customer:
            raise ValueError(f"Customer {customer_id} not found")

        timeline = await self.get_customer_timeline(customer_id)

        equipment = self.db.table("equipment") \
            .select("*") \
            .eq("customer_id", customer_id) \
            .eq("is_active", True) \
            .execute()

        tickets = self.db.table("tickets") \
            .select("id, status, billed_amount, completed_at") \
            .eq("customer_id", customer_id) \
            .execute()

        estimates = self.db.table("estimates") \
            .select("id, status, total_amount") \
            .eq("customer_id", customer_id) \
            .execute()

        invoices = self.db.table("invoices") \
            .select("total_amount, total, status") \
            .eq("customer_id", customer_id) \
            .eq("status", InvoiceStatus.PAID.value) \
            .execute()

        return Customer360(
            customer=customer,
            stats=summarize_customer_activity(tickets.data or [], estimates.data or [], invoices.data or []),
            timeline=timeline,
            equipment=equipment.data or [],
        )

    # =========================================================================
    # LEADS & OPPORTUNITIES
    # =========================================================================

    async def get_leads_inbox(self) -> List[dict]:
        result = self.db.table("vw_leads_inbox") \
            .select("*") \
            .order("created_at", desc=True) \
            .execute()
        return result.data or []

    async def convert_lead(self, customer_id: str) -> None:
        self.db.table("customers") \
            .update({
                "status": "active",
                "converted_at": datetime.now(timezone.utc).isoformat(),
            }) \
            .eq("id", customer_id) \
            .execute()
        logger.info(f"[CRM] Lead {customer_id} converted")

    async def create_lead(self, data: Dict[str, Any]) -> dict:
        record = {k: v for k, v in data.items() if v is not None}
        result = self.db.table("customers") \
            .insert({**record, "status": "lead"}) \
            .execute()
        return first_row(result)

    async def get_sales_opportunities(self) -> List[dict]:
        result = self.db.table("vw_sales_opportunities") \
            .select("*") \
            .order("completed_at", desc=True) \
            .execute()
        return result.data or []

    async def get_prospects(self) -> List[dict]:
        """Active customers flagged for equipment replacement"""
        result = self.db.table("customers") \
            .select("*, equipment:equipment(id, manufacturer, model_number, installation_date, equipment_type)") \
            .eq("prospect_replacement_flag", True) \
            .eq("is_active", True) \
            .order("name") \
            .execute()
        return result.data or []
