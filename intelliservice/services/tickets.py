"""
Technician Ticket Service

Work timer (start/end on-site work through database functions), ticket
lists, updates, parts used, photo uploads and truck inventory.

A technician can time only one ticket at a time; starting work on a second
ticket is refused until the first is ended.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from intelliservice.models.enums import PhotoType, TicketStatus
from intelliservice.services.supabase_client import first_row, get_supabase

logger = logging.getLogger(__name__)

PHOTO_BUCKET = "ticket-photos"
COMPLETED_TICKETS_LIMIT = 20

TICKET_LIST_FIELDS = "*, customers!tickets_customer_id_fkey(name, phone, email, address), " \
                     "equipment(equipment_type, model_number)"


def photo_path(ticket_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    """Storage path <ticket>/<epoch ms>.<ext>"""
    ext = filename.rsplit(".", 1)[-1] if "." in filename else "jpg"
    return f"{ticket_id}/{now_ms if now_ms is not None else int(time.time() * 1000)}.{ext}"


def validate_photo_type(photo_type: Optional[str]) -> str:
    photo_type = photo_type or PhotoType.DURING.value
    if photo_type not in [t.value for t in PhotoType]:
        raise ValueError(f"Invalid photo_type: {photo_type}")
    return photo_type


def map_truck_inventory(rows: List[dict]) -> List[dict]:
    return [
        {
            "id": row.get("part_id"),
            "part_number": row.get("part_number"),
            "name": f"{row.get('part_name')} ({row.get('qty_on_hand')} on truck)",
            "unit_price": row.get("unit_price"),
        }
        for row in rows
    ]


def _rpc_row(data: Any) -> Optional[dict]:
    if isinstance(data, list):
        return data[0] if data else None
    return data


class TicketService:
    """Technician-facing ticket operations"""

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase()

    # =========================================================================
    # WORK TIMER
    # =========================================================================

    async def get_active_timer(self, tech_id: str) -> Optional[dict]:
        result = self.db.rpc("fn_get_active_timer", {"p_tech_id": tech_id}).execute()
        return _rpc_row(result.data)

    async def start_work(self, tech_id: str, ticket_id: str) -> dict:
        """
        Start timing on-site work.

        Raises:
            ValueError if another ticket is being timed or the database refuses
        """
        timer = await self.get_active_timer(tech_id)
        if timer and timer.get("has_active_timer") and timer.get("ticket_id") != ticket_id:
            raise ValueError(f"You are currently timing Ticket {timer.get('ticket_number')}. End it first.")

        result = self.db.rpc("fn_start_ticket_work", {
            "p_tech_id": tech_id,
            "p_ticket_id": ticket_id,
        }).execute()

        outcome = _rpc_row(result.data) or {}
        if not outcome.get("success"):
            raise ValueError(outcome.get("message") or outcome.get("error") or "Could not start work")

        self.db.table("ticket_updates").insert({
            "ticket_id": ticket_id,
            "technician_id": tech_id,
            "update_type": "arrived",
            "notes": "Arrived on site and started work",
            "progress_percent": 0,
            "status": TicketStatus.IN_PROGRESS.value,
        }).execute()

        logger.info(f"[Tickets] Tech {tech_id} started work on {ticket_id}")
        return outcome

    async def end_work(self, tech_id: str, ticket_id: str, mark_complete: bool = False) -> dict:
        result = self.db.rpc("fn_end_ticket_work", {
            "p_tech_id": tech_id,
            "p_ticket_id": ticket_id,
        }).execute()

        if mark_complete:
            self.db.table("tickets") \
                .update({
                    "status": TicketStatus.COMPLETED.value,
                    "completed_date": datetime.now(timezone.utc).isoformat(),
                }) \
                .eq("id", ticket_id) \
                .execute()

        logger.info(f"[Tickets] Tech {tech_id} ended work on {ticket_id} (complete={mark_complete})")
        return _rpc_row(result.data) or {}

    # =========================================================================
    # TICKETS
    # =========================================================================

    async def list_open_tickets(self, tech_id: str) -> List[dict]:
        result = self.db.table("tickets") \
            .select(TICKET_LIST_FIELDS) \
            .eq("assigned_to", tech_id) \
            .in_("status", TicketStatus.active()) \
            .order("scheduled_date") \
            .execute()
        return result.data or []

    async def list_completed_tickets(self, tech_id: str) -> List[dict]:
        result = self.db.table("tickets") \
            .select(TICKET_LIST_FIELDS) \
            .eq("assigned_to", tech_id) \
            .in_("status", TicketStatus.finished()) \
            .order("completed_date", desc=True) \
            .limit(COMPLETED_TICKETS_LIMIT) \
            .execute()
        return result.data or []

    async def get_ticket_details(self, ticket_id: str) -> Dict[str, List[dict]]:
        """Updates, photos and parts used, newest first"""
        updates = self.db.table("ticket_updates") \
            .select("*, profiles(full_name)") \
            .eq("ticket_id", ticket_id) \
            .order("created_at", desc=True) \
            .execute()

        photos = self.db.table("ticket_photos") \
            .select("*") \
            .eq("ticket_id", ticket_id) \
            .order("created_at", desc=True) \
            .execute()

        parts = self.db.table("ticket_parts_used") \
            .select("*, parts(part_number, name, unit_price)") \
            .eq("ticket_id", ticket_id) \
            .order("created_at", desc=True) \
            .execute()

        return {
            "updates": updates.data or [],
            "photos": photos.data or [],
            "parts_used": parts.data or [],
        }

    async def get_onsite_progress(self, ticket_id: str) -> Optional[dict]:
        result = self.db.table("vw_ticket_onsite_progress") \
            .select("*") \
            .eq("ticket_id", ticket_id) \
            .maybe_single() \
            .execute()
        return first_row(result)

    async def add_update(
        self,
        ticket_id: str,
        tech_id: str,
        update_type: str,
        notes: Optional[str] = None,
        progress_percent: int = 0,
        status: Optional[str] = None
    ) -> None:
        record = {
            "ticket_id": ticket_id,
            "technician_id": tech_id,
            "update_type": update_type,
            "notes": notes,
            "progress_percent": progress_percent,
        }
        if status:
            if status not in [s.value for s in TicketStatus]:
                raise ValueError(f"Invalid ticket status: {status}")
            record["status"] = status

        self.db.table("ticket_updates").insert(record).execute()

        if status:
            self.db.table("tickets") \
                .update({
                    "status": status,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }) \
                .eq("id", ticket_id) \
                .execute()

    async def add_part_used(
        self,
        ticket_id: str,
        tech_id: str,
        part_id: str,
        quantity: float = 1,
        notes: Optional[str] = None
    ) -> dict:
        result = self.db.table("ticket_parts_used") \
            .insert({
                "ticket_id": ticket_id,
                "part_id": part_id,
                "quantity": quantity,
                "installed_by": tech_id,
                "notes": notes,
            }) \
            .execute()
        return first_row(result)

    async def upload_photo(
        self,
        ticket_id: str,
        user_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        photo_type: Optional[str] = None,
        caption: Optional[str] = None
    ) -> dict:
        """Store a photo in the ticket-photos bucket and record it"""
        photo_type = validate_photo_type(photo_type)
        path = photo_path(ticket_id, filename)

        bucket = self.db.storage.from_(PHOTO_BUCKET)
        bucket.upload(path, content, {
            "content-type": content_type or "image/jpeg",
            "cache-control": "3600",
            "upsert": "false",
        })
        public_url = bucket.get_public_url(path)

        result = self.db.table("ticket_photos") \
            .insert({
                "ticket_id": ticket_id,
                "uploaded_by": user_id,
                "photo_url": public_url,
                "photo_type": photo_type,
                "caption": caption or None,
            }) \
            .execute()

        logger.info(f"[Tickets] Photo uploaded for {ticket_id}: {path}")
        return first_row(result)

    async def get_truck_inventory(self, tech_id: str) -> List[dict]:
        """Parts on the tech's truck, or the full catalog when none are recorded"""
        try:
            result = self.db.table("vw_technician_truck_inventory") \
                .select("part_id, part_number, part_name, unit_price, qty_on_hand") \
                .eq("technician_id", tech_id) \
                .execute()
            truck_parts = result.data or []
        except Exception as e:
            logger.info(f"[Tickets] No truck inventory view available, falling back to all parts: {e}")
            truck_parts = []

        if truck_parts:
            return map_truck_inventory(truck_parts)

        catalog = self.db.table("parts") \
            .select("id, part_number, name, unit_price") \
            .order("name") \
            .execute()
        return catalog.data or []
