"""
Technician Tracking Service

Live view of active technicians: latest reported location and the tickets
they have scheduled or in progress.

Technicians and tickets load in one query each; locations are read
latest-row-only per technician so the history never hits the row cap.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from intelliservice.models.enums import LocationStatus, TicketStatus
from intelliservice.reports.base import parse_timestamp
from intelliservice.services.supabase_client import first_row, get_supabase

logger = logging.getLogger(__name__)

ACTIVE_MINUTES = 5
IDLE_MINUTES = 30

TRACKED_TICKET_STATUSES = [TicketStatus.SCHEDULED.value, TicketStatus.IN_PROGRESS.value]


def minutes_since(timestamp: Any, now: Optional[datetime] = None) -> Optional[int]:
    """Whole minutes elapsed since timestamp, None without one"""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return None
    now = now or datetime.now(timezone.utc)
    return math.floor((now - parsed).total_seconds() / 60)


def location_status(timestamp: Any, now: Optional[datetime] = None) -> LocationStatus:
    minutes = minutes_since(timestamp, now)
    if minutes is None:
        return LocationStatus.UNKNOWN
    if minutes < ACTIVE_MINUTES:
        return LocationStatus.ACTIVE
    if minutes < IDLE_MINUTES:
        return LocationStatus.IDLE
    return LocationStatus.STALE


def describe_last_update(timestamp: Any, now: Optional[datetime] = None) -> str:
    minutes = minutes_since(timestamp, now)
    if minutes is None:
        return "No location data"
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} min ago"
    hours = minutes // 60
    return f"{hours} hour{'s' if hours > 1 else ''} ago"


def attach_tracking_data(
    technicians: List[dict],
    locations: List[dict],
    tickets: List[dict],
    now: Optional[datetime] = None
) -> List[dict]:
    """
    Merge latest location and open tickets onto each technician.

    locations must be ordered newest first; the first row seen per
    technician wins.
    """
    latest: Dict[str, dict] = {}
    for location in locations or []:
        tech_id = location.get("technician_id")
        if tech_id not in latest:
            latest[tech_id] = location

    tickets_by_tech: Dict[str, List[dict]] = defaultdict(list)
    for ticket in tickets or []:
        tickets_by_tech[ticket.get("assigned_to")].append(ticket)

    merged = []
    for tech in technicians or []:
        location = latest.get(tech["id"])
        timestamp = location.get("timestamp") if location else None
        tech_tickets = tickets_by_tech.get(tech["id"], [])
        merged.append({
            **tech,
            "latest_location": location,
            "active_tickets": len(tech_tickets),
            "tickets": tech_tickets,
            "location_status": location_status(timestamp, now).value,
            "last_update": describe_last_update(timestamp, now),
        })
    return merged


class TrackingService:
    """Loads the technician tracking board"""

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase()

    async def load_technicians(self, now: Optional[datetime] = None) -> List[dict]:
        techs = self.db.table("profiles") \
            .select("*") \
            .eq("role", "technician") \
            .eq("is_active", True) \
            .execute()
        technicians = techs.data or []
        if not technicians:
            return []

        tech_ids = [t["id"] for t in technicians]

        locations = []
        for tech_id in tech_ids:
            latest = self._latest_location(tech_id)
            if latest:
                locations.append(latest)

        tickets = self.db.table("tickets") \
            .select("*, customer:customers!tickets_customer_id_fkey(*)") \
            .in_("assigned_to", tech_ids) \
            .in_("status", TRACKED_TICKET_STATUSES) \
            .order("scheduled_date") \
            .execute()

        return attach_tracking_data(technicians, locations, tickets.data or [], now)

    def _latest_location(self, tech_id: str) -> Optional[dict]:
        # Newest row only
        result = self.db.table("technician_locations") \
            .select("*") \
            .eq("technician_id", tech_id) \
            .order("timestamp", desc=True) \
            .limit(1) \
            .execute()
        return first_row(result)
