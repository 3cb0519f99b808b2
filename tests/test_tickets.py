"""
Tests for technician ticket operations
"""
import pytest

from fakes import FakeSupabase
from intelliservice.services.tickets import (
    PHOTO_BUCKET,
    TicketService,
    map_truck_inventory,
    photo_path,
    validate_photo_type,
)


@pytest.fixture
def ticket_db():
    db = FakeSupabase({
        "tickets": [
            {"id": "t1", "assigned_to": "tech-1", "status": "scheduled", "scheduled_date": "2024-06-03"},
            {"id": "t2", "assigned_to": "tech-1", "status": "open", "scheduled_date": "2024-06-01"},
            {"id": "t3", "assigned_to": "tech-1", "status": "completed", "completed_date": "2024-05-01"},
            {"id": "t4", "assigned_to": "tech-1", "status": "closed_billed", "completed_date": "2024-05-20"},
            {"id": "t5", "assigned_to": "tech-2", "status": "open", "scheduled_date": "2024-06-02"},
        ],
        "parts": [
            {"id": "p2", "part_number": "CAP-45", "name": "Capacitor", "unit_price": 18},
            {"id": "p1", "part_number": "FLT-16", "name": "Air Filter", "unit_price": 12},
        ],
    })
    db.rpc_handlers["fn_get_active_timer"] = lambda params: [{"has_active_timer": False}]
    db.rpc_handlers["fn_start_ticket_work"] = lambda params: [{"success": True, "time_log_id": "log-1"}]
    db.rpc_handlers["fn_end_ticket_work"] = lambda params: [{"success": True, "hours_worked": 1.5}]
    return db


class TestTicketHelpers:
    """Test pure ticket helpers"""

    def test_photo_path(self):
        assert photo_path("t1", "unit.png", now_ms=1700000000000) == "t1/1700000000000.png"
        assert photo_path("t1", "capture", now_ms=5) == "t1/5.jpg"

    def test_validate_photo_type(self):
        assert validate_photo_type(None) == "during"
        assert validate_photo_type("after") == "after"
        with pytest.raises(ValueError):
            validate_photo_type("selfie")

    def test_map_truck_inventory(self):
        rows = map_truck_inventory([
            {"part_id": "p1", "part_number": "FLT-16", "part_name": "Air Filter", "unit_price": 12, "qty_on_hand": 3},
        ])
        assert rows == [{"id": "p1", "part_number": "FLT-16", "name": "Air Filter (3 on truck)", "unit_price": 12}]


class TestWorkTimer:
    """Test start/end work"""

    @pytest.mark.asyncio
    async def test_start_work(self, ticket_db):
        outcome = await TicketService(ticket_db).start_work("tech-1", "t1")

        assert outcome["success"] is True
        update = ticket_db.rows("ticket_updates")[0]
        assert update["update_type"] == "arrived"
        assert update["status"] == "in_progress"
        assert ticket_db.rpc_calls[-1] == ("fn_start_ticket_work", {"p_tech_id": "tech-1", "p_ticket_id": "t1"})

    @pytest.mark.asyncio
    async def test_one_active_timer_per_technician(self, ticket_db):
        ticket_db.rpc_handlers["fn_get_active_timer"] = lambda params: [
            {"has_active_timer": True, "ticket_id": "t2", "ticket_number": "TKT-2"}
        ]

        with pytest.raises(ValueError) as excinfo:
            await TicketService(ticket_db).start_work("tech-1", "t1")

        assert "TKT-2" in str(excinfo.value)
        assert ticket_db.rows("ticket_updates") == []
        assert all(name != "fn_start_ticket_work" for name, _ in ticket_db.rpc_calls)

    @pytest.mark.asyncio
    async def test_restarting_the_timed_ticket_is_allowed(self, ticket_db):
        ticket_db.rpc_handlers["fn_get_active_timer"] = lambda params: {"has_active_timer": True, "ticket_id": "t1"}

        outcome = await TicketService(ticket_db).start_work("tech-1", "t1")

        assert outcome["success"] is True

    @pytest.mark.asyncio
    async def test_database_refusal(self, ticket_db):
        ticket_db.rpc_handlers["fn_start_ticket_work"] = lambda params: [
            {"success": False, "message": "Ticket is not assigned to you"}
        ]

        with pytest.raises(ValueError, match="not assigned"):
            await TicketService(ticket_db).start_work("tech-1", "t5")

    @pytest.mark.asyncio
    async def test_end_work_and_complete(self, ticket_db):
        outcome = await TicketService(ticket_db).end_work("tech-1", "t1", mark_complete=True)

        assert outcome["hours_worked"] == 1.5
        ticket = ticket_db.rows("tickets")[0]
        assert ticket["status"] == "completed"
        assert ticket["completed_date"]

    @pytest.mark.asyncio
    async def test_end_work_without_completing(self, ticket_db):
        await TicketService(ticket_db).end_work("tech-1", "t1")
        assert ticket_db.rows("tickets")[0]["status"] == "scheduled"


class TestTicketService:
    """Test ticket lists, updates, parts and photos"""

    @pytest.mark.asyncio
    async def test_open_tickets_by_schedule(self, ticket_db):
        tickets = await TicketService(ticket_db).list_open_tickets("tech-1")
        assert [t["id"] for t in tickets] == ["t2", "t1"]

    @pytest.mark.asyncio
    async def test_completed_tickets_newest_first(self, ticket_db):
        tickets = await TicketService(ticket_db).list_completed_tickets("tech-1")
        assert [t["id"] for t in tickets] == ["t4", "t3"]

    @pytest.mark.asyncio
    async def test_add_update_with_status(self, ticket_db):
        service = TicketService(ticket_db)

        await service.add_update("t1", "tech-1", "progress_note", notes="Replaced capacitor",
                                 progress_percent=60, status="in_progress")

        assert ticket_db.rows("ticket_updates")[0]["progress_percent"] == 60
        assert ticket_db.rows("tickets")[0]["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_add_update_rejects_unknown_status(self, ticket_db):
        with pytest.raises(ValueError):
            await TicketService(ticket_db).add_update("t1", "tech-1", "progress_note", status="paused")
        assert ticket_db.rows("ticket_updates") == []

    @pytest.mark.asyncio
    async def test_add_part_used(self, ticket_db):
        part = await TicketService(ticket_db).add_part_used("t1", "tech-1", "p1", quantity=2)
        assert part["installed_by"] == "tech-1"
        assert part["quantity"] == 2

    @pytest.mark.asyncio
    async def test_upload_photo(self, ticket_db):
        photo = await TicketService(ticket_db).upload_photo(
            "t1", "tech-1", "before.png", b"\x89PNG", content_type="image/png", photo_type="before",
        )

        upload = ticket_db.storage.uploads[0]
        assert upload["bucket"] == PHOTO_BUCKET
        assert upload["path"].startswith("t1/")
        assert upload["path"].endswith(".png")
        assert upload["options"]["content-type"] == "image/png"
        assert photo["photo_url"] == f"https://storage.test/{PHOTO_BUCKET}/{upload['path']}"
        assert photo["photo_type"] == "before"

    @pytest.mark.asyncio
    async def test_ticket_details(self, ticket_db):
        ticket_db.tables["ticket_updates"] = [
            {"ticket_id": "t1", "notes": "first", "created_at": "2024-06-01T09:00:00Z"},
            {"ticket_id": "t1", "notes": "second", "created_at": "2024-06-01T10:00:00Z"},
        ]

        details = await TicketService(ticket_db).get_ticket_details("t1")

        assert [u["notes"] for u in details["updates"]] == ["second", "first"]
        assert details["photos"] == []
        assert details["parts_used"] == []

    @pytest.mark.asyncio
    async def test_truck_inventory(self, ticket_db):
        ticket_db.tables["vw_technician_truck_inventory"] = [
            {"technician_id": "tech-1", "part_id": "p1", "part_number": "FLT-16",
             "part_name": "Air Filter", "unit_price": 12, "qty_on_hand": 4},
        ]

        inventory = await TicketService(ticket_db).get_truck_inventory("tech-1")

        assert inventory[0]["name"] == "Air Filter (4 on truck)"

    @pytest.mark.asyncio
    async def test_truck_inventory_falls_back_to_catalog(self, ticket_db):
        ticket_db.fail("vw_technician_truck_inventory", "select")

        inventory = await TicketService(ticket_db).get_truck_inventory("tech-1")

        assert [p["name"] for p in inventory] == ["Air Filter", "Capacitor"]
