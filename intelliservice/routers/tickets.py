"""
Technician Ticket Endpoints

Work timer, ticket lists and details, updates, parts and photos.
All endpoints act as the authenticated technician.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from supabase import Client

from intelliservice.models.schemas import PartUsedCreate, TicketUpdateCreate, WorkEnd
from intelliservice.services.supabase_client import get_current_user_id, get_supabase
from intelliservice.services.tickets import TicketService

router = APIRouter()


def get_ticket_service(db: Client = Depends(get_supabase)) -> TicketService:
    return TicketService(db)


@router.get("/mine")
async def list_my_tickets(
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    """Open, scheduled and in-progress tickets by schedule"""
    try:
        return {"tickets": await service.list_open_tickets(tech_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/mine/completed")
async def list_my_completed_tickets(
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    try:
        return {"tickets": await service.list_completed_tickets(tech_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/timer")
async def get_active_timer(
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    try:
        return {"timer": await service.get_active_timer(tech_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/truck-inventory")
async def get_truck_inventory(
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    try:
        return {"parts": await service.get_truck_inventory(tech_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{ticket_id}")
async def get_ticket_details(ticket_id: str, service: TicketService = Depends(get_ticket_service)):
    """Updates, photos and parts used for a ticket"""
    try:
        return await service.get_ticket_details(ticket_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{ticket_id}/onsite-progress")
async def get_onsite_progress(ticket_id: str, service: TicketService = Depends(get_ticket_service)):
    try:
        return {"progress": await service.get_onsite_progress(ticket_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{ticket_id}/start")
async def start_work(
    ticket_id: str,
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    """Start timing on-site work (one ticket at a time)"""
    try:
        return await service.start_work(tech_id, ticket_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{ticket_id}/end")
async def end_work(
    ticket_id: str,
    request: WorkEnd,
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    try:
        return await service.end_work(tech_id, ticket_id, request.mark_complete)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{ticket_id}/updates")
async def add_update(
    ticket_id: str,
    request: TicketUpdateCreate,
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    try:
        await service.add_update(
            ticket_id,
            tech_id,
            request.update_type,
            request.notes,
            request.progress_percent,
            request.status,
        )
        return {"status": "created"}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{ticket_id}/parts")
async def add_part_used(
    ticket_id: str,
    request: PartUsedCreate,
    tech_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    try:
        return await service.add_part_used(ticket_id, tech_id, request.part_id, request.quantity, request.notes)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{ticket_id}/photos")
async def upload_photo(
    ticket_id: str,
    file: UploadFile = File(...),
    photo_type: str = Form("during"),
    caption: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    service: TicketService = Depends(get_ticket_service)
):
    """Upload a ticket photo to storage and record it"""
    try:
        content = await file.read()
        return await service.upload_photo(
            ticket_id,
            user_id,
            file.filename or "photo.jpg",
            content,
            file.content_type,
            photo_type,
            caption,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
