"""
Technician Tracking Endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from intelliservice.services.supabase_client import get_supabase
from intelliservice.services.tracking import TrackingService

router = APIRouter()


@router.get("/technicians")
async def get_technicians(db: Client = Depends(get_supabase)):
    """
    Active technicians with latest location, status and open tickets

    For live updates subscribe to the "tracking" channel on /api/realtime/ws.
    """
    try:
        technicians = await TrackingService(db).load_technicians()
        return {
            "technicians": technicians,
            "active_jobs": sum(t["active_tickets"] for t in technicians),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
