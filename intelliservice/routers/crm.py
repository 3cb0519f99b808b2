"""
CRM Endpoints

Pipelines, sales pipeline, interactions, Customer 360, leads and prospects.
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from supabase import Client

from intelliservice.models.schemas import EstimateLost, InteractionCreate, LeadCreate, PipelineAdd, StageMove
from intelliservice.services.crm import CRMService
from intelliservice.services.supabase_client import get_current_user_id, get_supabase

router = APIRouter()


def get_crm_service(db: Client = Depends(get_supabase)) -> CRMService:
    return CRMService(db)


# =============================================================================
# PIPELINES
# =============================================================================

@router.get("/pipelines")
async def get_pipelines(service: CRMService = Depends(get_crm_service)):
    """Active pipelines with stages in order"""
    try:
        return {"pipelines": await service.get_pipelines()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/pipelines/default")
async def get_default_pipeline(service: CRMService = Depends(get_crm_service)):
    try:
        return {"pipeline": await service.get_default_pipeline()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/pipelines/{pipeline_id}")
async def get_pipeline(pipeline_id: str, service: CRMService = Depends(get_crm_service)):
    try:
        pipeline = await service.get_pipeline(pipeline_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    if pipeline is None:
        raise HTTPException(status_code=404, detail=f"Pipeline {pipeline_id} not found")
    return pipeline


@router.get("/sales-pipeline")
async def get_sales_pipeline(
    pipeline_id: Optional[str] = Query(None, description="Limit to one pipeline's stages"),
    service: CRMService = Depends(get_crm_service)
):
    try:
        return {"items": await service.get_sales_pipeline(pipeline_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/estimates/{estimate_id}/stage")
async def move_estimate(estimate_id: str, request: StageMove, service: CRMService = Depends(get_crm_service)):
    try:
        await service.move_estimate_to_stage(estimate_id, request.stage_id)
        return {"status": "moved", "estimate_id": estimate_id, "stage_id": request.stage_id}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/estimates/{estimate_id}/pipeline")
async def add_estimate_to_pipeline(estimate_id: str, request: PipelineAdd, service: CRMService = Depends(get_crm_service)):
    try:
        await service.add_estimate_to_pipeline(estimate_id, request.stage_id, request.expected_close_date)
        return {"status": "added", "estimate_id": estimate_id, "stage_id": request.stage_id}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/estimates/{estimate_id}/lost")
async def mark_estimate_lost(estimate_id: str, request: EstimateLost, service: CRMService = Depends(get_crm_service)):
    try:
        await service.mark_estimate_lost(estimate_id, request.reason, request.lost_stage_id)
        return {"status": "lost", "estimate_id": estimate_id}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# INTERACTIONS & CUSTOMER 360
# =============================================================================

@router.get("/customers/{customer_id}/interactions")
async def get_interactions(customer_id: str, service: CRMService = Depends(get_crm_service)):
    try:
        return {"interactions": await service.get_customer_interactions(customer_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/interactions")
async def create_interaction(
    request: InteractionCreate,
    user_id: str = Depends(get_current_user_id),
    service: CRMService = Depends(get_crm_service)
):
    try:
        return await service.create_interaction(request.dict(), user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/follow-ups")
async def get_follow_ups(
    days: int = Query(7, ge=1, le=365, description="Look-ahead window in days"),
    service: CRMService = Depends(get_crm_service)
):
    try:
        return {"follow_ups": await service.get_upcoming_follow_ups(days)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/customers/{customer_id}/timeline")
async def get_timeline(
    customer_id: str,
    limit: int = Query(50, ge=1, le=500),
    service: CRMService = Depends(get_crm_service)
):
    try:
        return {"timeline": await service.get_customer_timeline(customer_id, limit)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/customers/{customer_id}/360")
async def get_customer_360(customer_id: str, service: CRMService = Depends(get_crm_service)):
    """Customer record, stats, timeline and active equipment"""
    try:
        return asdict(await service.get_customer_360(customer_id))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# LEADS & OPPORTUNITIES
# =============================================================================

@router.get("/leads")
async def get_leads(service: CRMService = Depends(get_crm_service)):
    try:
        return {"leads": await service.get_leads_inbox()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/leads")
async def create_lead(request: LeadCreate, service: CRMService = Depends(get_crm_service)):
    try:
        return await service.create_lead(request.dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/leads/{customer_id}/convert")
async def convert_lead(customer_id: str, service: CRMService = Depends(get_crm_service)):
    try:
        await service.convert_lead(customer_id)
        return {"status": "converted", "customer_id": customer_id}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/opportunities")
async def get_opportunities(service: CRMService = Depends(get_crm_service)):
    try:
        return {"opportunities": await service.get_sales_opportunities()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/prospects")
async def get_prospects(service: CRMService = Depends(get_crm_service)):
    """Customers flagged for equipment replacement"""
    try:
        return {"prospects": await service.get_prospects()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
