"""
AHS Warranty Billing Endpoints

Settings, billing breakdown and invoice creation for AHS tickets.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from intelliservice.models.schemas import AHSSettingUpdate
from intelliservice.services.ahs_invoices import AHSInvoiceService
from intelliservice.services.ahs_settings import AHSSettingsService, setting_display_name, settings_to_dict
from intelliservice.services.supabase_client import get_current_user_id, get_supabase

router = APIRouter()


def get_settings_service(db: Client = Depends(get_supabase)) -> AHSSettingsService:
    return AHSSettingsService(db)


def get_invoice_service(db: Client = Depends(get_supabase)) -> AHSInvoiceService:
    return AHSInvoiceService(db)


@router.get("/settings")
async def get_settings(service: AHSSettingsService = Depends(get_settings_service)):
    try:
        return settings_to_dict(await service.get_defaults())
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/settings")
async def update_setting(
    request: AHSSettingUpdate,
    user_id: str = Depends(get_current_user_id),
    service: AHSSettingsService = Depends(get_settings_service)
):
    """Update one AHS setting (audited)"""
    try:
        await service.update_setting(request.key, request.value, user_id)
        return {"status": "updated", "key": request.key, "label": setting_display_name(request.key)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/settings/history")
async def get_settings_history(service: AHSSettingsService = Depends(get_settings_service)):
    history = await service.get_settings_history()
    return {
        "history": [
            {**asdict(entry), "setting_label": setting_display_name(entry.setting_key)}
            for entry in history
        ]
    }


@router.get("/tickets/{ticket_id}/breakdown")
async def get_billing_breakdown(ticket_id: str, service: AHSInvoiceService = Depends(get_invoice_service)):
    """AHS vs customer totals for a ticket"""
    return asdict(await service.get_billing_breakdown(ticket_id))


@router.post("/tickets/{ticket_id}/invoices/ahs")
async def create_ahs_invoice(
    ticket_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AHSInvoiceService = Depends(get_invoice_service)
):
    """Create the AHS-payer invoice for a ticket"""
    result = await service.create_ahs_invoice(ticket_id, user_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return asdict(result)


@router.post("/tickets/{ticket_id}/invoices/customer")
async def create_customer_invoice(
    ticket_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AHSInvoiceService = Depends(get_invoice_service)
):
    """Create the customer-payer invoice for a ticket"""
    result = await service.create_customer_invoice(ticket_id, user_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return asdict(result)


@router.get("/tickets/{ticket_id}/invoices")
async def get_ticket_invoices(ticket_id: str, service: AHSInvoiceService = Depends(get_invoice_service)):
    return await service.get_ticket_invoices(ticket_id)
