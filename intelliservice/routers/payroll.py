"""
Payroll Endpoints

Pay-period runs, per-employee details, deductions and processing.
"""

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from intelliservice.models.schemas import DeductionCreate, PayrollRunCreate
from intelliservice.services.payroll import PayrollService
from intelliservice.services.supabase_client import get_current_user_id, get_supabase

router = APIRouter()


def get_payroll_service(db: Client = Depends(get_supabase)) -> PayrollService:
    return PayrollService(db)


@router.get("/runs")
async def list_runs(service: PayrollService = Depends(get_payroll_service)):
    """Payroll runs, latest period first"""
    try:
        return {"runs": await service.list_runs()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/runs")
async def create_run(
    request: PayrollRunCreate,
    user_id: str = Depends(get_current_user_id),
    service: PayrollService = Depends(get_payroll_service)
):
    """
    Create a draft payroll run and generate employee pay lines

    Pay lines come from approved time logs in the period.
    """
    try:
        return await service.create_run(request.period_start, request.period_end, request.pay_date, user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/runs/{run_id}/details")
async def get_run_details(run_id: str, service: PayrollService = Depends(get_payroll_service)):
    try:
        return {"details": await service.get_run_details(run_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/runs/{run_id}/process")
async def process_run(
    run_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PayrollService = Depends(get_payroll_service)
):
    """Mark a draft run as paid. Cannot be undone."""
    try:
        return await service.process_payroll(run_id, user_id)
    except ValueError as e:
        status = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/deductions")
async def list_deductions(service: PayrollService = Depends(get_payroll_service)):
    try:
        return {"deductions": await service.list_deductions()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/deductions")
async def create_deduction(
    request: DeductionCreate,
    service: PayrollService = Depends(get_payroll_service)
):
    try:
        return await service.create_deduction(
            request.deduction_name,
            request.deduction_type,
            request.calculation_method,
            request.default_amount,
            request.is_pre_tax,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/employees")
async def list_employees(service: PayrollService = Depends(get_payroll_service)):
    """Technicians and dispatchers eligible for payroll"""
    try:
        return {"employees": await service.list_employees()}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
