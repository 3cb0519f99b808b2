"""
Pydantic Models for Request Validation
"""

from pydantic import BaseModel, Field
from typing import Optional


# Payroll Models
class PayrollRunCreate(BaseModel):
    """Create a draft payroll run for a pay period"""
    period_start: str = Field(..., description="Period start date (YYYY-MM-DD)")
    period_end: str = Field(..., description="Period end date (YYYY-MM-DD)")
    pay_date: str = Field(..., description="Pay date (YYYY-MM-DD)")


class DeductionCreate(BaseModel):
    """Create a payroll deduction rule"""
    deduction_name: str
    deduction_type: str = Field(default="tax", description="tax, benefit, garnishment, other")
    calculation_method: str = Field(default="percentage", description="percentage or fixed")
    default_amount: float = Field(..., ge=0)
    is_pre_tax: bool = True


# AHS Models
class AHSSettingUpdate(BaseModel):
    """Update one AHS accounting setting"""
    key: str = Field(..., description="ahs_default_diagnosis_fee, ahs_default_labor_rate, ahs_bill_to_customer_id")
    value: str


# CRM Models
class StageMove(BaseModel):
    """Move an estimate to a pipeline stage"""
    stage_id: str


class PipelineAdd(BaseModel):
    """Add an estimate to a pipeline at a stage"""
    stage_id: str
    expected_close_date: Optional[str] = None


class EstimateLost(BaseModel):
    """Mark an estimate as lost"""
    reason: str
    lost_stage_id: str


class InteractionCreate(BaseModel):
    """Log a customer interaction"""
    customer_id: str
    interaction_type: str = Field(..., description="call, email, sms, meeting, note, site_visit")
    direction: Optional[str] = Field(None, description="inbound or outbound")
    subject: Optional[str] = None
    notes: Optional[str] = None
    duration_minutes: Optional[int] = None
    outcome: Optional[str] = None
    follow_up_date: Optional[str] = None
    related_ticket_id: Optional[str] = None
    related_estimate_id: Optional[str] = None


class LeadCreate(BaseModel):
    """Create a lead customer"""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    lead_source: Optional[str] = None


# Ticket Models
class WorkEnd(BaseModel):
    """End a work session on a ticket"""
    mark_complete: bool = False


class TicketUpdateCreate(BaseModel):
    """Post an update to a ticket (optionally changing its status)"""
    update_type: str = Field(default="progress_note")
    notes: Optional[str] = None
    progress_percent: int = Field(default=0, ge=0, le=100)
    status: Optional[str] = None


class PartUsedCreate(BaseModel):
    """Record a part used on a ticket"""
    part_id: str
    quantity: float = Field(default=1, gt=0)
    notes: Optional[str] = None
