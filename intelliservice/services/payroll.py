"""
Payroll Service

Pay-period runs built from approved time logs.

Pay rules:
    regular pay  = regular hours  * HOURLY_RATE
    overtime pay = overtime hours * HOURLY_RATE * OVERTIME_MULTIPLIER
    deductions   = active rules only; percentage of gross or fixed amount
    net pay      = gross - deductions

Only employees with hours in the period get a detail row.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from intelliservice.models.enums import DeductionMethod, PayrollRunStatus, TimeType
from intelliservice.reports.base import to_number
from intelliservice.services.supabase_client import first_row, get_supabase, is_unique_violation

logger = logging.getLogger(__name__)

# Flat rate for every employee; not read from profiles
HOURLY_RATE = 25.0
OVERTIME_MULTIPLIER = 1.5

MAX_RUN_NUMBER_ATTEMPTS = 5

PAYROLL_ROLES = ["technician", "dispatcher"]


@dataclass
class EmployeeHours:
    regular_hours: float = 0.0
    overtime_hours: float = 0.0

    @property
    def total(self) -> float:
        return self.regular_hours + self.overtime_hours


@dataclass
class PayrollLine:
    """One employee's pay for a run"""
    user_id: str
    regular_hours: float
    overtime_hours: float
    regular_pay: float
    overtime_pay: float
    gross_pay: float
    total_deductions: float
    net_pay: float

    def to_record(self, payroll_run_id: str) -> Dict[str, Any]:
        return {
            "payroll_run_id": payroll_run_id,
            "user_id": self.user_id,
            "regular_hours": self.regular_hours,
            "overtime_hours": self.overtime_hours,
            "regular_pay": self.regular_pay,
            "overtime_pay": self.overtime_pay,
            "gross_pay": self.gross_pay,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
        }


@dataclass
class PayrollTotals:
    total_gross_pay: float = 0.0
    total_deductions: float = 0.0
    total_net_pay: float = 0.0
    employee_count: int = 0

    def to_record(self) -> Dict[str, Any]:
        return {
            "total_gross_pay": self.total_gross_pay,
            "total_deductions": self.total_deductions,
            "total_net_pay": self.total_net_pay,
            "employee_count": self.employee_count,
        }


@dataclass
class PayrollComputation:
    lines: List[PayrollLine] = field(default_factory=list)
    totals: PayrollTotals = field(default_factory=PayrollTotals)


# ============== Pure Calculations ==============

def accumulate_hours(time_logs: List[dict]) -> Dict[str, EmployeeHours]:
    """Sum regular and overtime hours per user_id"""
    hours: Dict[str, EmployeeHours] = defaultdict(EmployeeHours)
    for log in time_logs or []:
        entry = hours[log.get("user_id")]
        logged = to_number(log.get("total_hours"))
        if log.get("time_type") == TimeType.OVERTIME.value:
            entry.overtime_hours += logged
        else:
            entry.regular_hours += logged
    return dict(hours)


def calculate_deductions(gross_pay: float, deductions: List[dict]) -> float:
    """
    Total deductions for a gross amount.

    >>> calculate_deductions(1000, [{"is_active": True, "calculation_method": "percentage", "default_amount": 10}])
    100.0
    """
    total = 0.0
    for deduction in deductions or []:
        if not deduction.get("is_active"):
            continue
        amount = to_number(deduction.get("default_amount"))
        if deduction.get("calculation_method") == DeductionMethod.PERCENTAGE.value:
            total += gross_pay * amount / 100
        else:
            total += amount
    return total


def calculate_employee_pay(user_id: str, hours: EmployeeHours, deductions: List[dict]) -> PayrollLine:
    regular_pay = hours.regular_hours * HOURLY_RATE
    overtime_pay = hours.overtime_hours * HOURLY_RATE * OVERTIME_MULTIPLIER
    gross_pay = regular_pay + overtime_pay
    total_deductions = calculate_deductions(gross_pay, deductions)

    return PayrollLine(
        user_id=user_id,
        regular_hours=hours.regular_hours,
        overtime_hours=hours.overtime_hours,
        regular_pay=regular_pay,
        overtime_pay=overtime_pay,
        gross_pay=gross_pay,
        total_deductions=total_deductions,
        net_pay=gross_pay - total_deductions,
    )


def build_payroll_details(
    employees: List[dict],
    time_logs: List[dict],
    deductions: List[dict]
) -> PayrollComputation:
    """Pay lines for employees with hours, plus run totals"""
    hours_by_user = accumulate_hours(time_logs)
    computation = PayrollComputation()

    for employee in employees or []:
        hours = hours_by_user.get(employee.get("id"))
        if hours is None or hours.total <= 0:
            continue

        line = calculate_employee_pay(employee["id"], hours, deductions)
        computation.lines.append(line)
        computation.totals.total_gross_pay += line.gross_pay
        computation.totals.total_deductions += line.total_deductions
        computation.totals.total_net_pay += line.net_pay
        computation.totals.employee_count += 1

    return computation


def next_run_number(existing_count: int, year: int) -> str:
    """PR-YYYY-NNNN, numbered from the count of existing runs"""
    return f"PR-{year}-{existing_count + 1:04d}"


# ============== Service ==============

class PayrollService:
    """Payroll runs, details and deduction rules"""

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase()

    async def list_runs(self) -> List[dict]:
        result = self.db.table("payroll_runs") \
            .select("*") \
            .order("period_start_date", desc=True) \
            .execute()
        return result.data or []

    async def get_run(self, run_id: str) -> dict:
        result = self.db.table("payroll_runs") \
            .select("*") \
            .eq("id", run_id) \
            .maybe_single() \
            .execute()
        run = first_row(result)
        if not run:
            raise ValueError(f"Payroll run {run_id} not found")
        return run

    async def get_run_details(self, run_id: str) -> List[dict]:
        result = self.db.table("payroll_details") \
            .select("*, profiles(full_name)") \
            .eq("payroll_run_id", run_id) \
            .execute()
        details = result.data or []
        return sorted(details, key=lambda d: ((d.get("profiles") or {}).get("full_name") or ""))

    async def list_deductions(self) -> List[dict]:
        result = self.db.table("payroll_deductions") \
            .select("*") \
            .order("deduction_name") \
            .execute()
        return result.data or []

    async def list_employees(self) -> List[dict]:
        result = self.db.table("profiles") \
            .select("*") \
            .in_("role", PAYROLL_ROLES) \
            .order("full_name") \
            .execute()
        return result.data or []

    async def create_run(
        self,
        period_start: str,
        period_end: str,
        pay_date: str,
        user_id: str,
        now: Optional[datetime] = None
    ) -> dict:
        """
        Create a draft run and generate its detail rows.

        The run number is derived from the run count; a collision on the
        unique run_number re-counts and retries.
        """
        if period_end < period_start:
            raise ValueError("Period end is before period start")

        now = now or datetime.now(timezone.utc)
        run = None

        for attempt in range(MAX_RUN_NUMBER_ATTEMPTS):
            existing = await self.list_runs()
            run_number = next_run_number(len(existing) + attempt, now.year)
            try:
                result = self.db.table("payroll_runs") \
                    .insert({
                        "run_number": run_number,
                        "period_start_date": period_start,
                        "period_end_date": period_end,
                        "pay_date": pay_date,
                        "status": PayrollRunStatus.DRAFT.value,
                        "processed_by": user_id,
                    }) \
                    .execute()
            except Exception as e:
                if is_unique_violation(e):
                    logger.warning(f"[Payroll] Run number {run_number} taken, retrying")
                    continue
                raise
            run = first_row(result)
            break

        if run is None:
            raise RuntimeError("Could not allocate a payroll run number")

        logger.info(f"[Payroll] Created run {run.get('run_number')} ({period_start} - {period_end})")

        totals = await self.generate_details(run)
        run.update(totals.to_record())
        return run

    async def generate_details(self, run: dict) -> PayrollTotals:
        """Insert a detail row per paid employee and store the run totals"""
        logs = self.db.table("time_logs") \
            .select("user_id, total_hours, time_type") \
            .gte("clock_in_time", run["period_start_date"]) \
            .lte("clock_in_time", run["period_end_date"]) \
            .eq("status", "approved") \
            .execute()

        employees = await self.list_employees()
        deductions = await self.list_deductions()

        computation = build_payroll_details(employees, logs.data or [], deductions)

        for line in computation.lines:
            try:
                self.db.table("payroll_details").insert(line.to_record(run["id"])).execute()
            except Exception as e:
                logger.error(f"[Payroll] Error creating payroll detail for {line.user_id}: {e}")

        self.db.table("payroll_runs") \
            .update(computation.totals.to_record()) \
            .eq("id", run["id"]) \
            .execute()

        logger.info(
            f"[Payroll] Run {run['id']}: {computation.totals.employee_count} employees, "
            f"gross ${computation.totals.total_gross_pay:.2f}"
        )
        return computation.totals

    async def create_deduction(
        self,
        deduction_name: str,
        deduction_type: str,
        calculation_method: str,
        default_amount: float,
        is_pre_tax: bool = True
    ) -> dict:
        if calculation_method not in [m.value for m in DeductionMethod]:
            raise ValueError(f"Unknown calculation method: {calculation_method}")

        result = self.db.table("payroll_deductions") \
            .insert({
                "deduction_name": deduction_name,
                "deduction_type": deduction_type,
                "calculation_method": calculation_method,
                "default_amount": default_amount,
                "is_pre_tax": is_pre_tax,
                "is_active": True,
            }) \
            .execute()
        return first_row(result)

    async def process_payroll(self, run_id: str, user_id: str, now: Optional[datetime] = None) -> dict:
        """Mark a draft run paid. Any other status is refused."""
        run = await self.get_run(run_id)
        status = run.get("status")
        if status != PayrollRunStatus.DRAFT.value:
            raise ValueError(f"Payroll run {run.get('run_number') or run_id} is {status}, only draft runs can be processed")

        now = now or datetime.now(timezone.utc)
        update = {
            "status": PayrollRunStatus.PAID.value,
            "approved_by": user_id,
            "approved_at": now.isoformat(),
        }
        self.db.table("payroll_runs").update(update).eq("id", run_id).execute()

        logger.info(f"[Payroll] Processed run {run.get('run_number') or run_id}")
        run.update(update)
        return run
