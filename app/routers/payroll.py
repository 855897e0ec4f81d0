"""
Payroll Router

Handles HTTP endpoints for payroll operations.
All business logic is delegated to the payroll service layer.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.routers.auth_deps import get_current_principal, require_hr
from app.routers.leave import resolve_employee
from app.schemas.auth import Principal
from app.schemas.payroll import (
    PaymentMetadataUpdate,
    PayRequest,
    PayrollCreate,
    PayrollResponse,
    PayrollUpdate,
    YearlySummary,
)
from app.services import payroll_service

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post("", response_model=PayrollResponse, status_code=201)
def generate_payroll(
    body: PayrollCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr()),
):
    """
    Generate the payroll record for one employee and month.
    Day counts left out of the body are derived from attendance and leave.
    """
    return payroll_service.generate_payroll(
        db,
        principal,
        employee_id=body.employee_id,
        month=body.month,
        year=body.year,
        base_salary=body.base_salary,
        allowances=body.allowances.model_dump(),
        deductions=body.deductions.model_dump(),
        total_days=body.total_days,
        unpaid_leave_days=body.unpaid_leave_days,
        paid_leave_days=body.paid_leave_days,
        working_days=body.working_days,
        payment_method=body.payment_method.value,
        bank_account=body.bank_account.model_dump(exclude_none=True) if body.bank_account else None,
        notes=body.notes,
    )


@router.get("/employee/{employee_id}", response_model=List[PayrollResponse])
def get_payroll_history(
    employee_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    target = resolve_employee(principal, employee_id)
    return payroll_service.get_employee_payroll_history(db, target)


@router.get("/summary/{employee_id}", response_model=YearlySummary)
def get_yearly_summary(
    employee_id: int,
    year: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    target = resolve_employee(principal, employee_id)
    return payroll_service.get_yearly_summary(db, target, year)


@router.get("/{payroll_id}", response_model=PayrollResponse)
def get_payroll(
    payroll_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    payroll = payroll_service.get_payroll(db, payroll_id)
    resolve_employee(principal, payroll.employee_id)
    return payroll


@router.patch("/{payroll_id}", response_model=PayrollResponse)
def update_payroll(
    payroll_id: int,
    body: PayrollUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr()),
):
    changes = body.model_dump(exclude_unset=True, mode="json")
    if body.bank_account is not None:
        changes["bank_account"] = body.bank_account.model_dump(exclude_none=True)
    return payroll_service.update_payroll(db, principal, payroll_id, changes)


@router.post("/{payroll_id}/pay", response_model=PayrollResponse)
def mark_paid(
    payroll_id: int,
    body: PayRequest = PayRequest(),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr()),
):
    return payroll_service.mark_paid(db, principal, payroll_id, body.transaction_id, body.payment_date)


@router.patch("/{payroll_id}/metadata", response_model=PayrollResponse)
def update_payment_metadata(
    payroll_id: int,
    body: PaymentMetadataUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr()),
):
    return payroll_service.update_payment_metadata(db, principal, payroll_id, body.notes, body.salary_slip_url)
