from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.routers.auth_deps import get_current_principal, require_hr
from app.routers.leave import resolve_employee
from app.schemas.auth import Principal
from app.schemas.leave import (
    AllocationAdjustment,
    LeaveBalanceResponse,
    RolloverRequest,
    RolloverResponse,
)
from app.services.leave_balance_service import LeaveBalanceService

router = APIRouter(prefix="/leave-balance", tags=["leave-balance"])


@router.get("/me", response_model=LeaveBalanceResponse)
def get_my_balance(
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveBalanceService(db).get_balance(principal.employee_id, year)


@router.post("/rollover", response_model=RolloverResponse)
def rollover_leave_year(
    body: RolloverRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr()),
):
    created = LeaveBalanceService(db).rollover_year(principal, body.year)
    return RolloverResponse(
        year=body.year,
        created=len(created),
        employee_ids=[b.employee_id for b in created],
    )


@router.get("/{employee_id}", response_model=LeaveBalanceResponse)
def get_employee_balance(
    employee_id: int,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    target = resolve_employee(principal, employee_id)
    return LeaveBalanceService(db).get_balance(target, year)


@router.put("/{employee_id}/allocation", response_model=LeaveBalanceResponse)
def adjust_allocation(
    employee_id: int,
    body: AllocationAdjustment,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveBalanceService(db).adjust_allocation(
        principal, employee_id, body.leave_type, body.new_total, body.year
    )
