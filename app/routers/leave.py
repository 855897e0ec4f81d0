"""
Leave Router

HTTP endpoints for the leave request lifecycle.
All business logic is delegated to LeaveService.
"""
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.core.timeutils import local_today
from app.database import get_db
from app.routers.auth_deps import get_current_principal
from app.schemas.auth import Principal
from app.schemas.leave import (
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveRequestUpdate,
    LeaveTypeStats,
)
from app.services.leave_service import LeaveService

router = APIRouter(prefix="/leave", tags=["leave"])


def resolve_employee(principal: Principal, employee_id: Optional[int]) -> int:
    """Employees see their own records; HR and Admin may look at anyone's."""
    if employee_id is None or employee_id == principal.employee_id:
        return principal.employee_id
    if not principal.is_hr:
        raise AccessDeniedError("You can only view your own records")
    return employee_id


@router.post("/requests", response_model=LeaveRequestResponse, status_code=201)
def submit_leave_request(
    body: LeaveRequestCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveService(db).submit(
        principal,
        leave_type=body.leave_type,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
        remarks=body.remarks,
        attachments=[a.model_dump(mode="json", exclude_none=True) for a in body.attachments],
    )


@router.get("/requests/{request_id}", response_model=LeaveRequestResponse)
def get_leave_request(
    request_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveService(db).get_visible_request(principal, request_id)


@router.patch("/requests/{request_id}", response_model=LeaveRequestResponse)
def edit_leave_request(
    request_id: int,
    body: LeaveRequestUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    changes = body.model_dump(exclude_unset=True)
    if body.attachments is not None:
        changes["attachments"] = [a.model_dump(mode="json", exclude_none=True) for a in body.attachments]
    return LeaveService(db).edit(principal, request_id, changes)


@router.post("/requests/{request_id}/approve", response_model=LeaveRequestResponse)
def approve_leave_request(
    request_id: int,
    body: LeaveDecision = LeaveDecision(),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveService(db).approve(principal, request_id, body.comment)


@router.post("/requests/{request_id}/reject", response_model=LeaveRequestResponse)
def reject_leave_request(
    request_id: int,
    body: LeaveDecision = LeaveDecision(),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveService(db).reject(principal, request_id, body.comment)


@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestResponse)
def cancel_leave_request(
    request_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return LeaveService(db).cancel(principal, request_id)


@router.get("/history", response_model=List[LeaveRequestResponse])
def get_leave_history(
    year: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    target = resolve_employee(principal, employee_id)
    return LeaveService(db).get_leave_history(target, year or local_today().year)


@router.get("/stats", response_model=Dict[str, LeaveTypeStats])
def get_leave_stats(
    year: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    target = resolve_employee(principal, employee_id)
    return LeaveService(db).get_leave_stats_by_type(target, year or local_today().year)
