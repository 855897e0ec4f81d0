"""
Attendance Router

Punch endpoints are rate limited per client address; everything else is a
thin wrapper over AttendanceService.
"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.limiter import limiter
from app.core.timeutils import local_today
from app.database import get_db
from app.routers.auth_deps import get_current_principal
from app.routers.leave import resolve_employee
from app.schemas.attendance import (
    AttendanceResponse,
    AttendanceStatusStats,
    MarkLeaveRequest,
    MarkLeaveResponse,
    PunchRequest,
    StatusOverride,
)
from app.schemas.auth import Principal
from app.services.attendance_service import AttendanceService

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/check-in", response_model=AttendanceResponse, status_code=201)
@limiter.limit("10/minute")
def check_in(
    request: Request,
    body: PunchRequest = PunchRequest(),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return AttendanceService(db).check_in(principal, body.timestamp, body.latitude, body.longitude)


@router.post("/check-out", response_model=AttendanceResponse)
@limiter.limit("10/minute")
def check_out(
    request: Request,
    body: PunchRequest = PunchRequest(),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return AttendanceService(db).check_out(principal, body.timestamp, body.latitude, body.longitude)


@router.put("/{record_id}/status", response_model=AttendanceResponse)
def override_status(
    record_id: int,
    body: StatusOverride,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return AttendanceService(db).admin_override_status(principal, record_id, body.status, body.remarks)


@router.post("/mark-leave", response_model=MarkLeaveResponse)
def mark_leave_days(
    body: MarkLeaveRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return AttendanceService(db).mark_leave_days(principal, body.employee_id, body.start_date, body.end_date)


@router.delete("/{record_id}", status_code=204)
def delete_record(
    record_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    AttendanceService(db).soft_delete(principal, record_id)


@router.get("/stats", response_model=Dict[str, AttendanceStatusStats])
def get_attendance_stats(
    month: Optional[int] = None,
    year: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    today = local_today()
    target = resolve_employee(principal, employee_id)
    return AttendanceService(db).get_attendance_stats(target, month or today.month, year or today.year)
