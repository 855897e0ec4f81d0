"""
Derived-state rules.

Every stored value that is computed from other fields (leave day counts,
ledger remaining/total-taken, worked hours, attendance status, gross/net pay)
is produced here by plain functions. Services call them explicitly before
committing; nothing is recomputed behind their back on flush.
"""
from datetime import date, datetime
from typing import Optional

from app.core.config import settings
from app.models.attendance import AttendanceStatus
from app.models.leave_balance import LEDGER_CATEGORIES, LeaveAllocation, LeaveBalance
from app.models.payroll import Allowances, Deductions

MIN_LEAVE_DAYS = 0.5


# --- Leave ---

def compute_leave_days(start_date: date, end_date: date) -> float:
    """Inclusive calendar days, never less than half a day."""
    return max(MIN_LEAVE_DAYS, float((end_date - start_date).days + 1))


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Closed intervals: touching endpoints overlap."""
    return start_a <= end_b and end_a >= start_b


def clip_days(start: date, end: date, window_start: date, window_end: date) -> int:
    """Number of calendar days of [start, end] falling inside the window."""
    lo = max(start, window_start)
    hi = min(end, window_end)
    return max(0, (hi - lo).days + 1)


# --- Ledger ---

def recompute_allocation(allocation: LeaveAllocation) -> LeaveAllocation:
    total = max(0.0, float(allocation.total or 0))
    used = max(0.0, float(allocation.used or 0))
    return LeaveAllocation(total=total, used=used, remaining=max(0.0, total - used))


def recompute_ledger(balance: LeaveBalance, now: Optional[datetime] = None) -> LeaveBalance:
    """Refresh every category's remaining and the denormalized total taken."""
    taken = 0.0
    for leave_type in LEDGER_CATEGORIES:
        allocation = recompute_allocation(balance.allocation(leave_type))
        balance.set_allocation(leave_type, allocation)
        taken += allocation.used
    balance.total_leave_taken = taken
    if now is not None:
        balance.last_updated = now
    return balance


# --- Attendance ---

def compute_worked_hours(check_in: datetime, check_out: datetime) -> float:
    hours = (check_out - check_in).total_seconds() / 3600
    return max(0.0, round(hours, 2))


def derive_attendance_status(working_hours: float) -> AttendanceStatus:
    if working_hours >= settings.attendance.full_day_hours:
        return AttendanceStatus.PRESENT
    if working_hours >= settings.attendance.half_day_hours:
        return AttendanceStatus.HALF_DAY
    return AttendanceStatus.ABSENT


def should_rederive_status(status: str, status_provisional: bool) -> bool:
    # Explicitly assigned Present/Half-day/Leave are left alone
    return status_provisional or status == AttendanceStatus.ABSENT.value


# --- Payroll ---

def compute_gross_salary(base_salary: float, allowances: Allowances) -> float:
    return round(base_salary + allowances.total, 2)


def compute_net_salary(
    gross_salary: float,
    deductions: Deductions,
    total_days: Optional[int],
    unpaid_leave_days: float,
) -> float:
    net = gross_salary - deductions.total
    if total_days and unpaid_leave_days:
        per_day = gross_salary / total_days
        net -= per_day * unpaid_leave_days
    return max(0.0, round(net, 2))
