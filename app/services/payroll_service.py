"""
Payroll Service Layer

This module provides the business logic layer for payroll operations.
Routers stay focused on HTTP request/response handling; every rule about
salary derivation and payment state lives here.

Architecture:
- Router -> Service (this module) -> Models
- Gross/net pay is derived by app.services.derivations before every commit
- A record is editable only while Pending or On Hold, and is stamped as
  processed exactly once, the first time it is paid
"""
import calendar
import logging
from dataclasses import asdict, fields
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    DuplicatePeriodError,
    ImmutableRecordError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.security import encrypt_data, sanitize_input
from app.core.timeutils import utc_now
from app.models.activity import ActivityAction, ResourceType
from app.models.attendance import AttendanceRecord, AttendanceStatus
from app.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from app.models.notification import NotificationType
from app.models.payroll import (
    PAYABLE_STATUSES,
    Allowances,
    Deductions,
    PaymentMethod,
    PaymentStatus,
    Payroll,
)
from app.models.user import User
from app.schemas.auth import Principal
from app.services.audit import AuditService
from app.services.base import BaseService, HR_ROLES
from app.services.derivations import clip_days, compute_gross_salary, compute_net_salary
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)

C = TypeVar("C", Allowances, Deductions)

UPDATABLE_FIELDS = (
    "base_salary", "allowances", "deductions", "working_days", "total_days",
    "paid_leave_days", "unpaid_leave_days", "payment_status", "payment_method",
    "bank_account", "notes",
)
BANK_FIELDS = {
    "account_number": "bank_account_number",
    "account_holder_name": "bank_account_holder",
    "bank_name": "bank_name",
    "ifsc_code": "bank_ifsc_code",
    "branch": "bank_branch",
}


# --- helpers ---

def _components(cls: Type[C], value: Union[C, Mapping[str, float], None], base: Optional[C] = None) -> C:
    """Build an allowance/deduction set from a partial mapping laid over `base`."""
    if isinstance(value, cls):
        merged = asdict(value)
    else:
        merged = asdict(base) if base is not None else asdict(cls())
        known = {f.name for f in fields(cls)}
        for key, amount in (value or {}).items():
            if key not in known:
                raise ValidationError(
                    f"Unknown {cls.__name__.lower()} component '{key}'",
                    field=key, allowed=sorted(known),
                )
            merged[key] = amount
    for key, amount in merged.items():
        if amount is None or amount < 0:
            raise ValidationError(f"{key} must be zero or positive", field=key, value=amount, minimum=0)
    return cls(**{k: float(v) for k, v in merged.items()})


def _require_range(name: str, value: Optional[float], low: float, high: float):
    if value is None:
        return
    if not low <= value <= high:
        raise ValidationError(
            f"{name} must be between {low} and {high}",
            field=name, value=value, minimum=low, maximum=high,
        )


def _validate_period(month: int, year: int):
    _require_range("month", month, 1, 12)
    _require_range("year", year, 2020, 2100)


def _validate_counts(record_like: Mapping[str, Any]):
    base_salary = record_like.get("base_salary")
    if base_salary is None or base_salary < 0:
        raise ValidationError("base_salary must be zero or positive", field="base_salary", value=base_salary, minimum=0)
    _require_range("total_days", record_like.get("total_days"), 1, 31)
    _require_range("working_days", record_like.get("working_days"), 0, 31)
    _require_range("paid_leave_days", record_like.get("paid_leave_days"), 0, 31)
    _require_range("unpaid_leave_days", record_like.get("unpaid_leave_days"), 0, 31)
    total_days = record_like.get("total_days")
    unpaid = record_like.get("unpaid_leave_days") or 0
    if total_days is not None and unpaid > total_days:
        raise ValidationError(
            "Unpaid leave days cannot exceed total days in the period",
            field="unpaid_leave_days", value=unpaid, maximum=total_days,
        )


def _apply_bank_account(payroll: Payroll, bank_account: Optional[Mapping[str, Any]]):
    if not bank_account:
        return
    for key, value in bank_account.items():
        column = BANK_FIELDS.get(key)
        if column is None:
            raise ValidationError(f"Unknown bank account field '{key}'", field=key, allowed=sorted(BANK_FIELDS))
        if key == "account_number":
            value = encrypt_data(value)
        setattr(payroll, column, value)


def _recompute(payroll: Payroll) -> Payroll:
    payroll.gross_salary = compute_gross_salary(payroll.base_salary, payroll.allowances)
    payroll.net_salary = compute_net_salary(
        payroll.gross_salary, payroll.deductions, payroll.total_days, payroll.unpaid_leave_days or 0.0
    )
    return payroll


def get_payroll(db: Session, payroll_id: int, lock: bool = False) -> Payroll:
    stmt = select(Payroll).where(Payroll.id == payroll_id, Payroll.is_deleted == False)  # noqa: E712
    if lock:
        stmt = stmt.with_for_update()
    payroll = db.execute(stmt).scalar_one_or_none()
    if payroll is None:
        raise NotFoundError("Payroll record", payroll_id)
    return payroll


def find_period(db: Session, employee_id: int, month: int, year: int) -> Optional[Payroll]:
    return db.execute(
        select(Payroll).where(
            Payroll.employee_id == employee_id,
            Payroll.month == month,
            Payroll.year == year,
        )
    ).scalar_one_or_none()


# --- period totals ---

def collect_period_totals(db: Session, employee_id: int, month: int, year: int) -> Dict[str, float]:
    """
    Derive the counts payroll needs from attendance and approved leave.

    working_days counts Present as 1 and Half-day as 0.5. Leave days are
    approved leave clipped to the month, split into paid and unpaid.
    """
    _validate_period(month, year)
    total_days = calendar.monthrange(year, month)[1]
    first, last = date(year, month, 1), date(year, month, total_days)

    rows = db.execute(
        select(AttendanceRecord.status, func.count(AttendanceRecord.id)).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date >= first,
            AttendanceRecord.date <= last,
            AttendanceRecord.is_deleted == False,  # noqa: E712
        ).group_by(AttendanceRecord.status)
    ).all()
    counts = dict(rows)
    working_days = counts.get(AttendanceStatus.PRESENT.value, 0) + 0.5 * counts.get(AttendanceStatus.HALF_DAY.value, 0)

    leaves = db.execute(
        select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == LeaveStatus.APPROVED.value,
            LeaveRequest.is_deleted == False,  # noqa: E712
            LeaveRequest.start_date <= last,
            LeaveRequest.end_date >= first,
        )
    ).scalars().all()
    paid = unpaid = 0.0
    for leave in leaves:
        days = clip_days(leave.start_date, leave.end_date, first, last)
        if leave.leave_type == LeaveType.UNPAID.value:
            unpaid += days
        else:
            paid += days

    return {
        "total_days": total_days,
        "working_days": float(working_days),
        "paid_leave_days": paid,
        "unpaid_leave_days": unpaid,
    }


# --- operations ---

def generate_payroll(
    db: Session,
    actor: Principal,
    employee_id: int,
    month: int,
    year: int,
    base_salary: float,
    allowances: Union[Allowances, Mapping[str, float], None] = None,
    deductions: Union[Deductions, Mapping[str, float], None] = None,
    total_days: Optional[int] = None,
    unpaid_leave_days: Optional[float] = None,
    paid_leave_days: Optional[float] = None,
    working_days: Optional[float] = None,
    payment_method: str = PaymentMethod.BANK_TRANSFER.value,
    bank_account: Optional[Mapping[str, Any]] = None,
    notes: Optional[str] = None,
) -> Payroll:
    """
    Create the payroll record for one employee and month.

    Counts the caller leaves out are taken from collect_period_totals.

    Raises:
        DuplicatePeriodError: a record already exists for (employee, month, year)
        ValidationError: out-of-range amounts or counts
    """
    BaseService.require_role(actor, HR_ROLES, "generate payroll")
    _validate_period(month, year)
    allowances = _components(Allowances, allowances)
    deductions = _components(Deductions, deductions)
    try:
        method = PaymentMethod(payment_method).value
    except ValueError:
        raise ValidationError(
            f"Unknown payment method '{payment_method}'",
            field="payment_method", allowed=[m.value for m in PaymentMethod],
        )

    if db.get(User, employee_id) is None:
        raise NotFoundError("Employee", employee_id)
    existing = find_period(db, employee_id, month, year)
    if existing is not None:
        raise DuplicatePeriodError(
            f"Payroll for employee {employee_id} for {month}/{year} already exists",
            conflicting_id=existing.id, employee_id=employee_id, month=month, year=year,
        )

    if None in (total_days, unpaid_leave_days, paid_leave_days, working_days):
        derived = collect_period_totals(db, employee_id, month, year)
        total_days = derived["total_days"] if total_days is None else total_days
        unpaid_leave_days = derived["unpaid_leave_days"] if unpaid_leave_days is None else unpaid_leave_days
        paid_leave_days = derived["paid_leave_days"] if paid_leave_days is None else paid_leave_days
        working_days = derived["working_days"] if working_days is None else working_days

    counts = {
        "base_salary": base_salary,
        "total_days": total_days,
        "working_days": working_days,
        "paid_leave_days": paid_leave_days,
        "unpaid_leave_days": unpaid_leave_days,
    }
    _validate_counts(counts)

    payroll = Payroll(
        employee_id=employee_id,
        month=month,
        year=year,
        base_salary=float(base_salary),
        allowances=allowances,
        deductions=deductions,
        total_days=total_days,
        working_days=working_days,
        paid_leave_days=paid_leave_days,
        unpaid_leave_days=unpaid_leave_days,
        payment_status=PaymentStatus.PENDING.value,
        payment_method=method,
        notes=sanitize_input(notes) if notes else None,
    )
    _apply_bank_account(payroll, bank_account)
    _recompute(payroll)

    try:
        try:
            with db.begin_nested():
                db.add(payroll)
        except IntegrityError:
            existing = find_period(db, employee_id, month, year)
            raise DuplicatePeriodError(
                f"Payroll for employee {employee_id} for {month}/{year} already exists",
                conflicting_id=existing.id if existing else None,
                employee_id=employee_id, month=month, year=year,
            )

        AuditService.log(
            db,
            action=ActivityAction.PAYROLL_GENERATED,
            description=f"Generated payroll for employee {employee_id} for {month}/{year}",
            user_id=actor.employee_id,
            resource_type=ResourceType.PAYROLL,
            resource_id=payroll.id,
            details={"gross_salary": payroll.gross_salary, "net_salary": payroll.net_salary},
        )
        NotificationService.notify(
            db,
            employee_id,
            "Payslip Generated",
            f"Your payroll for {payroll.month_name} {year} has been generated.",
            NotificationType.PAYROLL.value,
            reference_type=ResourceType.PAYROLL.value,
            reference_id=payroll.id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Payroll {payroll.id} generated for employee {employee_id} ({month}/{year}): net {payroll.net_salary}")
    return payroll


def update_payroll(db: Session, actor: Principal, payroll_id: int, changes: Mapping[str, Any]) -> Payroll:
    """
    Change amounts, counts or payment details of a record that is still
    Pending or On Hold. Paying goes through mark_paid.
    """
    BaseService.require_role(actor, HR_ROLES, "update payroll")
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {sorted(unknown)}", field=sorted(unknown)[0])

    try:
        payroll = get_payroll(db, payroll_id, lock=True)
        if not payroll.can_be_modified():
            raise ImmutableRecordError(
                f"Payroll {payroll.id} cannot be modified in status {payroll.payment_status}",
                current_state=payroll.payment_status, payroll_id=payroll.id,
            )

        before = {"gross_salary": payroll.gross_salary, "net_salary": payroll.net_salary, "payment_status": payroll.payment_status}

        if "payment_status" in changes:
            try:
                status = PaymentStatus(changes["payment_status"])
            except ValueError:
                raise ValidationError(
                    f"Unknown payment status '{changes['payment_status']}'",
                    field="payment_status", allowed=[s.value for s in PaymentStatus],
                )
            if status == PaymentStatus.PAID:
                raise ValidationError("Use the pay operation to mark a payroll as paid", field="payment_status")
            payroll.payment_status = status.value
        if "payment_method" in changes:
            try:
                payroll.payment_method = PaymentMethod(changes["payment_method"]).value
            except ValueError:
                raise ValidationError(
                    f"Unknown payment method '{changes['payment_method']}'",
                    field="payment_method", allowed=[m.value for m in PaymentMethod],
                )
        if "allowances" in changes:
            payroll.allowances = _components(Allowances, changes["allowances"], base=payroll.allowances)
        if "deductions" in changes:
            payroll.deductions = _components(Deductions, changes["deductions"], base=payroll.deductions)

        counts = {
            key: changes.get(key, getattr(payroll, key))
            for key in ("base_salary", "total_days", "working_days", "paid_leave_days", "unpaid_leave_days")
        }
        _validate_counts(counts)
        for key, value in counts.items():
            setattr(payroll, key, value)

        _apply_bank_account(payroll, changes.get("bank_account"))
        if "notes" in changes:
            payroll.notes = sanitize_input(changes["notes"]) if changes["notes"] else None

        _recompute(payroll)
        db.flush()

        AuditService.log(
            db,
            action=ActivityAction.PAYROLL_UPDATED,
            description=f"Updated payroll {payroll.id}",
            user_id=actor.employee_id,
            resource_type=ResourceType.PAYROLL,
            resource_id=payroll.id,
            changes={
                "before": before,
                "after": {"gross_salary": payroll.gross_salary, "net_salary": payroll.net_salary, "payment_status": payroll.payment_status},
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return payroll


def mark_paid(
    db: Session,
    actor: Principal,
    payroll_id: int,
    transaction_id: Optional[str] = None,
    payment_date: Optional[datetime] = None,
) -> Payroll:
    """Move a record to Paid. processed_at is stamped only the first time."""
    BaseService.require_role(actor, HR_ROLES, "pay payroll")
    try:
        payroll = get_payroll(db, payroll_id, lock=True)
        if payroll.payment_status not in PAYABLE_STATUSES:
            raise InvalidStateError(
                f"Payroll {payroll.id} cannot be paid from status {payroll.payment_status}",
                current_state=payroll.payment_status, payroll_id=payroll.id,
                allowed=list(PAYABLE_STATUSES),
            )
        previous = payroll.payment_status
        now = utc_now()
        payroll.payment_status = PaymentStatus.PAID.value
        if payroll.processed_at is None:
            payroll.processed_at = now
            payroll.processed_by_id = actor.employee_id
        if payroll.payment_date is None:
            payroll.payment_date = payment_date or now
        if transaction_id:
            payroll.transaction_id = transaction_id.strip()
        db.flush()

        AuditService.log(
            db,
            action=ActivityAction.PAYROLL_PAID,
            description=f"Payroll {payroll.id} paid",
            user_id=actor.employee_id,
            resource_type=ResourceType.PAYROLL,
            resource_id=payroll.id,
            changes={"payment_status": {"from": previous, "to": payroll.payment_status}},
            details={"transaction_id": payroll.transaction_id, "net_salary": payroll.net_salary},
        )
        NotificationService.notify(
            db,
            payroll.employee_id,
            "Salary Paid",
            f"Your salary for {payroll.month_name} {payroll.year} ({payroll.net_salary:.2f}) has been paid.",
            NotificationType.PAYROLL.value,
            reference_type=ResourceType.PAYROLL.value,
            reference_id=payroll.id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Payroll {payroll.id} marked paid (transaction {payroll.transaction_id})")
    return payroll


def update_payment_metadata(
    db: Session,
    actor: Principal,
    payroll_id: int,
    notes: Optional[str] = None,
    salary_slip_url: Optional[str] = None,
) -> Payroll:
    """Notes and the salary slip link stay editable in every status."""
    BaseService.require_role(actor, HR_ROLES, "update payroll metadata")
    try:
        payroll = get_payroll(db, payroll_id, lock=True)
        if notes is not None:
            _require_range("notes length", len(notes), 0, 1000)
            payroll.notes = sanitize_input(notes)
        if salary_slip_url is not None:
            payroll.salary_slip_url = salary_slip_url.strip()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return payroll


def get_employee_payroll_history(db: Session, employee_id: int) -> List[Payroll]:
    return list(db.execute(
        select(Payroll).where(
            Payroll.employee_id == employee_id,
            Payroll.is_deleted == False,  # noqa: E712
        ).order_by(Payroll.year.desc(), Payroll.month.desc())
    ).scalars().all())


def get_yearly_summary(db: Session, employee_id: int, year: int) -> Dict[str, Any]:
    """Totals over the year's Paid records."""
    total_gross, total_net, months_paid = db.execute(
        select(
            func.coalesce(func.sum(Payroll.gross_salary), 0.0),
            func.coalesce(func.sum(Payroll.net_salary), 0.0),
            func.count(Payroll.id),
        ).where(
            Payroll.employee_id == employee_id,
            Payroll.year == year,
            Payroll.payment_status == PaymentStatus.PAID.value,
            Payroll.is_deleted == False,  # noqa: E712
        )
    ).one()
    return {
        "employee_id": employee_id,
        "year": year,
        "total_gross": round(float(total_gross), 2),
        "total_net": round(float(total_net), 2),
        "months_paid": months_paid,
    }
