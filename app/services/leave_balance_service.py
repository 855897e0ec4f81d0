"""
Leave Balance Ledger

One ledger row per (employee, year). Deductions and restorations run inside
the caller's transaction with the row locked, so two approvals for the same
employee cannot both spend the same remaining days.
"""
from dataclasses import asdict
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from app.core.timeutils import local_today, utc_now
from app.models.activity import ActivityAction, ResourceType
from app.models.leave_balance import LEDGER_CATEGORIES, LeaveAllocation, LeaveBalance
from app.models.leave_request import LeaveType
from app.models.user import User
from app.schemas.auth import Principal
from app.services.audit import AuditService
from app.services.base import BaseService, HR_ROLES
from app.services.derivations import recompute_ledger


def default_allocations() -> Dict[LeaveType, float]:
    leave = settings.leave
    return {
        LeaveType.PAID: leave.default_paid,
        LeaveType.SICK: leave.default_sick,
        LeaveType.CASUAL: leave.default_casual,
        LeaveType.MATERNITY: leave.default_maternity,
        LeaveType.PATERNITY: leave.default_paternity,
    }


def _new_balance(employee_id: int, year: int, totals: Dict[LeaveType, float], carry_forward: float = 0.0) -> LeaveBalance:
    balance = LeaveBalance(employee_id=employee_id, year=year, carry_forward=carry_forward)
    for leave_type in LEDGER_CATEGORIES:
        balance.set_allocation(leave_type, LeaveAllocation(total=totals.get(leave_type, 0.0)))
    return recompute_ledger(balance, utc_now())


class LeaveBalanceService(BaseService):
    """Per-employee, per-year leave allocation and consumption."""

    def _query(self, employee_id: int, year: int, lock: bool = False):
        stmt = select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_or_create(self, employee_id: int, year: Optional[int] = None, lock: bool = False) -> LeaveBalance:
        """
        Return the ledger for (employee, year), creating it with default
        allocations on first access. A concurrent creator losing the race on
        the unique key gets the winner's row.
        """
        year = year or local_today().year
        balance = self._query(employee_id, year, lock=lock)
        if balance is not None:
            return balance

        if self.db.get(User, employee_id) is None:
            raise NotFoundError("Employee", employee_id)

        try:
            with self.db.begin_nested():
                balance = _new_balance(employee_id, year, default_allocations())
                self.db.add(balance)
            self.log_info(f"Initialized leave balance for employee {employee_id}, year {year}")
            return balance
        except IntegrityError:
            self.log_info(f"Leave balance for employee {employee_id}/{year} created concurrently; reusing it")
            return self._query(employee_id, year, lock=lock)

    def get_balance(self, employee_id: int, year: Optional[int] = None) -> LeaveBalance:
        balance = self.get_or_create(employee_id, year)
        self.commit()
        return balance

    # --- mutations (caller commits unless commit=True) ---

    def deduct(self, employee_id: int, leave_type: LeaveType, days: float, year: Optional[int] = None, commit: bool = False) -> Optional[LeaveBalance]:
        """
        Spend `days` from the category. Unpaid leave never touches the ledger.
        Raises InsufficientBalanceError without mutating anything.
        """
        leave_type = LeaveType(leave_type)
        if leave_type == LeaveType.UNPAID:
            return None
        _check_days(days)

        balance = self.get_or_create(employee_id, year, lock=True)
        allocation = balance.allocation(leave_type)
        if allocation.remaining < days:
            raise InsufficientBalanceError(leave_type.value, allocation.remaining, days)

        balance.set_allocation(leave_type, LeaveAllocation(total=allocation.total, used=allocation.used + days))
        recompute_ledger(balance, utc_now())
        self.db.flush()
        if commit:
            self.commit()
        return balance

    def restore(self, employee_id: int, leave_type: LeaveType, days: float, year: Optional[int] = None, commit: bool = False) -> Optional[LeaveBalance]:
        """Give days back; over-restoration clamps `used` at zero."""
        leave_type = LeaveType(leave_type)
        if leave_type == LeaveType.UNPAID:
            return None
        _check_days(days)

        balance = self.get_or_create(employee_id, year, lock=True)
        allocation = balance.allocation(leave_type)
        balance.set_allocation(
            leave_type,
            LeaveAllocation(total=allocation.total, used=max(0.0, allocation.used - days)),
        )
        recompute_ledger(balance, utc_now())
        self.db.flush()
        if commit:
            self.commit()
        return balance

    def has_sufficient_balance(self, employee_id: int, leave_type: LeaveType, days: float, year: Optional[int] = None) -> bool:
        leave_type = LeaveType(leave_type)
        if leave_type == LeaveType.UNPAID:
            return True
        return self.get_or_create(employee_id, year).allocation(leave_type).remaining >= days

    def adjust_allocation(self, actor: Principal, employee_id: int, leave_type: LeaveType, new_total: float, year: Optional[int] = None) -> LeaveBalance:
        """Administrative override of a category's total."""
        self.require_role(actor, HR_ROLES, "adjust leave allocations")
        leave_type = LeaveType(leave_type)
        if leave_type == LeaveType.UNPAID:
            raise ValidationError("Unpaid leave has no allocation", field="leave_type")

        balance = self.get_or_create(employee_id, year, lock=True)
        before = balance.allocation(leave_type)
        balance.set_allocation(leave_type, LeaveAllocation(total=max(0.0, float(new_total)), used=before.used))
        recompute_ledger(balance, utc_now())
        after = balance.allocation(leave_type)

        AuditService.log(
            self.db,
            action=ActivityAction.LEAVE_BALANCE_ADJUSTED,
            description=f"{leave_type.value} allocation for employee {employee_id} set to {after.total}",
            user_id=actor.employee_id,
            resource_type=ResourceType.LEAVE_BALANCE,
            resource_id=balance.id,
            changes={"before": asdict(before), "after": asdict(after)},
        )
        self.commit()
        self.log_info(f"Adjusted {leave_type.value} allocation for employee {employee_id} to {after.total}")
        return balance

    def rollover_year(self, actor: Principal, year: int) -> List[LeaveBalance]:
        """
        Open `year` for every employee holding a ledger in `year - 1`.
        Paid leave gets the base allocation plus up to the carry-forward cap of
        last year's unused paid days; other categories reset to base.
        Employees already holding a `year` ledger are left untouched.
        """
        self.require_role(actor, HR_ROLES, "roll over leave balances")
        previous = self.db.execute(
            select(LeaveBalance).where(LeaveBalance.year == year - 1)
        ).scalars().all()
        existing = set(self.db.execute(
            select(LeaveBalance.employee_id).where(LeaveBalance.year == year)
        ).scalars().all())

        base = default_allocations()
        created = []
        for prev in previous:
            if prev.employee_id in existing:
                continue
            carry = min(prev.paid_leave.remaining, settings.leave.max_carry_forward)
            totals = dict(base)
            totals[LeaveType.PAID] = base[LeaveType.PAID] + carry
            balance = _new_balance(prev.employee_id, year, totals, carry_forward=carry)
            self.db.add(balance)
            created.append(balance)

        self.db.flush()
        AuditService.log(
            self.db,
            action=ActivityAction.LEAVE_BALANCE_ROLLOVER,
            description=f"Rolled over {len(created)} leave balances into {year}",
            user_id=actor.employee_id,
            resource_type=ResourceType.LEAVE_BALANCE,
            details={"year": year, "created": len(created), "skipped": len(previous) - len(created)},
        )
        self.commit()
        self.log_info(f"Leave rollover into {year}: {len(created)} created, {len(previous) - len(created)} skipped")
        return created


def _check_days(days: float):
    if days is None or days <= 0:
        raise ValidationError("Days must be greater than zero", field="days", value=days)
