import pytest

from app.core.exceptions import AccessDeniedError, InsufficientBalanceError, NotFoundError, ValidationError
from app.models.activity import ActivityLog
from app.models.leave_balance import LeaveBalance
from app.models.leave_request import LeaveType
from app.services.leave_balance_service import LeaveBalanceService

YEAR = 2030


def test_first_access_creates_default_ledger(db_session, employee):
    balance = LeaveBalanceService(db_session).get_balance(employee.id, YEAR)

    assert balance.year == YEAR
    assert (balance.paid_leave.total, balance.paid_leave.remaining) == (12, 12)
    assert balance.sick_leave.total == 7
    assert balance.casual_leave.total == 10
    assert balance.maternity_leave.total == 0
    assert balance.total_leave_taken == 0
    assert balance.total_allocated == 29
    assert balance.total_available == 29


def test_get_or_create_is_idempotent(db_session, employee):
    service = LeaveBalanceService(db_session)
    first = service.get_balance(employee.id, YEAR)
    second = service.get_balance(employee.id, YEAR)
    assert first.id == second.id
    assert db_session.query(LeaveBalance).filter_by(employee_id=employee.id).count() == 1


def test_unknown_employee(db_session):
    with pytest.raises(NotFoundError):
        LeaveBalanceService(db_session).get_or_create(9999, YEAR)


def test_deduct_and_restore(db_session, employee):
    service = LeaveBalanceService(db_session)
    service.deduct(employee.id, LeaveType.PAID, 3, year=YEAR, commit=True)

    balance = service.get_balance(employee.id, YEAR)
    assert balance.paid_leave.used == 3
    assert balance.paid_leave.remaining == 9
    assert balance.total_leave_taken == 3

    service.restore(employee.id, LeaveType.PAID, 3, year=YEAR, commit=True)
    balance = service.get_balance(employee.id, YEAR)
    assert balance.paid_leave.used == 0
    assert balance.paid_leave.remaining == 12
    assert balance.total_leave_taken == 0


def test_restore_never_goes_below_zero(db_session, employee):
    service = LeaveBalanceService(db_session)
    service.deduct(employee.id, LeaveType.SICK, 2, year=YEAR, commit=True)
    service.restore(employee.id, LeaveType.SICK, 5, year=YEAR, commit=True)

    balance = service.get_balance(employee.id, YEAR)
    assert balance.sick_leave.used == 0
    assert balance.sick_leave.remaining == 7


def test_insufficient_balance_leaves_ledger_untouched(db_session, employee):
    service = LeaveBalanceService(db_session)
    with pytest.raises(InsufficientBalanceError) as exc:
        service.deduct(employee.id, LeaveType.SICK, 8, year=YEAR)
    db_session.rollback()

    assert exc.value.details == {"leave_type": "Sick", "remaining": 7.0, "requested": 8}
    balance = service.get_balance(employee.id, YEAR)
    assert balance.sick_leave.used == 0
    assert balance.sick_leave.remaining == 7


def test_unpaid_leave_bypasses_ledger(db_session, employee):
    service = LeaveBalanceService(db_session)
    assert service.deduct(employee.id, LeaveType.UNPAID, 40, year=YEAR) is None
    assert service.has_sufficient_balance(employee.id, LeaveType.UNPAID, 400, year=YEAR)


def test_deduct_rejects_non_positive_days(db_session, employee):
    with pytest.raises(ValidationError):
        LeaveBalanceService(db_session).deduct(employee.id, LeaveType.PAID, 0, year=YEAR)


def test_adjust_allocation(db_session, employee, hr_user, principal_for):
    service = LeaveBalanceService(db_session)
    service.deduct(employee.id, LeaveType.CASUAL, 4, year=YEAR, commit=True)

    balance = service.adjust_allocation(principal_for(hr_user), employee.id, LeaveType.CASUAL, 15, year=YEAR)

    assert balance.casual_leave.total == 15
    assert balance.casual_leave.used == 4
    assert balance.casual_leave.remaining == 11
    entry = db_session.query(ActivityLog).filter_by(action="LEAVE_BALANCE_ADJUSTED").one()
    assert entry.changes["before"]["total"] == 10
    assert entry.changes["after"]["total"] == 15


def test_adjust_below_used_clamps_remaining(db_session, employee, hr_user, principal_for):
    service = LeaveBalanceService(db_session)
    service.deduct(employee.id, LeaveType.PAID, 5, year=YEAR, commit=True)

    balance = service.adjust_allocation(principal_for(hr_user), employee.id, LeaveType.PAID, 2, year=YEAR)

    assert balance.paid_leave.total == 2
    assert balance.paid_leave.remaining == 0


def test_adjust_requires_hr(db_session, employee, principal_for):
    with pytest.raises(AccessDeniedError):
        LeaveBalanceService(db_session).adjust_allocation(principal_for(employee), employee.id, LeaveType.PAID, 30, year=YEAR)


def test_adjust_rejects_unpaid(db_session, employee, hr_user, principal_for):
    with pytest.raises(ValidationError):
        LeaveBalanceService(db_session).adjust_allocation(principal_for(hr_user), employee.id, LeaveType.UNPAID, 5, year=YEAR)


def test_rollover_carries_unused_paid_leave(db_session, employee, other_employee, hr_user, principal_for):
    service = LeaveBalanceService(db_session)
    hr = principal_for(hr_user)
    service.deduct(employee.id, LeaveType.PAID, 3, year=YEAR, commit=True)
    service.deduct(employee.id, LeaveType.SICK, 2, year=YEAR, commit=True)
    # 20 unused days, capped at 15 on carry-forward
    service.adjust_allocation(hr, other_employee.id, LeaveType.PAID, 20, year=YEAR)

    created = service.rollover_year(hr, YEAR + 1)

    assert {b.employee_id for b in created} == {employee.id, other_employee.id}
    mine = service.get_balance(employee.id, YEAR + 1)
    assert mine.paid_leave.total == 12 + 9
    assert mine.carry_forward == 9
    assert mine.sick_leave.total == 7
    assert mine.sick_leave.used == 0

    theirs = service.get_balance(other_employee.id, YEAR + 1)
    assert theirs.paid_leave.total == 12 + 15
    assert theirs.carry_forward == 15


def test_rollover_skips_existing_ledgers(db_session, employee, hr_user, principal_for):
    service = LeaveBalanceService(db_session)
    hr = principal_for(hr_user)
    service.get_balance(employee.id, YEAR)
    service.adjust_allocation(hr, employee.id, LeaveType.PAID, 40, year=YEAR + 1)

    assert service.rollover_year(hr, YEAR + 1) == []
    assert service.get_balance(employee.id, YEAR + 1).paid_leave.total == 40
