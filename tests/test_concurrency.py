"""
Parallel requests against a file-backed SQLite database. Each worker gets its
own session and connection, so the write lock is really contended.
"""
import threading
from datetime import date, timedelta

import pytest

from app.core.timeutils import local_today
from app.database import Database
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.user import User, UserRole
from app.schemas.auth import Principal
from app.services.leave_balance_service import LeaveBalanceService
from app.services.leave_service import LeaveService

REASON = "Family trip planned months ago"


@pytest.fixture
def file_database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'hrms.db'}").open()
    db.create_all()
    yield db
    db.drop_all()
    db.close()


@pytest.fixture
def people(file_database):
    with file_database.session() as session:
        employee = User(email="employee@acme.test", full_name="Eve Employee", role=UserRole.EMPLOYEE, is_active=True)
        hr = User(email="hr@acme.test", full_name="Hana HR", role=UserRole.HR, is_active=True)
        session.add_all([employee, hr])
        session.commit()
        return (
            Principal(employee_id=employee.id, role=employee.role),
            Principal(employee_id=hr.id, role=hr.role),
        )


def _run_in_parallel(database, jobs):
    """Run each job(session) on its own thread; returns "ok" or the exception class name per job."""
    barrier = threading.Barrier(len(jobs), timeout=10)
    results = [None] * len(jobs)

    def worker(index, job):
        with database.session() as session:
            barrier.wait()
            try:
                job(session)
                results[index] = "ok"
            except Exception as e:
                results[index] = type(e).__name__

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results


def test_parallel_approvals_never_overdraw_the_ledger(file_database, people):
    employee, hr = people
    year = local_today().year + 1
    starts = [date(year, 2, 2), date(year, 3, 2)]
    with file_database.session() as session:
        requests = [
            LeaveRequest(
                employee_id=employee.employee_id, leave_type="Paid", start_date=start,
                end_date=start + timedelta(days=7), number_of_days=8, reason=REASON,
                status=LeaveStatus.PENDING.value,
            )
            for start in starts
        ]
        session.add_all(requests)
        session.commit()
        request_ids = [r.id for r in requests]

    results = _run_in_parallel(
        file_database,
        [lambda s, rid=rid: LeaveService(s).approve(hr, rid) for rid in request_ids],
    )

    assert sorted(results) == ["InsufficientBalanceError", "ok"]
    with file_database.session() as session:
        balance = LeaveBalanceService(session).get_balance(employee.employee_id, year)
        assert balance.paid_leave.used == 8
        assert balance.paid_leave.remaining == 4
        statuses = sorted(session.get(LeaveRequest, rid).status for rid in request_ids)
        assert statuses == [LeaveStatus.APPROVED.value, LeaveStatus.PENDING.value]


def test_parallel_overlapping_submissions_admit_one(file_database, people):
    employee, _ = people
    start = local_today() + timedelta(days=10)

    def submit(offset):
        def job(session):
            first = start + timedelta(days=offset)
            LeaveService(session).submit(employee, "Paid", first, first + timedelta(days=2), REASON)
        return job

    results = _run_in_parallel(file_database, [submit(0), submit(1)])

    assert sorted(results) == ["OverlapError", "ok"]
    with file_database.session() as session:
        assert session.query(LeaveRequest).filter_by(employee_id=employee.employee_id).count() == 1
