import pytest
from datetime import timedelta

from app.core.timeutils import local_today
from app.core.exceptions import (
    AccessDeniedError,
    InsufficientBalanceError,
    InvalidStateError,
    OverlapError,
    ValidationError,
)
from app.models.activity import ActivityLog
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.notification import Notification
from app.services.leave_balance_service import LeaveBalanceService
from app.services.leave_service import LeaveService

REASON = "Family trip planned months ago"


def _start(offset=10):
    return local_today() + timedelta(days=offset)


def _submit(db_session, actor, leave_type="Paid", offset=10, days=3):
    start = _start(offset)
    return LeaveService(db_session).submit(
        actor, leave_type, start, start + timedelta(days=days - 1), REASON
    )


# --- service level ---

def test_submit_creates_pending_request(db_session, employee, principal_for):
    leave = _submit(db_session, principal_for(employee))

    assert leave.status == LeaveStatus.PENDING.value
    assert leave.number_of_days == 3
    assert leave.employee_id == employee.id
    assert db_session.query(ActivityLog).filter_by(action="LEAVE_APPLIED", resource_id=leave.id).count() == 1


@pytest.mark.parametrize("kwargs,field", [
    ({"start_date": local_today() - timedelta(days=1)}, "start_date"),
    ({"end_date": _start(8)}, "end_date"),
    ({"reason": "short"}, "reason"),
    ({"reason": "x" * 501}, "reason"),
    ({"leave_type": "Vacation"}, "leave_type"),
])
def test_submit_validation(db_session, employee, principal_for, kwargs, field):
    payload = {
        "leave_type": "Paid",
        "start_date": _start(10),
        "end_date": _start(12),
        "reason": REASON,
    }
    payload.update(kwargs)
    with pytest.raises(ValidationError) as exc:
        LeaveService(db_session).submit(principal_for(employee), **payload)
    assert exc.value.details["field"] == field
    assert db_session.query(LeaveRequest).count() == 0


def test_overlapping_request_is_rejected(db_session, employee, principal_for):
    actor = principal_for(employee)
    first = _submit(db_session, actor, offset=10, days=3)

    with pytest.raises(OverlapError) as exc:
        # touches the last day of the first request
        _submit(db_session, actor, leave_type="Sick", offset=12, days=2)
    assert exc.value.details["conflicting_id"] == first.id


def test_request_overlapping_an_approved_leave_is_rejected(db_session, employee, hr_user, principal_for):
    actor = principal_for(employee)
    # days 10..15 approved, then 14..18 requested
    approved = _submit(db_session, actor, offset=10, days=6)
    LeaveService(db_session).approve(principal_for(hr_user), approved.id)

    with pytest.raises(OverlapError) as exc:
        _submit(db_session, actor, leave_type="Casual", offset=14, days=5)
    assert exc.value.details["conflicting_id"] == approved.id
    assert db_session.query(LeaveRequest).count() == 1


def test_edit_into_another_request_is_rejected(db_session, employee, principal_for):
    actor = principal_for(employee)
    service = LeaveService(db_session)
    first = _submit(db_session, actor, offset=10, days=3)
    second = _submit(db_session, actor, offset=20, days=3)

    with pytest.raises(OverlapError) as exc:
        service.edit(actor, second.id, {"start_date": _start(11), "end_date": _start(13)})
    assert exc.value.details["conflicting_id"] == first.id

    db_session.refresh(second)
    assert second.start_date == _start(20)
    assert second.number_of_days == 3


def test_unpaid_requests_also_count_for_overlap(db_session, employee, principal_for):
    actor = principal_for(employee)
    _submit(db_session, actor, leave_type="Unpaid", offset=10, days=3)
    with pytest.raises(OverlapError):
        _submit(db_session, actor, offset=11, days=1)


def test_cancelled_and_rejected_requests_do_not_block(db_session, employee, hr_user, principal_for):
    actor = principal_for(employee)
    service = LeaveService(db_session)
    first = _submit(db_session, actor, offset=10)
    service.cancel(actor, first.id)
    second = _submit(db_session, actor, offset=10)
    service.reject(principal_for(hr_user), second.id, "Team offsite that week")

    third = _submit(db_session, actor, offset=10)
    assert third.status == LeaveStatus.PENDING.value


def test_other_employees_do_not_conflict(db_session, employee, other_employee, principal_for):
    _submit(db_session, principal_for(employee), offset=10)
    leave = _submit(db_session, principal_for(other_employee), offset=10)
    assert leave.status == LeaveStatus.PENDING.value


def test_approve_deducts_ledger(db_session, employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee), days=3)

    approved = LeaveService(db_session).approve(principal_for(hr_user), leave.id, "Enjoy")

    assert approved.status == LeaveStatus.APPROVED.value
    assert approved.approver_id == hr_user.id
    assert approved.approved_at is not None
    assert approved.approver_comments == "Enjoy"
    balance = LeaveBalanceService(db_session).get_balance(employee.id, leave.start_date.year)
    assert balance.paid_leave.used == 3
    assert balance.paid_leave.remaining == 9
    note = db_session.query(Notification).filter_by(recipient_id=employee.id).one()
    assert note.title == "Leave Approved"


def test_approve_with_insufficient_balance_changes_nothing(db_session, employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee), leave_type="Sick", days=8)

    with pytest.raises(InsufficientBalanceError):
        LeaveService(db_session).approve(principal_for(hr_user), leave.id)

    db_session.expire_all()
    stored = db_session.get(LeaveRequest, leave.id)
    assert stored.status == LeaveStatus.PENDING.value
    assert stored.approver_id is None
    balance = LeaveBalanceService(db_session).get_balance(employee.id, stored.start_date.year)
    assert balance.sick_leave.used == 0
    failed = db_session.query(ActivityLog).filter_by(action="LEAVE_APPROVED", status="Failed").one()
    assert failed.resource_id == leave.id


def test_unpaid_approval_does_not_touch_ledger(db_session, employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee), leave_type="Unpaid", days=20)
    LeaveService(db_session).approve(principal_for(hr_user), leave.id)

    balance = LeaveBalanceService(db_session).get_balance(employee.id, leave.start_date.year)
    assert balance.total_leave_taken == 0


def test_employee_cannot_approve(db_session, employee, principal_for):
    leave = _submit(db_session, principal_for(employee))
    with pytest.raises(AccessDeniedError):
        LeaveService(db_session).approve(principal_for(employee), leave.id)


def test_approve_twice_is_invalid(db_session, employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee))
    service = LeaveService(db_session)
    service.approve(principal_for(hr_user), leave.id)

    with pytest.raises(InvalidStateError) as exc:
        service.approve(principal_for(hr_user), leave.id)
    assert exc.value.details["current_state"] == LeaveStatus.APPROVED.value
    balance = LeaveBalanceService(db_session).get_balance(employee.id, leave.start_date.year)
    assert balance.paid_leave.used == 3


def test_reject_keeps_ledger(db_session, employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee))
    rejected = LeaveService(db_session).reject(principal_for(hr_user), leave.id, "Peak season")

    assert rejected.status == LeaveStatus.REJECTED.value
    assert rejected.approver_comments == "Peak season"
    with pytest.raises(InvalidStateError):
        LeaveService(db_session).approve(principal_for(hr_user), leave.id)


def test_cancel_approved_restores_ledger(db_session, employee, hr_user, principal_for):
    actor = principal_for(employee)
    leave = _submit(db_session, actor, days=3)
    service = LeaveService(db_session)
    service.approve(principal_for(hr_user), leave.id)

    cancelled = service.cancel(actor, leave.id)

    assert cancelled.status == LeaveStatus.CANCELLED.value
    assert cancelled.cancelled_by_id == employee.id
    balance = LeaveBalanceService(db_session).get_balance(employee.id, leave.start_date.year)
    assert balance.paid_leave.used == 0
    assert balance.paid_leave.remaining == 12


def test_cancel_started_approved_leave_is_invalid(db_session, employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee))
    service = LeaveService(db_session)
    service.approve(principal_for(hr_user), leave.id)
    # Leave has started
    leave.start_date = local_today()
    db_session.commit()

    with pytest.raises(InvalidStateError):
        service.cancel(principal_for(employee), leave.id)


def test_only_owner_or_admin_can_cancel(db_session, employee, other_employee, hr_user, admin_user, principal_for):
    leave = _submit(db_session, principal_for(employee))
    service = LeaveService(db_session)

    with pytest.raises(AccessDeniedError):
        service.cancel(principal_for(other_employee), leave.id)
    with pytest.raises(AccessDeniedError):
        service.cancel(principal_for(hr_user), leave.id)

    cancelled = service.cancel(principal_for(admin_user), leave.id)
    assert cancelled.cancelled_by_id == admin_user.id
    note = db_session.query(Notification).filter_by(recipient_id=employee.id).one()
    assert note.title == "Leave Cancelled"


def test_edit_pending_request(db_session, employee, principal_for):
    actor = principal_for(employee)
    leave = _submit(db_session, actor, days=3)
    new_end = leave.start_date + timedelta(days=4)

    edited = LeaveService(db_session).edit(actor, leave.id, {"end_date": new_end, "leave_type": "Casual"})

    assert edited.end_date == new_end
    assert edited.number_of_days == 5
    assert edited.leave_type == "Casual"


def test_edit_is_owner_only_and_pending_only(db_session, employee, other_employee, hr_user, principal_for):
    leave = _submit(db_session, principal_for(employee))
    service = LeaveService(db_session)

    with pytest.raises(AccessDeniedError):
        service.edit(principal_for(other_employee), leave.id, {"reason": "Someone else trying"})

    service.approve(principal_for(hr_user), leave.id)
    with pytest.raises(InvalidStateError):
        service.edit(principal_for(employee), leave.id, {"reason": "Changed my plans again"})


def test_history_and_stats(db_session, employee, hr_user, principal_for):
    actor = principal_for(employee)
    service = LeaveService(db_session)
    first = _submit(db_session, actor, offset=10, days=2)
    second = _submit(db_session, actor, leave_type="Sick", offset=20, days=1)
    service.approve(principal_for(hr_user), first.id)
    service.approve(principal_for(hr_user), second.id)

    year = first.start_date.year
    history = service.get_leave_history(employee.id, year)
    assert first.id in [leave.id for leave in history]

    stats = service.get_leave_stats_by_type(employee.id, year)
    assert stats["Paid"] == {"total_days": 2.0, "count": 1}


# --- HTTP API ---

def _post_request(client, headers, start, end, leave_type="Paid"):
    return client.post(
        "/api/leave/requests",
        headers=headers,
        json={
            "leave_type": leave_type,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "reason": REASON,
        },
    )


def test_api_submit_approve_cancel(client, employee, hr_user, auth_headers):
    start = _start(10)
    response = _post_request(client, auth_headers(employee), start, start + timedelta(days=2))
    assert response.status_code == 201
    request_id = response.json()["id"]
    assert response.json()["number_of_days"] == 3

    response = client.post(
        f"/api/leave/requests/{request_id}/approve",
        headers=auth_headers(hr_user),
        json={"comment": "Approved"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Approved"

    balance = client.get(f"/api/leave-balance/me?year={start.year}", headers=auth_headers(employee)).json()
    assert balance["paid_leave"] == {"total": 12.0, "used": 3.0, "remaining": 9.0}
    assert balance["total_allocated"] == 29
    assert balance["total_available"] == 26

    response = client.post(f"/api/leave/requests/{request_id}/cancel", headers=auth_headers(employee))
    assert response.status_code == 200
    balance = client.get(f"/api/leave-balance/me?year={start.year}", headers=auth_headers(employee)).json()
    assert balance["paid_leave"]["remaining"] == 12.0


def test_api_overlap_returns_conflict(client, employee, auth_headers):
    start = _start(10)
    headers = auth_headers(employee)
    first = _post_request(client, headers, start, start + timedelta(days=2))
    response = _post_request(client, headers, start + timedelta(days=1), start + timedelta(days=5), "Sick")

    assert response.status_code == 409
    error = response.json()["errors"][0]
    assert error["code"] == "LEAVE_OVERLAP"
    assert error["details"]["conflicting_id"] == first.json()["id"]


def test_api_insufficient_balance(client, employee, hr_user, auth_headers):
    start = _start(10)
    created = _post_request(client, auth_headers(employee), start, start + timedelta(days=7), "Sick").json()

    response = client.post(f"/api/leave/requests/{created['id']}/approve", headers=auth_headers(hr_user))

    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "INSUFFICIENT_BALANCE"
    stored = client.get(f"/api/leave/requests/{created['id']}", headers=auth_headers(employee)).json()
    assert stored["status"] == "Pending"


def test_api_employee_cannot_approve(client, employee, auth_headers):
    start = _start(10)
    created = _post_request(client, auth_headers(employee), start, start).json()
    response = client.post(f"/api/leave/requests/{created['id']}/approve", headers=auth_headers(employee))
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_api_schema_validation(client, employee, auth_headers):
    response = client.post(
        "/api/leave/requests",
        headers=auth_headers(employee),
        json={"leave_type": "Paid", "start_date": "not-a-date", "end_date": "2030-01-01", "reason": REASON},
    )
    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "start_date"


def test_api_employee_cannot_read_other_balance(client, employee, other_employee, auth_headers):
    response = client.get(f"/api/leave-balance/{other_employee.id}", headers=auth_headers(employee))
    assert response.status_code == 403


def test_api_rollover_requires_hr(client, employee, hr_user, auth_headers):
    response = client.post("/api/leave-balance/rollover", headers=auth_headers(employee), json={"year": 2031})
    assert response.status_code == 403

    response = client.post("/api/leave-balance/rollover", headers=auth_headers(hr_user), json={"year": 2031})
    assert response.status_code == 200
    assert response.json() == {"year": 2031, "created": 0, "employee_ids": []}
