"""
Leave Request Lifecycle

    Pending -> Approved | Rejected | Cancelled
    Approved -> Cancelled   (only while the leave has not started)

Approval and the ledger deduction commit as one unit. Submissions and edits
lock the employee row before the overlap check so two concurrent requests
for the same employee cannot both slip past it.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from app.core.config import settings
from app.core.exceptions import (
    AccessDeniedError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    OverlapError,
    ValidationError,
)
from app.core.security import sanitize_input
from app.core.timeutils import local_today, utc_now
from app.models.activity import ActivityAction, ActivityStatus, ResourceType
from app.models.leave_request import ACTIVE_LEAVE_STATUSES, LeaveRequest, LeaveStatus, LeaveType
from app.models.notification import NotificationType
from app.models.user import User
from app.schemas.auth import Principal
from app.services.audit import AuditService
from app.services.base import BaseService, HR_ROLES
from app.services.derivations import MIN_LEAVE_DAYS, compute_leave_days
from app.services.leave_balance_service import LeaveBalanceService
from app.services.notification import NotificationService

EDITABLE_FIELDS = ("leave_type", "start_date", "end_date", "reason", "remarks", "attachments")


class LeaveService(BaseService):
    def __init__(self, db):
        super().__init__(db)
        self.ledger = LeaveBalanceService(db)

    # --- lookups ---

    def get_request(self, request_id: int, lock: bool = False) -> LeaveRequest:
        stmt = select(LeaveRequest).where(
            LeaveRequest.id == request_id,
            LeaveRequest.is_deleted == False  # noqa: E712
        )
        if lock:
            stmt = stmt.with_for_update()
        leave = self.db.execute(stmt).scalar_one_or_none()
        if leave is None:
            raise NotFoundError("Leave request", request_id)
        return leave

    def get_visible_request(self, actor: Principal, request_id: int) -> LeaveRequest:
        leave = self.get_request(request_id)
        if leave.employee_id != actor.employee_id and not actor.is_hr:
            raise AccessDeniedError("You can only view your own leave requests")
        return leave

    def find_overlap(self, employee_id: int, start_date: date, end_date: date, exclude_id: Optional[int] = None) -> Optional[LeaveRequest]:
        """First Pending/Approved request of the employee intersecting [start, end]."""
        stmt = select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
            LeaveRequest.is_deleted == False,  # noqa: E712
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_id is not None:
            stmt = stmt.where(LeaveRequest.id != exclude_id)
        return self.db.execute(stmt.order_by(LeaveRequest.start_date).limit(1)).scalar_one_or_none()

    def _lock_employee(self, employee_id: int) -> User:
        user = self.db.execute(
            select(User).where(User.id == employee_id).with_for_update()
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundError("Employee", employee_id)
        return user

    # --- validation ---

    def _validate(self, leave_type: Any, start_date: date, end_date: date, reason: str, today: date) -> Dict[str, Any]:
        try:
            category = LeaveType(leave_type)
        except ValueError:
            raise ValidationError(
                f"Unknown leave type '{leave_type}'",
                field="leave_type",
                allowed=[t.value for t in LeaveType],
            )
        if start_date < today:
            raise ValidationError(
                "Start date cannot be in the past",
                field="start_date", value=start_date.isoformat(), minimum=today.isoformat(),
            )
        if end_date < start_date:
            raise ValidationError(
                "End date must be on or after start date",
                field="end_date", value=end_date.isoformat(), minimum=start_date.isoformat(),
            )

        reason = (reason or "").strip()
        limits = settings.leave
        if not limits.reason_min_length <= len(reason) <= limits.reason_max_length:
            raise ValidationError(
                f"Reason must be between {limits.reason_min_length} and {limits.reason_max_length} characters",
                field="reason", length=len(reason),
                minimum=limits.reason_min_length, maximum=limits.reason_max_length,
            )

        days = compute_leave_days(start_date, end_date)
        if days < MIN_LEAVE_DAYS:
            raise ValidationError(
                f"Leave must be at least {MIN_LEAVE_DAYS} days", field="number_of_days", value=days,
            )
        return {"leave_type": category, "reason": sanitize_input(reason), "number_of_days": days}

    def _ensure_no_overlap(self, employee_id: int, start_date: date, end_date: date, exclude_id: Optional[int] = None):
        conflict = self.find_overlap(employee_id, start_date, end_date, exclude_id)
        if conflict is not None:
            raise OverlapError(
                f"Overlapping {conflict.status.lower()} leave request exists "
                f"({conflict.start_date.isoformat()} to {conflict.end_date.isoformat()})",
                conflicting_id=conflict.id,
                conflicting_start=conflict.start_date.isoformat(),
                conflicting_end=conflict.end_date.isoformat(),
            )

    @staticmethod
    def _clean_comment(comment: Optional[str]) -> Optional[str]:
        if comment is None:
            return None
        comment = comment.strip()
        if len(comment) > settings.leave.comment_max_length:
            raise ValidationError(
                f"Comment must be at most {settings.leave.comment_max_length} characters",
                field="comment", length=len(comment),
            )
        return sanitize_input(comment)

    @staticmethod
    def _stamp_attachments(attachments: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        stamped = []
        for item in attachments or []:
            item = dict(item)
            item.setdefault("uploaded_at", utc_now().isoformat())
            stamped.append(item)
        return stamped

    # --- lifecycle ---

    def submit(
        self,
        actor: Principal,
        leave_type: Any,
        start_date: date,
        end_date: date,
        reason: str,
        remarks: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> LeaveRequest:
        cleaned = self._validate(leave_type, start_date, end_date, reason, local_today())
        try:
            self._lock_employee(actor.employee_id)
            self._ensure_no_overlap(actor.employee_id, start_date, end_date)

            leave = LeaveRequest(
                employee_id=actor.employee_id,
                leave_type=cleaned["leave_type"].value,
                start_date=start_date,
                end_date=end_date,
                number_of_days=cleaned["number_of_days"],
                reason=cleaned["reason"],
                remarks=sanitize_input(remarks) if remarks else None,
                attachments=self._stamp_attachments(attachments),
                status=LeaveStatus.PENDING.value,
            )
            self.db.add(leave)
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.LEAVE_APPLIED,
                description=f"Applied for {leave.number_of_days} day(s) of {leave.leave_type} leave",
                user_id=actor.employee_id,
                resource_type=ResourceType.LEAVE,
                resource_id=leave.id,
                details={"start_date": start_date, "end_date": end_date},
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise

        self.log_info(f"Leave request {leave.id} submitted by employee {actor.employee_id}")
        return leave

    def edit(self, actor: Principal, request_id: int, changes: Dict[str, Any]) -> LeaveRequest:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {sorted(unknown)}", field=sorted(unknown)[0])

        try:
            leave = self.get_request(request_id, lock=True)
            if leave.employee_id != actor.employee_id:
                raise AccessDeniedError("Only the owner can edit a leave request")
            if not leave.can_be_edited():
                raise InvalidStateError(
                    f"Only pending requests can be edited (current status: {leave.status})",
                    current_state=leave.status, request_id=leave.id,
                )

            merged = {
                "leave_type": changes.get("leave_type", leave.leave_type),
                "start_date": changes.get("start_date", leave.start_date),
                "end_date": changes.get("end_date", leave.end_date),
                "reason": changes.get("reason", leave.reason),
            }
            cleaned = self._validate(
                merged["leave_type"], merged["start_date"], merged["end_date"], merged["reason"], local_today()
            )
            self._lock_employee(leave.employee_id)
            self._ensure_no_overlap(leave.employee_id, merged["start_date"], merged["end_date"], exclude_id=leave.id)

            before = {
                "leave_type": leave.leave_type,
                "start_date": leave.start_date,
                "end_date": leave.end_date,
                "number_of_days": leave.number_of_days,
            }
            leave.leave_type = cleaned["leave_type"].value
            leave.start_date = merged["start_date"]
            leave.end_date = merged["end_date"]
            leave.number_of_days = cleaned["number_of_days"]
            if "reason" in changes:
                leave.reason = cleaned["reason"]
            if "remarks" in changes:
                leave.remarks = sanitize_input(changes["remarks"]) if changes["remarks"] else None
            if "attachments" in changes:
                leave.attachments = self._stamp_attachments(changes["attachments"])
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.LEAVE_UPDATED,
                description=f"Updated leave request {leave.id}",
                user_id=actor.employee_id,
                resource_type=ResourceType.LEAVE,
                resource_id=leave.id,
                changes={"before": before, "after": {k: getattr(leave, k) for k in before}},
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        return leave

    def approve(self, actor: Principal, request_id: int, comment: Optional[str] = None) -> LeaveRequest:
        """
        Deduct the ledger, then flip the status, in one transaction. If the
        ledger refuses, nothing about the request changes.
        """
        self.require_role(actor, HR_ROLES, "approve leave")
        comment = self._clean_comment(comment)
        try:
            leave = self.get_request(request_id, lock=True)
            if leave.status != LeaveStatus.PENDING.value:
                raise InvalidStateError(
                    f"Only pending requests can be approved (current status: {leave.status})",
                    current_state=leave.status, request_id=leave.id,
                )
            employee_id, category, days = leave.employee_id, leave.category, leave.number_of_days

            self.ledger.deduct(employee_id, category, days, year=leave.start_date.year)

            leave.status = LeaveStatus.APPROVED.value
            leave.approver_id = actor.employee_id
            leave.approved_at = utc_now()
            leave.approver_comments = comment
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.LEAVE_APPROVED,
                description=f"Approved {days} day(s) of {category.value} leave for employee {employee_id}",
                user_id=actor.employee_id,
                resource_type=ResourceType.LEAVE,
                resource_id=leave.id,
                changes={"status": {"from": LeaveStatus.PENDING.value, "to": leave.status}},
                details={"comment": comment},
            )
            NotificationService.notify(
                self.db,
                employee_id,
                "Leave Approved",
                f"Your {category.value} leave request for {days} day(s) has been approved.",
                NotificationType.LEAVE.value,
                reference_type=ResourceType.LEAVE.value,
                reference_id=leave.id,
            )
            self.commit()
        except InsufficientBalanceError as e:
            self.db.rollback()
            AuditService.log(
                self.db,
                action=ActivityAction.LEAVE_APPROVED,
                description=f"Approval of leave request {request_id} failed",
                user_id=actor.employee_id,
                resource_type=ResourceType.LEAVE,
                resource_id=request_id,
                status=ActivityStatus.FAILED.value,
                error_message=e.message,
                details=e.details,
            )
            self.commit()
            self.log_warning(f"Leave request {request_id} not approved: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            raise

        self.log_info(f"Leave request {leave.id} approved by {actor.employee_id}")
        return leave

    def reject(self, actor: Principal, request_id: int, comment: Optional[str] = None) -> LeaveRequest:
        self.require_role(actor, HR_ROLES, "reject leave")
        comment = self._clean_comment(comment)
        try:
            leave = self.get_request(request_id, lock=True)
            if leave.status != LeaveStatus.PENDING.value:
                raise InvalidStateError(
                    f"Only pending requests can be rejected (current status: {leave.status})",
                    current_state=leave.status, request_id=leave.id,
                )
            leave.status = LeaveStatus.REJECTED.value
            leave.approver_id = actor.employee_id
            leave.approved_at = utc_now()
            leave.approver_comments = comment or "Rejected"
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.LEAVE_REJECTED,
                description=f"Rejected leave request {leave.id}",
                user_id=actor.employee_id,
                resource_type=ResourceType.LEAVE,
                resource_id=leave.id,
                changes={"status": {"from": LeaveStatus.PENDING.value, "to": leave.status}},
                details={"comment": leave.approver_comments},
            )
            NotificationService.notify(
                self.db,
                leave.employee_id,
                "Leave Rejected",
                f"Your {leave.leave_type} leave request has been rejected. Reason: {leave.approver_comments}",
                NotificationType.LEAVE.value,
                reference_type=ResourceType.LEAVE.value,
                reference_id=leave.id,
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        return leave

    def cancel(self, actor: Principal, request_id: int) -> LeaveRequest:
        """Owner (or an admin on their behalf) withdraws a request; approved days go back."""
        try:
            leave = self.get_request(request_id, lock=True)
            if leave.employee_id != actor.employee_id and not actor.is_admin:
                raise AccessDeniedError("Only the owner or an administrator can cancel a leave request")
            if not leave.can_be_cancelled(local_today()):
                raise InvalidStateError(
                    f"Leave request cannot be cancelled (status: {leave.status}, starts {leave.start_date.isoformat()})",
                    current_state=leave.status, request_id=leave.id,
                )

            previous = leave.status
            if previous == LeaveStatus.APPROVED.value:
                self.ledger.restore(leave.employee_id, leave.category, leave.number_of_days, year=leave.start_date.year)

            leave.status = LeaveStatus.CANCELLED.value
            leave.cancelled_by_id = actor.employee_id
            leave.cancelled_at = utc_now()
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.LEAVE_CANCELLED,
                description=f"Cancelled leave request {leave.id}",
                user_id=actor.employee_id,
                resource_type=ResourceType.LEAVE,
                resource_id=leave.id,
                changes={"status": {"from": previous, "to": leave.status}},
                details={"restored_days": leave.number_of_days if previous == LeaveStatus.APPROVED.value else 0},
            )
            if actor.employee_id != leave.employee_id:
                NotificationService.notify(
                    self.db,
                    leave.employee_id,
                    "Leave Cancelled",
                    f"Your {leave.leave_type} leave from {leave.start_date.isoformat()} was cancelled by an administrator.",
                    NotificationType.LEAVE.value,
                    reference_type=ResourceType.LEAVE.value,
                    reference_id=leave.id,
                )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        self.log_info(f"Leave request {leave.id} cancelled (was {previous})")
        return leave

    # --- reporting helpers ---

    def get_leave_history(self, employee_id: int, year: int) -> List[LeaveRequest]:
        stmt = select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.is_deleted == False,  # noqa: E712
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        ).order_by(LeaveRequest.start_date.desc())
        return list(self.db.execute(stmt).scalars().all())

    def get_leave_stats_by_type(self, employee_id: int, year: int) -> Dict[str, Dict[str, float]]:
        """Approved days and request counts per leave type for the year."""
        stmt = select(
            LeaveRequest.leave_type,
            func.sum(LeaveRequest.number_of_days),
            func.count(LeaveRequest.id),
        ).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == LeaveStatus.APPROVED.value,
            LeaveRequest.is_deleted == False,  # noqa: E712
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        ).group_by(LeaveRequest.leave_type)
        return {
            leave_type: {"total_days": float(total or 0), "count": count}
            for leave_type, total, count in self.db.execute(stmt).all()
        }
