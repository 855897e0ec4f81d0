"""
Attendance Derivation

One record per employee per day. Check-in opens the record with a provisional
Present status; check-out computes worked hours and derives the final status
unless someone has explicitly set it in between.
"""
import calendar
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AlreadyCheckedInError,
    InvalidOrderError,
    NotCheckedInError,
    NotFoundError,
    ValidationError,
)
from app.core.security import sanitize_input
from app.core.timeutils import local_now, local_today, to_local_naive
from app.models.activity import ActivityAction, ResourceType
from app.models.attendance import AttendanceRecord, AttendanceStatus
from app.models.notification import NotificationType
from app.models.user import User
from app.schemas.auth import Principal
from app.services.audit import AuditService
from app.services.base import BaseService, HR_ROLES
from app.services.derivations import compute_worked_hours, derive_attendance_status, should_rederive_status
from app.services.notification import NotificationService


def _check_coordinates(latitude: Optional[float], longitude: Optional[float]):
    if (latitude is None) != (longitude is None):
        raise ValidationError("Latitude and longitude must be given together", field="location")
    if latitude is not None and not -90 <= latitude <= 90:
        raise ValidationError("Latitude out of range", field="latitude", value=latitude, minimum=-90, maximum=90)
    if longitude is not None and not -180 <= longitude <= 180:
        raise ValidationError("Longitude out of range", field="longitude", value=longitude, minimum=-180, maximum=180)


def _punch_time(timestamp: Optional[datetime]) -> datetime:
    """Punches belong to the current day in org time; other days are rejected."""
    if timestamp is None:
        return local_now()
    punched_at = to_local_naive(timestamp)
    today = local_today()
    if punched_at.date() != today:
        raise ValidationError(
            "Punches can only be recorded for today",
            field="timestamp", value=punched_at.isoformat(), today=today.isoformat(),
        )
    return punched_at


class AttendanceService(BaseService):
    def get_record(self, record_id: int) -> AttendanceRecord:
        record = self.db.get(AttendanceRecord, record_id)
        if record is None or record.is_deleted:
            raise NotFoundError("Attendance record", record_id)
        return record

    def get_day_record(
        self, employee_id: int, day: date, lock: bool = False, include_deleted: bool = False
    ) -> Optional[AttendanceRecord]:
        stmt = select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == day,
        )
        if not include_deleted:
            stmt = stmt.where(AttendanceRecord.is_deleted == False)  # noqa: E712
        if lock:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def _claim_day(self, employee_id: int, day: date) -> Optional[AttendanceRecord]:
        """
        Live record for the day. A soft-deleted row still owns the
        (employee, date) key, so it is wiped and reused.
        """
        record = self.get_day_record(employee_id, day, lock=True, include_deleted=True)
        if record is not None and record.is_deleted:
            record.is_deleted = False
            record.check_in_time = None
            record.check_out_time = None
            record.check_in_latitude = None
            record.check_in_longitude = None
            record.check_out_latitude = None
            record.check_out_longitude = None
            record.status = AttendanceStatus.ABSENT.value
            record.status_provisional = False
            record.working_hours = 0.0
            record.remarks = None
        return record

    def check_in(
        self,
        actor: Principal,
        timestamp: Optional[datetime] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> AttendanceRecord:
        _check_coordinates(latitude, longitude)
        punched_at = _punch_time(timestamp)
        day = punched_at.date()
        try:
            record = self._claim_day(actor.employee_id, day)
            if record is not None and record.is_checked_in:
                raise AlreadyCheckedInError(
                    record_id=record.id, check_in_time=record.check_in_time.isoformat(),
                )
            if record is not None and record.check_out_time is not None:
                raise AlreadyCheckedInError(
                    "Attendance for today is already complete",
                    record_id=record.id, check_out_time=record.check_out_time.isoformat(),
                )

            if record is None:
                record = AttendanceRecord(employee_id=actor.employee_id, date=day)
                try:
                    with self.db.begin_nested():
                        self.db.add(record)
                except IntegrityError:
                    raise AlreadyCheckedInError(date=day.isoformat())

            record.check_in_time = punched_at
            record.check_in_latitude = latitude
            record.check_in_longitude = longitude
            record.status = AttendanceStatus.PRESENT.value
            record.status_provisional = True
            record.working_hours = 0.0
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.CHECK_IN,
                description=f"Checked in at {punched_at.isoformat()}",
                user_id=actor.employee_id,
                resource_type=ResourceType.ATTENDANCE,
                resource_id=record.id,
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        self.log_info(f"Employee {actor.employee_id} checked in for {day.isoformat()}")
        return record

    def check_out(
        self,
        actor: Principal,
        timestamp: Optional[datetime] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> AttendanceRecord:
        _check_coordinates(latitude, longitude)
        punched_at = _punch_time(timestamp)
        day = punched_at.date()
        try:
            record = self.get_day_record(actor.employee_id, day, lock=True)
            if record is None or not record.is_checked_in:
                raise NotCheckedInError(date=day.isoformat())
            if punched_at <= record.check_in_time:
                raise InvalidOrderError(
                    check_in_time=record.check_in_time.isoformat(),
                    check_out_time=punched_at.isoformat(),
                )

            record.check_out_time = punched_at
            record.check_out_latitude = latitude
            record.check_out_longitude = longitude
            record.working_hours = compute_worked_hours(record.check_in_time, punched_at)
            if should_rederive_status(record.status, record.status_provisional):
                record.status = derive_attendance_status(record.working_hours).value
            record.status_provisional = False
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.CHECK_OUT,
                description=f"Checked out at {punched_at.isoformat()} ({record.working_hours}h)",
                user_id=actor.employee_id,
                resource_type=ResourceType.ATTENDANCE,
                resource_id=record.id,
                details={"working_hours": record.working_hours, "status": record.status},
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        self.log_info(f"Employee {actor.employee_id} checked out: {record.working_hours}h, {record.status}")
        return record

    def admin_override_status(self, actor: Principal, record_id: int, new_status: Any, remarks: Optional[str] = None) -> AttendanceRecord:
        """Set the status directly; check-out will not re-derive it afterwards (unless it is Absent)."""
        self.require_role(actor, HR_ROLES, "override attendance status")
        try:
            status = AttendanceStatus(new_status)
        except ValueError:
            raise ValidationError(
                f"Unknown attendance status '{new_status}'",
                field="status", allowed=[s.value for s in AttendanceStatus],
            )
        try:
            record = self.get_record(record_id)
            previous = record.status
            record.status = status.value
            record.status_provisional = False
            record.modified_by_id = actor.employee_id
            if remarks is not None:
                record.remarks = sanitize_input(remarks)[:500]
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.ATTENDANCE_UPDATED,
                description=f"Attendance {record.id} status set to {status.value}",
                user_id=actor.employee_id,
                resource_type=ResourceType.ATTENDANCE,
                resource_id=record.id,
                changes={"status": {"from": previous, "to": status.value}},
            )
            NotificationService.notify(
                self.db,
                record.employee_id,
                "Attendance Updated",
                f"Your attendance for {record.date.isoformat()} was marked {status.value}.",
                NotificationType.ATTENDANCE.value,
                reference_type=ResourceType.ATTENDANCE.value,
                reference_id=record.id,
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        return record

    def mark_leave_days(self, actor: Principal, employee_id: int, start_date: date, end_date: date) -> Dict[str, List]:
        """
        Reconciliation step for approved leave: mark each day Leave.
        Days the employee actually punched in are left alone and reported.
        """
        self.require_role(actor, HR_ROLES, "mark leave days")
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date", field="end_date")
        if self.db.get(User, employee_id) is None:
            raise NotFoundError("Employee", employee_id)

        marked, skipped = [], []
        try:
            day = start_date
            while day <= end_date:
                record = self._claim_day(employee_id, day)
                if record is not None and record.check_in_time is not None:
                    skipped.append(day)
                else:
                    if record is None:
                        record = AttendanceRecord(employee_id=employee_id, date=day)
                        self.db.add(record)
                    record.status = AttendanceStatus.LEAVE.value
                    record.status_provisional = False
                    record.modified_by_id = actor.employee_id
                    marked.append(record)
                day += timedelta(days=1)
            self.db.flush()

            AuditService.log(
                self.db,
                action=ActivityAction.ATTENDANCE_UPDATED,
                description=f"Marked {len(marked)} leave day(s) for employee {employee_id}",
                user_id=actor.employee_id,
                resource_type=ResourceType.ATTENDANCE,
                details={"start_date": start_date, "end_date": end_date, "skipped": skipped},
            )
            self.commit()
        except Exception:
            self.db.rollback()
            raise
        if skipped:
            self.log_warning(f"Leave days with recorded punches left unchanged for employee {employee_id}: {skipped}")
        return {"marked": marked, "skipped": skipped}

    def soft_delete(self, actor: Principal, record_id: int) -> AttendanceRecord:
        self.require_role(actor, HR_ROLES, "delete attendance records")
        record = self.get_record(record_id)
        record.is_deleted = True
        record.modified_by_id = actor.employee_id
        AuditService.log(
            self.db,
            action=ActivityAction.ATTENDANCE_UPDATED,
            description=f"Attendance {record.id} deleted",
            user_id=actor.employee_id,
            resource_type=ResourceType.ATTENDANCE,
            resource_id=record.id,
        )
        self.commit()
        return record

    def get_attendance_stats(self, employee_id: int, month: int, year: int) -> Dict[str, Dict[str, float]]:
        """Count and total hours per status for one month."""
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12", field="month", value=month)
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])
        stmt = select(
            AttendanceRecord.status,
            func.count(AttendanceRecord.id),
            func.sum(AttendanceRecord.working_hours),
        ).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date >= first,
            AttendanceRecord.date <= last,
            AttendanceRecord.is_deleted == False,  # noqa: E712
        ).group_by(AttendanceRecord.status)
        return {
            status: {"count": count, "total_hours": round(float(hours or 0), 2)}
            for status, count, hours in self.db.execute(stmt).all()
        }
