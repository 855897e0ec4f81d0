from datetime import timedelta
from typing import Any, Optional

from app.core.timeutils import utc_now
from app.models.activity import ActivityLog, ActivityStatus, Severity
from app.services.base import BaseService


def _sanitize(obj: Any) -> Any:
    """Make nested pydantic models, enums and dates JSON-safe."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {str(k): _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "value"):
        return obj.value
    return obj


def escalate_severity(status: str, severity: str) -> str:
    if status == ActivityStatus.FAILED.value and severity == Severity.LOW.value:
        return Severity.HIGH.value
    return severity


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        description: str,
        user_id: Optional[int],
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        status: str = ActivityStatus.SUCCESS.value,
        severity: str = Severity.LOW.value,
        error_message: Optional[str] = None,
        changes: Optional[dict] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """
        Append an activity-log entry inside a SAVEPOINT of the caller's transaction.
        The entry commits (or rolls back) together with the main action.
        Never raises: a failed audit write is logged and dropped.
        """
        try:
            entry = ActivityLog(
                action=getattr(action, "value", action),
                description=description[:1000],
                user_id=user_id,
                resource_type=getattr(resource_type, "value", resource_type),
                resource_id=resource_id,
                status=status,
                severity=escalate_severity(status, severity),
                error_message=error_message,
                changes=_sanitize(changes or {}),
                details=_sanitize(details or {}),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            with self.db.begin_nested():
                self.db.add(entry)
            return entry
        except Exception as e:
            self._logger.error(f"FAILED TO AUDIT LOG: {e}", exc_info=True)
            return None  # Never break the main app flow because of a logging failure

    def purge_old_logs(self, days: int = 365) -> int:
        """Soft-delete entries older than `days`. Invoked by maintenance scripts."""
        cutoff = utc_now() - timedelta(days=days)
        count = self.db.query(ActivityLog).filter(
            ActivityLog.created_at < cutoff,
            ActivityLog.is_deleted == False  # noqa: E712
        ).update({ActivityLog.is_deleted: True}, synchronize_session=False)
        self.commit()
        self.log_info(f"Soft-deleted {count} activity log entries older than {days} days")
        return count

    # Static wrapper, mirrors NotificationService.notify
    @staticmethod
    def log(db, *args, **kwargs):
        service = AuditService(db)
        return service.log_action(*args, **kwargs)
