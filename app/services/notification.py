import logging
from typing import Optional
from sqlalchemy.orm import Session
from app.models.notification import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)

class NotificationService:
    @staticmethod
    def create_notification(
        db: Session,
        recipient_id: int,
        title: str,
        message: str,
        type: str = NotificationType.OTHER.value,
        priority: str = NotificationPriority.MEDIUM.value,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> Notification:
        """
        Internal utility for creating notifications.
        Written inside a SAVEPOINT so a failure cannot poison the caller's transaction.
        """
        notification = Notification(
            recipient_id=recipient_id,
            title=title[:200],
            message=message[:1000],
            type=type,
            priority=priority,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        with db.begin_nested():
            db.add(notification)
        return notification

    @staticmethod
    def notify(
        db: Session,
        recipient_id: int,
        title: str,
        message: str,
        type: str = NotificationType.OTHER.value,
        **kwargs
    ) -> Optional[Notification]:
        """
        Fire-and-forget delivery. Errors are logged and discarded.
        """
        try:
            return NotificationService.create_notification(db, recipient_id, title, message, type, **kwargs)
        except Exception as e:
            # Don't fail the request if notification fails
            logger.warning(f"Notification failed: {e}", exc_info=True)
            return None

    @staticmethod
    def mark_as_read(db: Session, notification: Notification, now) -> Notification:
        notification.is_read = True
        notification.read_at = now
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(notification)
        return notification
