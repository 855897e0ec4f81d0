from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from app.core.exceptions import NotFoundError
from app.core.timeutils import utc_now
from app.database import get_db
from app.models.notification import Notification
from app.routers.auth_deps import get_current_principal
from app.schemas.auth import Principal
from app.schemas.notification import NotificationResponse
from app.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get("", response_model=List[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    query = db.query(Notification).filter(Notification.recipient_id == principal.employee_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()

@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_id == principal.employee_id
    ).first()

    if not notification:
        raise NotFoundError("Notification", notification_id)

    return NotificationService.mark_as_read(db, notification, utc_now())
