import logging
from typing import Iterable
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.models.user import UserRole
from app.schemas.auth import Principal

HR_ROLES = (UserRole.HR, UserRole.ADMIN)


class BaseService:
    """Common plumbing for domain services: a session and a named logger."""

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def require_role(actor: Principal, roles: Iterable[UserRole], action: str):
        roles = tuple(roles)
        if actor.role not in roles:
            raise AccessDeniedError(
                f"Access denied to {action}. Required roles: {[r.value for r in roles]}"
            )
