"""
RBAC Dependencies.

Callers are authenticated by an external identity service; the bearer token
it issues carries the employee id (sub) and role. We verify it and build a
Principal without a database hit.
"""
import logging
from typing import Callable, List

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import AccessDeniedError, AuthenticationError
from app.core.security import decode_access_token
from app.models.user import UserRole
from app.schemas.auth import Principal, TokenData

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """
    Extracts and validates the caller from the JWT token.
    """
    payload = decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise AuthenticationError("Could not validate credentials")

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise AuthenticationError("TOKEN_EXPIRED")

    try:
        token_data = TokenData(**payload)
    except PydanticValidationError:
        logger.warning("Authentication failed: Malformed claims")
        raise AuthenticationError("Malformed token claims")

    if token_data.type != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise AuthenticationError("Invalid token type")

    if not token_data.sub.isdigit():
        logger.warning(f"Authentication failed: Subject {token_data.sub!r} is not an employee id")
        raise AuthenticationError("Missing subject in token")

    return Principal(employee_id=int(token_data.sub), role=token_data.role)


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the caller has one of the allowed roles.

    Usage:
        @router.post("/rollover")
        def rollover(actor: Principal = Depends(require_role([UserRole.HR, UserRole.ADMIN]))):
            ...
    """
    def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise AccessDeniedError(
                f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return principal
    return role_checker


def require_hr():
    """Shorthand for requiring HR or Admin."""
    return require_role([UserRole.HR, UserRole.ADMIN])
