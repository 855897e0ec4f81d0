from pydantic import BaseModel, ConfigDict
from app.models.user import UserRole

class Principal(BaseModel):
    """Authenticated caller, as asserted by the identity service's token."""
    model_config = ConfigDict(frozen=True)

    employee_id: int
    role: UserRole

    @property
    def is_hr(self) -> bool:
        return self.role in (UserRole.HR, UserRole.ADMIN)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

class TokenData(BaseModel):
    sub: str
    role: UserRole
    type: str = "access"
