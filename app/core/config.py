import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

# Fernet key for local development only (base64 of a fixed 32-byte string)
_DEV_ENCRYPTION_KEY = "ZGV2LW9ubHkta2V5LWRvLW5vdC11c2UtaW4tcHJvZCE="

class LeaveSettings(BaseModel):
    default_paid: float = Field(default=float(os.getenv("DEFAULT_PAID_LEAVE", "12")))
    default_sick: float = Field(default=float(os.getenv("DEFAULT_SICK_LEAVE", "7")))
    default_casual: float = Field(default=float(os.getenv("DEFAULT_CASUAL_LEAVE", "10")))
    default_maternity: float = 0.0
    default_paternity: float = 0.0
    max_carry_forward: float = 15.0
    reason_min_length: int = 10
    reason_max_length: int = 500
    comment_max_length: int = 500

class AttendanceSettings(BaseModel):
    full_day_hours: float = 8.0
    half_day_hours: float = 4.0

class Config(BaseModel):
    app_name: str = "HRMS Core"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./hrms.db")

    # Identity tokens are issued elsewhere; we only verify them
    secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # Domain rules
    leave: LeaveSettings = LeaveSettings()
    attendance: AttendanceSettings = AttendanceSettings()
    timezone: str = os.getenv("APP_TIMEZONE", "UTC")

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
    encryption_key: str = os.getenv("ENCRYPTION_KEY", _DEV_ENCRYPTION_KEY)

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    _critical_missing = []
    if "dev-only" in settings.secret_key:
        _critical_missing.append("SECRET_KEY")
    if settings.encryption_key == _DEV_ENCRYPTION_KEY:
        _critical_missing.append("ENCRYPTION_KEY")
    if _critical_missing:
        raise RuntimeError(
            f"FATAL: The following secrets must be set for non-development environments: "
            f"{', '.join(_critical_missing)}. Set them as environment variables."
        )
else:
    if "dev-only" in settings.secret_key:
        _logger.warning("⚠ Using insecure default SECRET_KEY, only acceptable in development.")
