from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON
from sqlalchemy.sql import func
from app.database import Base
import enum

class ActivityAction(str, enum.Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    ATTENDANCE_UPDATED = "ATTENDANCE_UPDATED"
    LEAVE_APPLIED = "LEAVE_APPLIED"
    LEAVE_APPROVED = "LEAVE_APPROVED"
    LEAVE_REJECTED = "LEAVE_REJECTED"
    LEAVE_CANCELLED = "LEAVE_CANCELLED"
    LEAVE_UPDATED = "LEAVE_UPDATED"
    LEAVE_BALANCE_ADJUSTED = "LEAVE_BALANCE_ADJUSTED"
    LEAVE_BALANCE_ROLLOVER = "LEAVE_BALANCE_ROLLOVER"
    PAYROLL_GENERATED = "PAYROLL_GENERATED"
    PAYROLL_UPDATED = "PAYROLL_UPDATED"
    PAYROLL_PAID = "PAYROLL_PAID"
    OTHER = "OTHER"

class ResourceType(str, enum.Enum):
    ATTENDANCE = "Attendance"
    LEAVE = "Leave"
    LEAVE_BALANCE = "LeaveBalance"
    PAYROLL = "Payroll"
    OTHER = "Other"

class ActivityStatus(str, enum.Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    PENDING = "Pending"

class Severity(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

class ActivityLog(Base):
    """Append-only activity trail. Rows are soft-deleted, never removed."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(40), nullable=False, index=True)
    description = Column(Text, nullable=False)
    resource_type = Column(String(20), nullable=True)
    resource_id = Column(Integer, nullable=True)
    status = Column(String(10), default=ActivityStatus.SUCCESS.value, nullable=False, index=True)
    severity = Column(String(10), default=Severity.LOW.value, nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    changes = Column(JSON, default=dict)
    details = Column(JSON, default=dict)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
