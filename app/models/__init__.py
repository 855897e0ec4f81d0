# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    user, leave_request, leave_balance, attendance, payroll, activity, notification
)

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .leave_request import LeaveRequest, LeaveStatus, LeaveType
from .leave_balance import LeaveBalance, LeaveAllocation
from .attendance import AttendanceRecord, AttendanceStatus
from .payroll import Payroll, PaymentStatus, Allowances, Deductions
from .activity import ActivityLog
from .notification import Notification

__all__ = [
    "User",
    "UserRole",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveType",
    "LeaveBalance",
    "LeaveAllocation",
    "AttendanceRecord",
    "AttendanceStatus",
    "Payroll",
    "PaymentStatus",
    "Allowances",
    "Deductions",
    "ActivityLog",
    "Notification",
]
