from datetime import date
from sqlalchemy import Column, Integer, String, Date, Float, ForeignKey, DateTime, Boolean, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveType(str, enum.Enum):
    PAID = "Paid"
    SICK = "Sick"
    UNPAID = "Unpaid"
    CASUAL = "Casual"
    MATERNITY = "Maternity"
    PATERNITY = "Paternity"

class LeaveStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"

# Statuses that take part in overlap detection
ACTIVE_LEAVE_STATUSES = (LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value)

class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_employee_range", "employee_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    number_of_days = Column(Float, nullable=False)
    reason = Column(String(500), nullable=False)
    remarks = Column(String(500), nullable=True)
    status = Column(String(20), default=LeaveStatus.PENDING.value, nullable=False, index=True)

    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)  # also stamped on rejection
    approver_comments = Column(String(500), nullable=True)

    cancelled_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    attachments = Column(JSON, default=list)  # [{file_name, file_url, uploaded_at}]
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("User", foreign_keys=[employee_id])
    approver = relationship("User", foreign_keys=[approver_id])

    @property
    def category(self) -> LeaveType:
        return LeaveType(self.leave_type)

    def can_be_cancelled(self, today: date) -> bool:
        return (
            self.status == LeaveStatus.PENDING.value
            or (self.status == LeaveStatus.APPROVED.value and self.start_date > today)
        )

    def can_be_edited(self) -> bool:
        return self.status == LeaveStatus.PENDING.value

    def __repr__(self):
        return f"<LeaveRequest {self.id} {self.leave_type} {self.start_date}..{self.end_date} {self.status}>"
