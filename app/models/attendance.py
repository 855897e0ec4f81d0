from sqlalchemy import Column, Integer, String, Date, Float, ForeignKey, DateTime, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class AttendanceStatus(str, enum.Enum):
    PRESENT = "Present"
    ABSENT = "Absent"
    HALF_DAY = "Half-day"
    LEAVE = "Leave"

class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    # Naive wall-clock timestamps in the organization's timezone
    check_in_time = Column(DateTime, nullable=True)
    check_out_time = Column(DateTime, nullable=True)
    check_in_latitude = Column(Float, nullable=True)
    check_in_longitude = Column(Float, nullable=True)
    check_out_latitude = Column(Float, nullable=True)
    check_out_longitude = Column(Float, nullable=True)

    status = Column(String(20), default=AttendanceStatus.ABSENT.value, nullable=False, index=True)
    # True while the status is the one check-in set; explicit assignments clear it
    status_provisional = Column(Boolean, default=False, nullable=False)
    working_hours = Column(Float, default=0.0, nullable=False)
    remarks = Column(String(500), nullable=True)

    modified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("User", foreign_keys=[employee_id])

    @property
    def is_checked_in(self) -> bool:
        return self.check_in_time is not None and self.check_out_time is None

    def __repr__(self):
        return f"<AttendanceRecord employee={self.employee_id} date={self.date} {self.status}>"
