from dataclasses import dataclass
from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import composite, relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.leave_request import LeaveType


@dataclass(frozen=True)
class LeaveAllocation:
    """Allocation triple for one leave category. Replaced, never mutated in place."""
    total: float = 0.0
    used: float = 0.0
    remaining: float = 0.0

    def __composite_values__(self):
        return self.total, self.used, self.remaining


# Unpaid leave has no bucket
LEDGER_CATEGORIES = (
    LeaveType.PAID,
    LeaveType.SICK,
    LeaveType.CASUAL,
    LeaveType.MATERNITY,
    LeaveType.PATERNITY,
)

_ATTRS = {
    LeaveType.PAID: "paid_leave",
    LeaveType.SICK: "sick_leave",
    LeaveType.CASUAL: "casual_leave",
    LeaveType.MATERNITY: "maternity_leave",
    LeaveType.PATERNITY: "paternity_leave",
}


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "year", name="uq_leave_balance_employee_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False)

    paid_total = Column(Float, default=0.0, nullable=False)
    paid_used = Column(Float, default=0.0, nullable=False)
    paid_remaining = Column(Float, default=0.0, nullable=False)
    sick_total = Column(Float, default=0.0, nullable=False)
    sick_used = Column(Float, default=0.0, nullable=False)
    sick_remaining = Column(Float, default=0.0, nullable=False)
    casual_total = Column(Float, default=0.0, nullable=False)
    casual_used = Column(Float, default=0.0, nullable=False)
    casual_remaining = Column(Float, default=0.0, nullable=False)
    maternity_total = Column(Float, default=0.0, nullable=False)
    maternity_used = Column(Float, default=0.0, nullable=False)
    maternity_remaining = Column(Float, default=0.0, nullable=False)
    paternity_total = Column(Float, default=0.0, nullable=False)
    paternity_used = Column(Float, default=0.0, nullable=False)
    paternity_remaining = Column(Float, default=0.0, nullable=False)

    paid_leave = composite(LeaveAllocation, paid_total, paid_used, paid_remaining)
    sick_leave = composite(LeaveAllocation, sick_total, sick_used, sick_remaining)
    casual_leave = composite(LeaveAllocation, casual_total, casual_used, casual_remaining)
    maternity_leave = composite(LeaveAllocation, maternity_total, maternity_used, maternity_remaining)
    paternity_leave = composite(LeaveAllocation, paternity_total, paternity_used, paternity_remaining)

    carry_forward = Column(Float, default=0.0, nullable=False)  # 0..15, audit only
    total_leave_taken = Column(Float, default=0.0, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    employee = relationship("User")

    def allocation(self, leave_type: LeaveType) -> LeaveAllocation:
        return getattr(self, _ATTRS[leave_type])

    def set_allocation(self, leave_type: LeaveType, value: LeaveAllocation) -> None:
        setattr(self, _ATTRS[leave_type], value)

    @property
    def total_allocated(self) -> float:
        return sum(self.allocation(t).total for t in LEDGER_CATEGORIES)

    @property
    def total_available(self) -> float:
        return sum(self.allocation(t).remaining for t in LEDGER_CATEGORIES)

    def __repr__(self):
        return f"<LeaveBalance employee={self.employee_id} year={self.year}>"
