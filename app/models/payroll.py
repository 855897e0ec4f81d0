import calendar
from dataclasses import dataclass, fields
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import composite, relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    PAID = "Paid"
    FAILED = "Failed"
    ON_HOLD = "On Hold"

class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    CASH = "Cash"
    OTHER = "Other"

MODIFIABLE_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.ON_HOLD.value)
PAYABLE_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value, PaymentStatus.ON_HOLD.value)


@dataclass(frozen=True)
class Allowances:
    hra: float = 0.0
    transport: float = 0.0
    medical: float = 0.0
    bonus: float = 0.0
    others: float = 0.0

    def __composite_values__(self):
        return tuple(getattr(self, f.name) for f in fields(self))

    @property
    def total(self) -> float:
        return sum(self.__composite_values__())


@dataclass(frozen=True)
class Deductions:
    tax: float = 0.0
    provident_fund: float = 0.0
    insurance: float = 0.0
    professional_tax: float = 0.0
    loan_deduction: float = 0.0
    others: float = 0.0

    def __composite_values__(self):
        return tuple(getattr(self, f.name) for f in fields(self))

    @property
    def total(self) -> float:
        return sum(self.__composite_values__())


class Payroll(Base):
    __tablename__ = "payrolls"
    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="uq_payroll_employee_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    base_salary = Column(Float, nullable=False)

    allowance_hra = Column(Float, default=0.0, nullable=False)
    allowance_transport = Column(Float, default=0.0, nullable=False)
    allowance_medical = Column(Float, default=0.0, nullable=False)
    allowance_bonus = Column(Float, default=0.0, nullable=False)
    allowance_others = Column(Float, default=0.0, nullable=False)
    allowances = composite(
        Allowances,
        allowance_hra, allowance_transport, allowance_medical, allowance_bonus, allowance_others,
    )

    deduction_tax = Column(Float, default=0.0, nullable=False)
    deduction_provident_fund = Column(Float, default=0.0, nullable=False)
    deduction_insurance = Column(Float, default=0.0, nullable=False)
    deduction_professional_tax = Column(Float, default=0.0, nullable=False)
    deduction_loan = Column(Float, default=0.0, nullable=False)
    deduction_others = Column(Float, default=0.0, nullable=False)
    deductions = composite(
        Deductions,
        deduction_tax, deduction_provident_fund, deduction_insurance,
        deduction_professional_tax, deduction_loan, deduction_others,
    )

    gross_salary = Column(Float, nullable=False, default=0.0)
    net_salary = Column(Float, nullable=False, default=0.0)

    working_days = Column(Float, nullable=True)
    total_days = Column(Integer, nullable=True)
    paid_leave_days = Column(Float, default=0.0, nullable=False)
    unpaid_leave_days = Column(Float, default=0.0, nullable=False)

    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    payment_method = Column(String(20), default=PaymentMethod.BANK_TRANSFER.value, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    # account_number is Fernet-encrypted
    bank_account_number = Column(String, nullable=True)
    bank_account_holder = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    bank_ifsc_code = Column(String(20), nullable=True)
    bank_branch = Column(String, nullable=True)

    notes = Column(String(1000), nullable=True)
    salary_slip_url = Column(String, nullable=True)
    processed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("User", foreign_keys=[employee_id])

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]

    def can_be_modified(self) -> bool:
        return self.payment_status in MODIFIABLE_STATUSES

    def __repr__(self):
        return f"<Payroll employee={self.employee_id} {self.month}/{self.year} {self.payment_status}>"
