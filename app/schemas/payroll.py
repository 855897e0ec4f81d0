from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional
from app.core.security import decrypt_data, mask_account_number
from app.models.payroll import PaymentMethod, PaymentStatus

class AllowancesSchema(BaseModel):
    hra: float = Field(0.0, ge=0)
    transport: float = Field(0.0, ge=0)
    medical: float = Field(0.0, ge=0)
    bonus: float = Field(0.0, ge=0)
    others: float = Field(0.0, ge=0)

    model_config = ConfigDict(from_attributes=True)

class DeductionsSchema(BaseModel):
    tax: float = Field(0.0, ge=0)
    provident_fund: float = Field(0.0, ge=0)
    insurance: float = Field(0.0, ge=0)
    professional_tax: float = Field(0.0, ge=0)
    loan_deduction: float = Field(0.0, ge=0)
    others: float = Field(0.0, ge=0)

    model_config = ConfigDict(from_attributes=True)

class BankAccount(BaseModel):
    account_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    bank_name: Optional[str] = None
    ifsc_code: Optional[str] = Field(None, max_length=20)
    branch: Optional[str] = None

class PayrollCreate(BaseModel):
    employee_id: int
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2020, le=2100)
    base_salary: float = Field(..., ge=0)
    allowances: AllowancesSchema = AllowancesSchema()
    deductions: DeductionsSchema = DeductionsSchema()
    # Left out: derived from attendance and approved leave for the month
    total_days: Optional[int] = Field(None, ge=1, le=31)
    working_days: Optional[float] = Field(None, ge=0, le=31)
    paid_leave_days: Optional[float] = Field(None, ge=0, le=31)
    unpaid_leave_days: Optional[float] = Field(None, ge=0, le=31)
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    bank_account: Optional[BankAccount] = None
    notes: Optional[str] = Field(None, max_length=1000)

class PayrollUpdate(BaseModel):
    base_salary: Optional[float] = Field(None, ge=0)
    allowances: Optional[dict] = None
    deductions: Optional[dict] = None
    total_days: Optional[int] = Field(None, ge=1, le=31)
    working_days: Optional[float] = Field(None, ge=0, le=31)
    paid_leave_days: Optional[float] = Field(None, ge=0, le=31)
    unpaid_leave_days: Optional[float] = Field(None, ge=0, le=31)
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    bank_account: Optional[BankAccount] = None
    notes: Optional[str] = Field(None, max_length=1000)

class PayRequest(BaseModel):
    transaction_id: Optional[str] = Field(None, max_length=100)
    payment_date: Optional[datetime] = None

class PaymentMetadataUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)
    salary_slip_url: Optional[str] = None

class PayrollResponse(BaseModel):
    id: int
    employee_id: int
    month: int
    year: int
    base_salary: float
    allowances: AllowancesSchema
    deductions: DeductionsSchema
    gross_salary: float
    net_salary: float
    working_days: Optional[float] = None
    total_days: Optional[int] = None
    paid_leave_days: float
    unpaid_leave_days: float
    payment_status: str
    payment_method: str
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_name: Optional[str] = None
    notes: Optional[str] = None
    salary_slip_url: Optional[str] = None
    processed_by_id: Optional[int] = None
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("bank_account_number", mode="before")
    @classmethod
    def mask_account(cls, value):
        # Never return the full number
        return mask_account_number(decrypt_data(value)) if value else value

class YearlySummary(BaseModel):
    employee_id: int
    year: int
    total_gross: float
    total_net: float
    months_paid: int
