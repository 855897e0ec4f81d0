from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Dict, List, Optional
from app.models.leave_request import LeaveType

class Attachment(BaseModel):
    file_name: str = Field(..., max_length=255)
    file_url: str
    uploaded_at: Optional[datetime] = None

class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str
    remarks: Optional[str] = Field(None, max_length=500)
    attachments: List[Attachment] = []

class LeaveRequestUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""
    leave_type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None
    remarks: Optional[str] = Field(None, max_length=500)
    attachments: Optional[List[Attachment]] = None

class LeaveDecision(BaseModel):
    comment: Optional[str] = None

class LeaveRequestResponse(BaseModel):
    id: int
    employee_id: int
    leave_type: str
    start_date: date
    end_date: date
    number_of_days: float
    reason: str
    remarks: Optional[str] = None
    status: str
    approver_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    approver_comments: Optional[str] = None
    cancelled_by_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    attachments: List[Dict] = []
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class LeaveTypeStats(BaseModel):
    total_days: float
    count: int

class LeaveAllocationResponse(BaseModel):
    total: float
    used: float
    remaining: float

    model_config = ConfigDict(from_attributes=True)

class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: int
    year: int
    paid_leave: LeaveAllocationResponse
    sick_leave: LeaveAllocationResponse
    casual_leave: LeaveAllocationResponse
    maternity_leave: LeaveAllocationResponse
    paternity_leave: LeaveAllocationResponse
    carry_forward: float
    total_leave_taken: float
    total_allocated: float
    total_available: float
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class AllocationAdjustment(BaseModel):
    leave_type: LeaveType
    new_total: float = Field(..., ge=0)
    year: Optional[int] = Field(None, ge=2000, le=2100)

class RolloverRequest(BaseModel):
    year: int = Field(..., ge=2001, le=2100)

class RolloverResponse(BaseModel):
    year: int
    created: int
    employee_ids: List[int]
