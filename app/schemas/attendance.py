from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional
from app.models.attendance import AttendanceStatus

class PunchRequest(BaseModel):
    """Check-in / check-out body. Without a timestamp the server clock is used; a given timestamp must fall on today (org time)."""
    timestamp: Optional[datetime] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

class StatusOverride(BaseModel):
    status: AttendanceStatus
    remarks: Optional[str] = Field(None, max_length=500)

class MarkLeaveRequest(BaseModel):
    employee_id: int
    start_date: date
    end_date: date

class AttendanceResponse(BaseModel):
    id: int
    employee_id: int
    date: date
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    status: str
    working_hours: float
    remarks: Optional[str] = None
    modified_by_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

class MarkLeaveResponse(BaseModel):
    marked: List[AttendanceResponse]
    skipped: List[date]

class AttendanceStatusStats(BaseModel):
    count: int
    total_hours: float
