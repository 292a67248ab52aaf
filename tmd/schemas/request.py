from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
from enum import Enum


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class RequestType(str, Enum):
    LEAVE = "leave"
    OVERTIME = "overtime"
    LATE = "late"


class LeaveType(str, Enum):
    ANNUAL = "Annual"
    SICK = "Sick"
    PERSONAL = "Personal"
    UNPAID = "Unpaid"


class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=1000)


class OvertimeRequestCreate(BaseModel):
    work_date: date
    actual_check_out_time: str
    overtime_hours: float
    reason: str = Field(..., min_length=1, max_length=500)
    task_description: Optional[str] = Field(None, max_length=1000)


class LateRequestCreate(BaseModel):
    request_date: date
    expected_arrival_time: str
    reason: str = Field(..., min_length=1, max_length=500)


class ReviewRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=1000)

