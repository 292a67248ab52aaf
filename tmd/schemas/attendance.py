from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime


class AttendanceResponse(BaseModel):
    attendance_id: int
    user_id: int
    work_date: date
    check_in_time: Optional[datetime] = None
    check_in_latitude: Optional[float] = None
    check_in_longitude: Optional[float] = None
    check_in_address: Optional[str] = None
    check_in_photos: Optional[str] = None
    check_in_notes: Optional[str] = None
    check_out_time: Optional[datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    check_out_address: Optional[str] = None
    check_out_photos: Optional[str] = None
    check_out_notes: Optional[str] = None
    is_late: bool = False
    is_late_excused: bool = False
    is_within_geofence: bool = True
    total_hours: Optional[float] = None
    overtime_hours: Optional[float] = None
    is_on_leave: bool = False
    leave_type: Optional[str] = None

    class Config:
        from_attributes = True


class AttendanceStats(BaseModel):
    """考勤統計"""
    total_records: int = 0
    total_check_ins: int = 0
    total_check_outs: int = 0
    completed_days: int = 0
    on_time_count: int = 0
    late_count: int = 0
    total_hours: float = 0
    within_geofence: int = 0
    outside_geofence: int = 0


class AttendancePage(BaseModel):
    records: List[AttendanceResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
