"""
Staff self-service API routes: profile, tasks, attendance check-in/out and requests.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from tmd.database import get_db
from tmd.models.user import User
from tmd.schemas.attendance import AttendanceResponse, AttendancePage
from tmd.schemas.audit import LoginHistoryResponse
from tmd.schemas.request import (
    RequestStatus, RequestType, LeaveRequestCreate, OvertimeRequestCreate, LateRequestCreate
)
from tmd.schemas.task import TaskProgressUpdate
from tmd.schemas.user import UserResponse, ProfileUpdate, ChangePasswordRequest
from tmd.services.attendance_service import AttendanceService, AttendancePunch
from tmd.services.audit_service import AuditService, get_audit_service
from tmd.services.dashboard_service import DashboardService
from tmd.services.notification_service import NotificationService
from tmd.services.payroll_service import PayrollService
from tmd.services.request_service import RequestService, serialize_request
from tmd.services.task_service import TaskService
from tmd.services.user_service import UserService
from tmd.utils.auth import get_current_active_user, clear_session
from tmd.utils.datetime_utils import local_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/staff", tags=["staff"])

notifications = NotificationService()


# ---- 個人資料 ----

@router.get("/dashboard", summary="個人儀表板")
async def dashboard(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    return DashboardService(db).staff_dashboard(current_user)


@router.get("/profile", response_model=UserResponse, summary="個人資料")
async def profile(current_user: User = Depends(get_current_active_user)):
    return UserResponse.model_validate(current_user)


@router.put("/profile", response_model=UserResponse, summary="更新個人資料")
async def update_profile(
    request: Request,
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    更新姓名、email、電話。

    - email 不可與其他用戶重複
    """
    user = UserService(db, audit).update_profile(current_user.user_id, payload)
    request.session["full_name"] = user.full_name
    return UserResponse.model_validate(user)


@router.post("/change-password", summary="變更密碼")
async def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """變更密碼後需重新登入"""
    UserService(db, audit).change_password(current_user.user_id, payload)
    clear_session(request)
    return {"success": True, "message": "Password changed. Please log in again",
            "redirect_url": "/account/login"}


@router.get("/login-history", response_model=List[LoginHistoryResponse], summary="個人登入紀錄")
async def my_login_history(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    histories = UserService(db, audit).my_login_history(current_user.user_id)
    return [LoginHistoryResponse.model_validate(h) for h in histories]


@router.get("/department", summary="所屬部門")
async def my_department(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    return UserService(db).my_department(current_user.user_id)


# ---- 任務 ----

@router.get("/tasks", summary="我的任務")
async def my_tasks(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    return TaskService(db).get_user_tasks(current_user.user_id)


@router.get("/tasks/summary", summary="我的任務摘要")
async def my_tasks_summary(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    return TaskService(db).get_tasks_summary(current_user.user_id)


@router.get("/tasks/{user_task_id}", summary="任務詳細資料")
async def my_task_detail(
    user_task_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    return TaskService(db).get_user_task_detail(current_user.user_id, user_task_id)


@router.put("/tasks/{user_task_id}/progress", summary="更新任務進度")
async def update_task_progress(
    user_task_id: int,
    payload: TaskProgressUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    service = TaskService(db, audit)
    service.update_progress(current_user.user_id, user_task_id, payload)
    return service.get_user_task_detail(current_user.user_id, user_task_id)


# ---- 考勤 ----

@router.get("/attendance/today", summary="今日考勤")
async def today_attendance(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    attendance = AttendanceService(db).get_today_attendance(current_user.user_id)
    return {
        "has_checked_in": bool(attendance and attendance.check_in_time),
        "has_checked_out": bool(attendance and attendance.check_out_time),
        "attendance": AttendanceResponse.model_validate(attendance) if attendance else None,
    }


async def _punch_from_form(latitude: float, longitude: float, notes: Optional[str],
                           address: Optional[str], photo: Optional[UploadFile]) -> AttendancePunch:
    content = await photo.read() if photo is not None else None
    return AttendancePunch(
        latitude=latitude,
        longitude=longitude,
        photo_filename=photo.filename if photo is not None else None,
        photo_content=content,
        notes=notes.strip() if notes else None,
        address=address.strip() if address else None
    )


@router.post("/attendance/check-in", response_model=AttendanceResponse, summary="上班打卡")
async def check_in(
    latitude: float = Form(...),
    longitude: float = Form(...),
    notes: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    上班打卡。

    - 每日一次，以伺服器時間為準
    - 照片必填：jpg/jpeg/png，最大 10MB
    """
    punch = await _punch_from_form(latitude, longitude, notes, address, photo)
    service = AttendanceService(db, audit)
    await service.resolve_address(punch)
    attendance = service.check_in(current_user, punch)
    return AttendanceResponse.model_validate(attendance)


@router.post("/attendance/check-out", response_model=AttendanceResponse, summary="下班打卡")
async def check_out(
    latitude: float = Form(...),
    longitude: float = Form(...),
    notes: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    punch = await _punch_from_form(latitude, longitude, notes, address, photo)
    service = AttendanceService(db, audit)
    await service.resolve_address(punch)
    attendance = service.check_out(current_user, punch)
    return AttendanceResponse.model_validate(attendance)


@router.get("/attendance/history", response_model=AttendancePage, summary="考勤紀錄")
async def attendance_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    result = AttendanceService(db).get_history(current_user.user_id, page, page_size)
    result["records"] = [AttendanceResponse.model_validate(r) for r in result["records"]]
    return AttendancePage(**result)


@router.get("/attendance/address", summary="座標轉地址")
async def address_from_coordinates(
    latitude: float = Query(...),
    longitude: float = Query(...),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    return {"address": await AttendanceService(db).reverse_geocode(latitude, longitude)}


# ---- 申請 ----

@router.post("/requests/leave", status_code=status.HTTP_201_CREATED, summary="請假申請")
async def create_leave_request(
    payload: LeaveRequestCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    request_obj = RequestService(db, audit).create_leave_request(current_user, payload)
    await notifications.notify_request_submitted(request_obj, current_user)
    return serialize_request(request_obj)


@router.post("/requests/overtime", status_code=status.HTTP_201_CREATED, summary="加班申請")
async def create_overtime_request(
    payload: OvertimeRequestCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    request_obj = RequestService(db, audit).create_overtime_request(current_user, payload)
    await notifications.notify_request_submitted(request_obj, current_user)
    return serialize_request(request_obj)


@router.post("/requests/late", status_code=status.HTTP_201_CREATED, summary="遲到申請")
async def create_late_request(
    payload: LateRequestCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    request_obj = RequestService(db, audit).create_late_request(current_user, payload)
    await notifications.notify_request_submitted(request_obj, current_user)
    return serialize_request(request_obj)


@router.post("/requests/{request_type}/{request_id}/proof", summary="上傳證明文件")
async def upload_proof(
    request_type: RequestType,
    request_id: int,
    document: UploadFile = File(...),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    content = await document.read()
    request_obj = RequestService(db, audit).attach_proof(
        current_user, request_type, request_id, document.filename, content
    )
    return serialize_request(request_obj)


@router.get("/requests", summary="我的申請")
async def my_requests(
    request_type: Optional[RequestType] = Query(None),
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    requests = RequestService(db).list_requests(request_type, request_status, current_user.user_id)
    return [serialize_request(r) for r in requests]


@router.post("/requests/{request_type}/{request_id}/cancel", summary="取消申請")
async def cancel_request(
    request_type: RequestType,
    request_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    request_obj = RequestService(db, audit).cancel_request(current_user, request_type, request_id)
    return {"success": True, "message": "Request cancelled", "request": serialize_request(request_obj)}


@router.get("/payroll", summary="個人薪資")
async def my_payroll(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    now = local_now()
    return PayrollService(db).calculate_monthly_salary(current_user.user_id, year or now.year, month or now.month)
