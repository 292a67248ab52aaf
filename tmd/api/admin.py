"""
Admin API routes: dashboard, users, departments, tasks, attendance, requests and audit trails.
"""

import logging
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tmd.config import settings
from tmd.database import get_db
from tmd.models.attendance import Attendance
from tmd.models.user import User
from tmd.schemas.attendance import AttendanceResponse
from tmd.schemas.audit import AuditLogResponse, LoginHistoryResponse, PasswordResetHistoryResponse
from tmd.schemas.department import DepartmentCreate, DepartmentUpdate, DepartmentResponse
from tmd.schemas.request import RequestStatus, RequestType, ReviewRequest
from tmd.schemas.task import TaskCreate, TaskUpdate
from tmd.schemas.user import UserResponse, ResetPasswordRequest
from tmd.services.attendance_service import AttendanceService
from tmd.services.audit_service import AuditService, get_audit_service
from tmd.services.dashboard_service import DashboardService
from tmd.services.department_service import DepartmentService
from tmd.services.notification_service import NotificationService
from tmd.services.payroll_service import PayrollService
from tmd.services.request_service import RequestService, serialize_request
from tmd.services.task_service import TaskService
from tmd.services.user_service import UserService
from tmd.utils.auth import get_current_admin_user
from tmd.utils.datetime_utils import local_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

notifications = NotificationService()


def attendance_row(record: Attendance) -> dict:
    row = AttendanceResponse.model_validate(record).model_dump()
    row["full_name"] = record.user.full_name if record.user else None
    row["department_name"] = record.user.department_name if record.user else None
    return row


# ---- 儀表板 ----

@router.get("/dashboard", summary="管理員儀表板")
async def dashboard(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return DashboardService(db).admin_dashboard()


# ---- 用戶 ----

@router.get("/users", response_model=List[UserResponse], summary="用戶列表")
async def list_users(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    return [UserResponse.model_validate(u) for u in UserService(db, audit).list_users()]


@router.get("/users/active", summary="啟用中用戶（精簡）")
async def list_active_users(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return UserService(db).list_active_users()


@router.get("/users/{user_id}", summary="用戶詳細資料")
async def get_user_details(
    user_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    取得用戶詳細資料。

    - 登入次數、進行中任務、完成數量
    - 最近 5 筆活動
    """
    details = UserService(db, audit).get_user_details(user_id, current_user.user_id)
    details["user"] = UserResponse.model_validate(details["user"])
    details["recent_activities"] = [AuditLogResponse.model_validate(a) for a in details["recent_activities"]]
    return details


@router.post("/users/{user_id}/toggle-status", response_model=UserResponse, summary="切換用戶啟用狀態")
async def toggle_user_status(
    user_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    user = UserService(db, audit).toggle_user_status(user_id, current_user.user_id)
    return UserResponse.model_validate(user)


@router.post("/users/{user_id}/reset-password", summary="重設用戶密碼")
async def reset_user_password(
    user_id: int,
    payload: ResetPasswordRequest,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    重設用戶密碼。

    - 新密碼至少 6 個字元
    - 必須填寫原因，寫入密碼重設紀錄
    """
    user = UserService(db, audit).reset_password(user_id, payload.new_password, payload.reason,
                                                 current_user.user_id)
    return {"success": True, "message": f"Password of {user.username} has been reset"}


@router.get("/users/{user_id}/tasks", summary="用戶任務")
async def get_user_tasks(
    user_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    UserService(db).get_user(user_id)
    return TaskService(db).get_user_tasks(user_id)


@router.get("/password-resets", response_model=List[PasswordResetHistoryResponse], summary="密碼重設紀錄")
async def password_reset_history(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return [PasswordResetHistoryResponse.model_validate(h) for h in UserService(db).list_password_resets()]


# ---- 部門 ----

@router.get("/departments", summary="部門列表")
async def list_departments(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return DepartmentService(db).list_departments()


@router.get("/departments/{department_id}", summary="部門詳細資料")
async def get_department(
    department_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return DepartmentService(db).get_department_details(department_id)


@router.post("/departments", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED,
             summary="建立部門")
async def create_department(
    payload: DepartmentCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    department = DepartmentService(db, audit).create_department(payload, current_user.user_id)
    return DepartmentResponse.model_validate(department)


@router.put("/departments/{department_id}", response_model=DepartmentResponse, summary="更新部門")
async def update_department(
    department_id: int,
    payload: DepartmentUpdate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    department = DepartmentService(db, audit).update_department(department_id, payload, current_user.user_id)
    return DepartmentResponse.model_validate(department)


@router.delete("/departments/{department_id}", summary="刪除部門")
async def delete_department(
    department_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    DepartmentService(db, audit).delete_department(department_id, current_user.user_id)
    return {"success": True, "message": "Department deleted"}


@router.post("/departments/{department_id}/toggle-status", response_model=DepartmentResponse,
             summary="切換部門狀態")
async def toggle_department_status(
    department_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """停用前部門內不可有啟用中的用戶"""
    department = DepartmentService(db, audit).toggle_department_status(department_id, current_user.user_id)
    return DepartmentResponse.model_validate(department)


# ---- 任務 ----

@router.get("/tasks", summary="任務列表")
async def list_tasks(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return TaskService(db).list_tasks()


@router.get("/tasks/{task_id}", summary="任務詳細資料")
async def get_task(
    task_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    service = TaskService(db)
    return service.serialize_task(service.get_task(task_id))


@router.post("/tasks", status_code=status.HTTP_201_CREATED, summary="建立任務")
async def create_task(
    payload: TaskCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    建立任務。

    - 指派的用戶會收到 task_assigned 通知
    """
    service = TaskService(db, audit)
    task = service.create_task(payload, current_user.user_id)
    await notifications.notify_task_assigned(task, payload.assigned_user_ids)
    return service.serialize_task(service.get_task(task.task_id))


@router.put("/tasks/{task_id}", summary="更新任務")
async def update_task(
    task_id: int,
    payload: TaskUpdate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    service = TaskService(db, audit)
    previous = {ut.user_id for ut in service.get_task(task_id).user_tasks}
    task = service.update_task(task_id, payload, current_user.user_id)
    newly_assigned = set(payload.assigned_user_ids) - previous
    if newly_assigned:
        await notifications.notify_task_assigned(task, newly_assigned)
    return service.serialize_task(task)


@router.delete("/tasks/{task_id}", summary="刪除任務")
async def delete_task(
    task_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    TaskService(db, audit).delete_task(task_id, current_user.user_id)
    return {"success": True, "message": "Task deleted"}


@router.post("/tasks/{task_id}/toggle-status", summary="切換任務啟用狀態")
async def toggle_task_status(
    task_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    task = TaskService(db, audit).toggle_task_status(task_id, current_user.user_id)
    return {"success": True, "task_id": task.task_id, "is_active": task.is_active}


# ---- 考勤 ----

@router.get("/attendance", summary="單日考勤")
async def attendance_by_date(
    work_date: Optional[date] = Query(None, description="日期，預設今天"),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    records = AttendanceService(db).list_by_date(work_date)
    return [attendance_row(r) for r in records]


@router.get("/attendance/history", summary="考勤查詢")
async def attendance_history(
    user_id: Optional[int] = Query(None),
    department_id: Optional[int] = Query(None),
    from_date: Optional[date] = Query(None, description="開始日期，預設 30 天前"),
    to_date: Optional[date] = Query(None, description="結束日期，預設今天"),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    result = AttendanceService(db).search(user_id, department_id, from_date, to_date)
    return {
        "from_date": result["from_date"],
        "to_date": result["to_date"],
        "stats": result["stats"],
        "records": [attendance_row(r) for r in result["records"]],
    }


# ---- 申請審核 ----

@router.get("/requests", summary="申請列表")
async def list_requests(
    request_type: Optional[RequestType] = Query(None),
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    requests = RequestService(db).list_requests(request_type, request_status, user_id)
    return [serialize_request(r) for r in requests]


@router.get("/requests/{request_type}/{request_id}", summary="申請詳細資料")
async def get_request(
    request_type: RequestType,
    request_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return serialize_request(RequestService(db).get_request(request_type, request_id))


@router.post("/requests/{request_type}/{request_id}/approve", summary="核准申請")
async def approve_request(
    request_type: RequestType,
    request_id: int,
    payload: Optional[ReviewRequest] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    核准申請。

    - 請假：標記請假日的考勤
    - 加班：寫入加班時數
    - 遲到：將遲到標記為已核准
    - 回傳每個受影響月份重新計算的薪資
    """
    result = RequestService(db, audit).approve_request(
        request_type, request_id, current_user, payload.note if payload else None
    )
    await notifications.notify_request_reviewed(result["request"])
    return {
        "success": True,
        "message": "Request approved",
        "request": serialize_request(result["request"]),
        "attendance_updated": result["attendance_updated"],
        "salaries": result["salaries"],
    }


@router.post("/requests/{request_type}/{request_id}/reject", summary="拒絕申請")
async def reject_request(
    request_type: RequestType,
    request_id: int,
    payload: ReviewRequest,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    request_obj = RequestService(db, audit).reject_request(request_type, request_id, current_user, payload.note)
    await notifications.notify_request_reviewed(request_obj)
    return {"success": True, "message": "Request rejected", "request": serialize_request(request_obj)}


# ---- 稽核 ----

@router.get("/audit-logs", response_model=List[AuditLogResponse], summary="稽核紀錄")
async def audit_logs(
    action: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    current_user: User = Depends(get_current_admin_user),
    audit: AuditService = Depends(get_audit_service)
):
    logs = audit.search_logs(action, from_date, to_date, settings.AUDIT_LOG_LIMIT)
    audit.log_view(current_user.user_id, "AuditLog", description="Viewed audit logs")
    return [AuditLogResponse.model_validate(entry) for entry in logs]


@router.get("/audit-logs/actions", response_model=List[str], summary="稽核動作列表")
async def audit_actions(
    current_user: User = Depends(get_current_admin_user),
    audit: AuditService = Depends(get_audit_service)
):
    return audit.distinct_actions()


@router.get("/login-history", response_model=List[LoginHistoryResponse], summary="登入紀錄")
async def login_history(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    is_success: Optional[bool] = Query(None),
    current_user: User = Depends(get_current_admin_user),
    audit: AuditService = Depends(get_audit_service)
):
    histories = audit.search_login_history(from_date, to_date, is_success, settings.LOGIN_HISTORY_LIMIT)
    return [LoginHistoryResponse.model_validate(h) for h in histories]


# ---- 薪資 ----

@router.get("/payroll", summary="薪資計算")
async def payroll(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    user_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    now = local_now()
    year = year or now.year
    month = month or now.month
    service = PayrollService(db)
    if user_id:
        return service.calculate_monthly_salary(user_id, year, month)
    return service.calculate_all(year, month)
