from .user import Role, Department, User, ROLE_ADMIN, ROLE_STAFF
from .task import Task, UserTask
from .attendance import Attendance
from .requests import LeaveRequest, OvertimeRequest, LateRequest
from .audit import AuditLog, LoginHistory, PasswordResetHistory
from .setting import SystemSetting, LayoutTemplate, LayoutBackup

__all__ = [
    "Role", "Department", "User", "ROLE_ADMIN", "ROLE_STAFF",
    "Task", "UserTask", "Attendance",
    "LeaveRequest", "OvertimeRequest", "LateRequest",
    "AuditLog", "LoginHistory", "PasswordResetHistory", "SystemSetting",
    "LayoutTemplate", "LayoutBackup"
]
