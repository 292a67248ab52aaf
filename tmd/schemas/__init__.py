from .user import (
    LoginRequest, LoginResponse, SessionUser, UserCreate, UserResponse,
    ProfileUpdate, ChangePasswordRequest, ResetPasswordRequest
)
from .department import DepartmentCreate, DepartmentUpdate, DepartmentResponse
from .task import TaskPriority, TaskCreate, TaskUpdate, TaskProgressUpdate
from .attendance import AttendanceResponse, AttendanceStats, AttendancePage
from .request import (
    RequestStatus, RequestType, LeaveType,
    LeaveRequestCreate, OvertimeRequestCreate, LateRequestCreate, ReviewRequest
)
from .setting import (
    SettingUpdate, SettingItem, SettingBatchUpdate, SettingResponse,
    LayoutType, LayoutUpdate, LayoutResponse, LayoutBackupResponse
)
from .audit import AuditLogResponse, LoginHistoryResponse, PasswordResetHistoryResponse

__all__ = [
    "LoginRequest", "LoginResponse", "SessionUser", "UserCreate", "UserResponse",
    "ProfileUpdate", "ChangePasswordRequest", "ResetPasswordRequest",
    "DepartmentCreate", "DepartmentUpdate", "DepartmentResponse",
    "TaskPriority", "TaskCreate", "TaskUpdate", "TaskProgressUpdate",
    "AttendanceResponse", "AttendanceStats", "AttendancePage",
    "RequestStatus", "RequestType", "LeaveType",
    "LeaveRequestCreate", "OvertimeRequestCreate", "LateRequestCreate", "ReviewRequest",
    "SettingUpdate", "SettingItem", "SettingBatchUpdate", "SettingResponse",
    "LayoutType", "LayoutUpdate", "LayoutResponse", "LayoutBackupResponse",
    "AuditLogResponse", "LoginHistoryResponse", "PasswordResetHistoryResponse"
]
