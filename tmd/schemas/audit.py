from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class AuditLogResponse(BaseModel):
    audit_log_id: int
    user_id: Optional[int] = None
    action: str
    entity_name: Optional[str] = None
    entity_id: Optional[int] = None
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class LoginHistoryResponse(BaseModel):
    login_history_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    login_time: datetime
    logout_time: Optional[datetime] = None
    ip_address: Optional[str] = None
    browser: Optional[str] = None
    device: Optional[str] = None
    is_success: bool
    fail_reason: Optional[str] = None

    class Config:
        from_attributes = True


class PasswordResetHistoryResponse(BaseModel):
    reset_id: int
    user_id: int
    reset_by_user_id: Optional[int] = None
    reset_time: datetime
    reset_reason: Optional[str] = None
    ip_address: Optional[str] = None

    class Config:
        from_attributes = True
