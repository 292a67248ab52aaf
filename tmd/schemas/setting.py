from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class SettingUpdate(BaseModel):
    setting_value: Optional[str] = None


class SettingItem(BaseModel):
    setting_key: str = Field(..., min_length=1, max_length=100)
    setting_value: Optional[str] = None


class SettingBatchUpdate(BaseModel):
    settings: List[SettingItem]


class SettingResponse(BaseModel):
    setting_id: int
    setting_key: str
    setting_value: Optional[str] = None
    description: Optional[str] = None
    data_type: Optional[str] = None
    category: Optional[str] = None
    is_active: bool
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None

    class Config:
        from_attributes = True


class LayoutType(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class LayoutUpdate(BaseModel):
    content: str


class LayoutResponse(BaseModel):
    layout_type: LayoutType
    content: str = ""
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None

    class Config:
        from_attributes = True


class LayoutBackupResponse(BaseModel):
    backup_id: int
    layout_type: LayoutType
    size: int
    created_at: Optional[datetime] = None
    created_by: Optional[int] = None
