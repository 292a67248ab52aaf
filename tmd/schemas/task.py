from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class TaskPriority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class TaskBase(BaseModel):
    task_name: str = Field(..., max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    platform: Optional[str] = Field(None, max_length=200)
    target_per_week: int = 0
    deadline: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.MEDIUM


class TaskCreate(TaskBase):
    assigned_user_ids: List[int] = []


class TaskUpdate(TaskCreate):
    pass


class TaskProgressUpdate(BaseModel):
    completed_this_week: int = Field(..., ge=0)
    report_link: Optional[str] = Field(None, max_length=500)
