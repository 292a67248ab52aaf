from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime


class LoginRequest(BaseModel):
    username: str
    password: str


class SessionUser(BaseModel):
    user_id: int
    username: str
    full_name: str
    role_name: Optional[str] = None
    avatar: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    redirect_url: str
    user: SessionUser


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    full_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=20)
    avatar: Optional[str] = None
    department_id: Optional[int] = None
    role_id: int


class UserCreate(UserBase):
    password: str


class UserResponse(BaseModel):
    user_id: int
    username: str
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    avatar: Optional[str] = None
    department_id: Optional[int] = None
    department_name: Optional[str] = None
    role_id: int
    role_name: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=20)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class ResetPasswordRequest(BaseModel):
    new_password: str
    reason: str
