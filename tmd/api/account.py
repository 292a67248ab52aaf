"""
Account API routes: login, logout, registration and the current session user.
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from tmd.database import get_db
from tmd.models.user import User, Role
from tmd.schemas.user import LoginRequest, LoginResponse, SessionUser, UserCreate, UserResponse
from tmd.services.account_service import AccountService
from tmd.services.audit_service import AuditService, get_audit_service
from tmd.utils.auth import (
    get_current_active_user, get_current_admin_user, set_session_user, clear_session, get_session_user_id
)
from tmd.utils.validators import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["account"])


@router.post("/login", response_model=LoginResponse, summary="登入")
async def login(
    request: Request,
    credentials: LoginRequest,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    帳號密碼登入。

    - 失敗時寫入登入紀錄與稽核
    - 成功時建立 session 並回傳導向頁面
    """
    service = AccountService(db, audit)
    try:
        user = service.login(credentials.username, credentials.password)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)

    clear_session(request)
    session_user = set_session_user(request, user)
    return LoginResponse(
        message=f"Welcome back, {user.full_name}",
        redirect_url=service.redirect_url_for(user),
        user=SessionUser(**session_user)
    )


@router.post("/logout", summary="登出")
async def logout(
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """登出並清除 session"""
    AccountService(db, audit).logout(get_session_user_id(request))
    clear_session(request)
    return {"success": True, "message": "Logged out", "redirect_url": "/account/login"}


@router.get("/me", response_model=UserResponse, summary="目前登入用戶")
async def me(current_user: User = Depends(get_current_active_user)):
    return UserResponse.model_validate(current_user)


@router.get("/roles", summary="角色列表")
async def list_roles(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
) -> List[dict]:
    roles = db.query(Role).order_by(Role.role_name).all()
    return [{"role_id": r.role_id, "role_name": r.role_name, "description": r.description} for r in roles]


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED, summary="建立帳號")
async def register(
    user_data: UserCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    管理員建立新帳號。

    - 帳號、email 不可重複
    - 角色與部門必須存在
    """
    user = AccountService(db, audit).register(user_data, current_user.user_id)
    return UserResponse.model_validate(user)
