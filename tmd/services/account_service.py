"""
Account service for login, logout and admin-driven registration.
"""

import logging
from typing import Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from tmd.models.audit import LoginHistory
from tmd.models.user import User, Role, Department, ROLE_ADMIN, ROLE_STAFF
from tmd.schemas.user import UserCreate
from tmd.services.audit_service import AuditService
from tmd.utils.auth import get_password_hash, verify_password
from tmd.utils.datetime_utils import local_now
from tmd.utils.validators import ValidationError, validate_password, parse_browser, parse_device

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"
ACCOUNT_LOCKED = "Your account has been locked. Please contact an administrator"


class AccountService:
    """帳號登入與註冊業務邏輯"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def ensure_roles(self) -> None:
        """確保 Admin / Staff 角色存在"""
        existing = {r.role_name for r in self.db.query(Role).all()}
        for role_name, description in ((ROLE_ADMIN, "Administrator"), (ROLE_STAFF, "Staff member")):
            if role_name not in existing:
                self.db.add(Role(role_name=role_name, description=description))
        self.db.commit()

    def ensure_default_admin(self, username: str, password: str, full_name: str) -> Optional[User]:
        """系統沒有任何管理員時建立預設管理員"""
        self.ensure_roles()
        admin_role = self.db.query(Role).filter(Role.role_name == ROLE_ADMIN).first()
        if self.db.query(User).filter(User.role_id == admin_role.role_id).count() > 0:
            return None

        admin = User(
            username=username,
            password_hash=get_password_hash(password),
            full_name=full_name,
            role_id=admin_role.role_id,
            is_active=True,
            created_at=local_now()
        )
        self.db.add(admin)
        self.db.commit()
        self.db.refresh(admin)
        logger.warning(f"Created default admin account '{username}'. Change its password.")
        return admin

    def _record_login(self, user: Optional[User], username: str, is_success: bool,
                      fail_reason: Optional[str] = None) -> LoginHistory:
        user_agent = self.audit.user_agent
        history = LoginHistory(
            user_id=user.user_id if user else None,
            username=username,
            login_time=local_now(),
            ip_address=self.audit.ip_address,
            user_agent=user_agent,
            browser=parse_browser(user_agent),
            device=parse_device(user_agent),
            is_success=is_success,
            fail_reason=fail_reason
        )
        self.db.add(history)
        self.db.commit()
        return history

    def login(self, username: str, password: str) -> User:
        """
        驗證帳號密碼。

        失敗時寫入登入紀錄與稽核並拋出 ValidationError；帳號不存在與密碼錯誤使用相同訊息。

        Args:
            username: 帳號
            password: 密碼

        Returns:
            登入成功的用戶

        Raises:
            ValidationError: 帳號或密碼錯誤、帳號已鎖定
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")

        user = self.db.query(User).options(
            joinedload(User.role), joinedload(User.department)
        ).filter(User.username == username).first()

        if user is None:
            self._record_login(None, username, False, "Username does not exist")
            self.audit.log_failed_attempt(None, "LOGIN", "User", "Username does not exist",
                                          {"username": username})
            raise ValidationError(INVALID_CREDENTIALS)

        if not verify_password(password, user.password_hash):
            self._record_login(user, username, False, "Wrong password")
            self.audit.log_failed_attempt(user.user_id, "LOGIN", "User", "Wrong password",
                                          {"username": username})
            raise ValidationError(INVALID_CREDENTIALS)

        if not user.is_active:
            self._record_login(user, username, False, "Account locked")
            self.audit.log_failed_attempt(user.user_id, "LOGIN", "User", "Account locked",
                                          {"username": username})
            raise ValidationError(ACCOUNT_LOCKED)

        previous_login = user.last_login_at
        user.last_login_at = local_now()
        self.db.commit()

        history = self._record_login(user, username, True)
        self.audit.log_detailed(
            user.user_id, "LOGIN", "User", user.user_id,
            description=f"{user.full_name} logged in",
            extra={
                "browser": history.browser,
                "device": history.device,
                "role": user.role_name,
                "previous_login": previous_login.isoformat() if previous_login else None,
            }
        )
        logger.info(f"User {user.username} logged in")
        return user

    @staticmethod
    def redirect_url_for(user: User) -> str:
        return "/admin/dashboard" if user.role_name == ROLE_ADMIN else "/staff/dashboard"

    def logout(self, user_id: Optional[int]) -> None:
        """寫入登出稽核並標記最近一筆登入紀錄的登出時間"""
        if user_id is None:
            return
        history = self.db.query(LoginHistory).filter(
            LoginHistory.user_id == user_id,
            LoginHistory.is_success == True,
            LoginHistory.logout_time.is_(None)
        ).order_by(LoginHistory.login_time.desc(), LoginHistory.login_history_id.desc()).first()
        if history:
            history.logout_time = local_now()
            self.db.commit()
        self.audit.log(user_id, "LOGOUT", "User", user_id, description="User logged out")

    def register(self, data: UserCreate, created_by: int) -> User:
        """
        管理員建立新帳號。

        Raises:
            ValidationError: 帳號或 email 重複、角色或部門不存在、密碼太短
        """
        username = data.username.strip()
        try:
            validate_password(data.password)

            if self.db.query(User).filter(User.username == username).first():
                raise ValidationError("Username already exists", "username")

            email = str(data.email).strip() if data.email else None
            if email and self.db.query(User).filter(func.lower(User.email) == email.lower()).first():
                raise ValidationError("Email is already in use", "email")

            role = self.db.query(Role).filter(Role.role_id == data.role_id).first()
            if not role:
                raise ValidationError("Role does not exist", "role_id")

            if data.department_id is not None:
                department = self.db.query(Department).filter(
                    Department.department_id == data.department_id,
                    Department.is_active == True
                ).first()
                if not department:
                    raise ValidationError("Department does not exist", "department_id")
        except ValidationError as e:
            self.audit.log_failed_attempt(created_by, "CREATE", "User", e.message, {"username": username})
            raise

        now = local_now()
        user = User(
            username=username,
            password_hash=get_password_hash(data.password),
            full_name=data.full_name.strip(),
            email=email,
            phone_number=data.phone_number,
            avatar=data.avatar,
            department_id=data.department_id,
            role_id=data.role_id,
            is_active=True,
            created_at=now,
            created_by=created_by,
            updated_at=now
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        self.audit.log(
            created_by, "CREATE", "User", user.user_id, None,
            {"username": user.username, "full_name": user.full_name, "email": user.email,
             "role": role.role_name, "department_id": user.department_id},
            f"Created account {user.username}"
        )
        logger.info(f"Registered user {user.username} by {created_by}")
        return user
