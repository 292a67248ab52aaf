"""
User management service: admin user operations and staff self-service profile.
"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from tmd.models.audit import AuditLog, LoginHistory, PasswordResetHistory
from tmd.models.task import Task, UserTask
from tmd.models.user import User, Department
from tmd.schemas.user import ProfileUpdate, ChangePasswordRequest
from tmd.services.audit_service import AuditService
from tmd.utils.auth import get_password_hash, verify_password
from tmd.utils.datetime_utils import local_now
from tmd.utils.validators import ValidationError, NotFoundError, validate_password

logger = logging.getLogger(__name__)


class UserService:
    """用戶管理業務邏輯服務"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).options(
            joinedload(User.role), joinedload(User.department)
        ).filter(User.user_id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def list_users(self) -> List[User]:
        """取得所有用戶（依姓名排序）"""
        return self.db.query(User).options(
            joinedload(User.role), joinedload(User.department)
        ).order_by(User.full_name).all()

    def list_active_users(self) -> List[Dict[str, Any]]:
        """取得啟用中的用戶精簡清單（供指派任務下拉選單）"""
        users = self.db.query(User).filter(User.is_active == True).order_by(User.full_name).all()
        return [
            {
                "user_id": u.user_id,
                "username": u.username,
                "full_name": u.full_name,
                "department_id": u.department_id,
            }
            for u in users
        ]

    def get_user_details(self, user_id: int, viewer_id: int) -> Dict[str, Any]:
        """
        取得用戶詳細資料與統計。

        Args:
            user_id: 目標用戶 ID
            viewer_id: 檢視者 ID（寫入 VIEW 稽核）

        Returns:
            用戶資料、登入次數、任務統計、最近活動
        """
        user = self.get_user(user_id)

        total_logins = self.db.query(LoginHistory).filter(
            LoginHistory.user_id == user_id,
            LoginHistory.is_success == True
        ).count()
        active_tasks = self.db.query(UserTask).join(Task).filter(
            UserTask.user_id == user_id,
            Task.is_active == True
        ).count()
        completed_units = self.db.query(
            func.coalesce(func.sum(UserTask.completed_this_week), 0)
        ).filter(UserTask.user_id == user_id).scalar()
        recent_activities = self.db.query(AuditLog).filter(
            AuditLog.user_id == user_id
        ).order_by(AuditLog.timestamp.desc(), AuditLog.audit_log_id.desc()).limit(5).all()

        self.audit.log_view(viewer_id, "User", user_id, f"Viewed details of {user.username}")

        return {
            "user": user,
            "total_logins": total_logins,
            "active_tasks": active_tasks,
            "completed_units": int(completed_units or 0),
            "recent_activities": recent_activities,
        }

    def toggle_user_status(self, user_id: int, admin_id: int) -> User:
        """切換用戶啟用狀態"""
        user = self.get_user(user_id)
        if user.user_id == admin_id:
            self.audit.log_failed_attempt(admin_id, "TOGGLE_STATUS", "User", "Cannot lock own account")
            raise ValidationError("You cannot change the status of your own account")

        old_status = user.is_active
        user.is_active = not old_status
        user.updated_at = local_now()
        self.db.commit()
        self.db.refresh(user)

        self.audit.log(
            admin_id, "UPDATE", "User", user.user_id,
            {"is_active": old_status}, {"is_active": user.is_active},
            f"{'Activated' if user.is_active else 'Locked'} account {user.username}"
        )
        return user

    def reset_password(self, user_id: int, new_password: str, reason: str, admin_id: int) -> User:
        """
        管理員重設用戶密碼並寫入密碼重設紀錄。

        Raises:
            ValidationError: 密碼太短或缺少原因
            NotFoundError: 用戶不存在
        """
        user = self.get_user(user_id)
        try:
            validate_password(new_password, "new_password")
            if not reason or not reason.strip():
                raise ValidationError("A reason is required to reset a password", "reason")
        except ValidationError as e:
            self.audit.log_failed_attempt(admin_id, "PASSWORD_RESET", "User", e.message, {"user_id": user_id})
            raise

        self.db.add(PasswordResetHistory(
            user_id=user.user_id,
            reset_by_user_id=admin_id,
            old_password_hash=user.password_hash,
            reset_time=local_now(),
            reset_reason=reason.strip(),
            ip_address=self.audit.ip_address
        ))
        user.password_hash = get_password_hash(new_password)
        user.updated_at = local_now()
        self.db.commit()

        self.audit.log_detailed(
            admin_id, "PASSWORD_RESET", "User", user.user_id,
            description=f"Reset password of {user.username}",
            extra={"reason": reason.strip()}
        )
        logger.info(f"Password of user {user.username} reset by {admin_id}")
        return user

    def list_password_resets(self) -> List[PasswordResetHistory]:
        return self.db.query(PasswordResetHistory).order_by(
            PasswordResetHistory.reset_time.desc(), PasswordResetHistory.reset_id.desc()
        ).all()

    # ---- 個人資料 ----

    def update_profile(self, user_id: int, data: ProfileUpdate) -> User:
        """
        更新個人資料。稽核描述會列出有變更的欄位。

        Raises:
            ValidationError: email 已被其他用戶使用
        """
        user = self.get_user(user_id)
        email = str(data.email).strip() if data.email else None

        if email:
            duplicate = self.db.query(User).filter(
                func.lower(User.email) == email.lower(),
                User.user_id != user_id
            ).first()
            if duplicate:
                self.audit.log_failed_attempt(user_id, "UPDATE_PROFILE", "User", "Email already in use",
                                              {"email": email})
                raise ValidationError("Email is already in use", "email")

        new_values = {
            "full_name": data.full_name.strip(),
            "email": email,
            "phone_number": data.phone_number.strip() if data.phone_number else None,
        }
        old_values = {field: getattr(user, field) for field in new_values}
        changes = [
            f"{field}: '{old_values[field] or ''}' → '{value or ''}'"
            for field, value in new_values.items()
            if old_values[field] != value
        ]

        for field, value in new_values.items():
            setattr(user, field, value)
        user.updated_at = local_now()
        self.db.commit()
        self.db.refresh(user)

        self.audit.log(
            user_id, "UPDATE_PROFILE", "User", user_id, old_values, new_values,
            "; ".join(changes) if changes else "No changes"
        )
        return user

    def change_password(self, user_id: int, data: ChangePasswordRequest) -> None:
        """
        用戶自行變更密碼。

        Raises:
            ValidationError: 目前密碼錯誤、新密碼不符規則或與確認不一致
        """
        user = self.get_user(user_id)
        try:
            if not verify_password(data.current_password, user.password_hash):
                raise ValidationError("Current password is incorrect", "current_password")
            validate_password(data.new_password, "new_password")
            if data.new_password != data.confirm_password:
                raise ValidationError("Password confirmation does not match", "confirm_password")
            if verify_password(data.new_password, user.password_hash):
                raise ValidationError("New password must be different from the current password", "new_password")
        except ValidationError as e:
            self.audit.log_failed_attempt(user_id, "CHANGE_PASSWORD", "User", e.message)
            raise

        self.db.add(PasswordResetHistory(
            user_id=user_id,
            reset_by_user_id=user_id,
            old_password_hash=user.password_hash,
            reset_time=local_now(),
            reset_reason="Self-service change via profile",
            ip_address=self.audit.ip_address
        ))
        user.password_hash = get_password_hash(data.new_password)
        user.updated_at = local_now()
        self.db.commit()

        self.audit.log(user_id, "CHANGE_PASSWORD", "User", user_id, description="Changed own password")

    def my_login_history(self, user_id: int, limit: int = 50) -> List[LoginHistory]:
        histories = self.db.query(LoginHistory).filter(
            LoginHistory.user_id == user_id
        ).order_by(LoginHistory.login_time.desc(), LoginHistory.login_history_id.desc()).limit(limit).all()
        self.audit.log_view(user_id, "LoginHistory", description="Viewed own login history")
        return histories

    def my_department(self, user_id: int) -> Dict[str, Any]:
        """取得用戶所屬部門與成員"""
        user = self.get_user(user_id)
        if not user.department_id:
            raise NotFoundError("You are not assigned to a department")

        department = self.db.query(Department).filter(
            Department.department_id == user.department_id
        ).first()
        if not department:
            raise NotFoundError("Department not found")

        members = self.db.query(User).filter(
            User.department_id == department.department_id,
            User.is_active == True
        ).order_by(User.full_name).all()
        return {
            "department_id": department.department_id,
            "department_name": department.department_name,
            "description": department.description,
            "members": [
                {"user_id": m.user_id, "full_name": m.full_name, "email": m.email,
                 "phone_number": m.phone_number, "avatar": m.avatar}
                for m in members
            ],
        }
