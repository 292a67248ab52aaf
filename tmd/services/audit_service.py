"""
Audit trail service that records state changes, failed attempts and sensitive views.
"""

import json
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
from fastapi import Depends, Request
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError

from tmd.database import get_db
from tmd.models.audit import AuditLog, LoginHistory
from tmd.utils.datetime_utils import local_now

logger = logging.getLogger(__name__)


def get_client_ip(request: Optional[Request]) -> Optional[str]:
    """取得客戶端 IP（優先使用反向代理標頭）"""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    user_agent = request.headers.get("user-agent")
    return user_agent[:500] if user_agent else None


def _to_json(values: Any) -> Optional[str]:
    if values is None:
        return None
    if isinstance(values, str):
        return values
    return json.dumps(values, ensure_ascii=False, default=str)


class AuditService:
    """稽核紀錄服務"""

    def __init__(self, db: Session, request: Optional[Request] = None):
        self.db = db
        self.request = request

    @property
    def ip_address(self) -> Optional[str]:
        return get_client_ip(self.request)

    @property
    def user_agent(self) -> Optional[str]:
        return get_user_agent(self.request)

    def log(
        self,
        user_id: Optional[int],
        action: str,
        entity_name: str,
        entity_id: Optional[int] = None,
        old_values: Any = None,
        new_values: Any = None,
        description: Optional[str] = None,
        location: Optional[str] = None
    ) -> Optional[AuditLog]:
        """
        寫入一筆稽核紀錄。

        稽核寫入失敗不影響呼叫端的操作，只記錄錯誤並回滾。

        Args:
            user_id: 操作者 ID（系統動作為 None）
            action: 動作名稱，例如 CREATE、UPDATE、LOGIN
            entity_name: 實體名稱
            entity_id: 實體 ID
            old_values: 變更前的值
            new_values: 變更後的值
            description: 描述
            location: 操作地點（打卡地址）

        Returns:
            建立的稽核紀錄，寫入失敗時為 None
        """
        try:
            entry = AuditLog(
                user_id=user_id,
                action=action[:50],
                entity_name=entity_name,
                entity_id=entity_id,
                old_values=_to_json(old_values),
                new_values=_to_json(new_values),
                description=description[:500] if description else None,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
                location=location[:200] if location else None,
                timestamp=local_now()
            )
            self.db.add(entry)
            self.db.commit()
            return entry
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to write audit log {action} for {entity_name}: {str(e)}")
            return None

    def log_detailed(
        self,
        user_id: Optional[int],
        action: str,
        entity_name: str,
        entity_id: Optional[int] = None,
        old_values: Any = None,
        new_values: Any = None,
        description: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        location: Optional[str] = None
    ) -> Optional[AuditLog]:
        """寫入附帶額外資訊的稽核紀錄，extra 會合併至 new_values"""
        merged: Dict[str, Any] = {}
        if isinstance(new_values, dict):
            merged.update(new_values)
        elif new_values is not None:
            merged["value"] = new_values
        if extra:
            merged.update(extra)
        return self.log(user_id, action, entity_name, entity_id, old_values, merged or None, description,
                        location)

    def log_failed_attempt(
        self,
        user_id: Optional[int],
        action: str,
        entity_name: str,
        reason: str,
        data: Any = None
    ) -> Optional[AuditLog]:
        """記錄失敗的操作嘗試"""
        logger.warning(f"{action} failed for user {user_id}: {reason}")
        return self.log(
            user_id,
            f"{action}_FAILED",
            entity_name,
            new_values=data,
            description=f"Failed: {reason}"
        )

    def log_view(
        self,
        user_id: Optional[int],
        entity_name: str,
        entity_id: Optional[int] = None,
        description: Optional[str] = None
    ) -> Optional[AuditLog]:
        """記錄敏感資料檢視"""
        return self.log(user_id, "VIEW", entity_name, entity_id, description=description)

    # ---- 查詢 ----

    def search_logs(
        self,
        action: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        limit: int = 1000
    ) -> List[AuditLog]:
        """依動作與日期篩選稽核紀錄（新到舊）"""
        query = self.db.query(AuditLog).options(joinedload(AuditLog.user))
        if action:
            query = query.filter(AuditLog.action == action)
        if from_date:
            query = query.filter(AuditLog.timestamp >= datetime.combine(from_date, time.min))
        if to_date:
            query = query.filter(AuditLog.timestamp < datetime.combine(to_date + timedelta(days=1), time.min))
        return query.order_by(AuditLog.timestamp.desc(), AuditLog.audit_log_id.desc()).limit(limit).all()

    def distinct_actions(self) -> List[str]:
        rows = self.db.query(AuditLog.action).distinct().order_by(AuditLog.action).all()
        return [row[0] for row in rows]

    def search_login_history(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        is_success: Optional[bool] = None,
        limit: int = 1000
    ) -> List[LoginHistory]:
        query = self.db.query(LoginHistory)
        if from_date:
            query = query.filter(LoginHistory.login_time >= datetime.combine(from_date, time.min))
        if to_date:
            query = query.filter(
                LoginHistory.login_time < datetime.combine(to_date + timedelta(days=1), time.min)
            )
        if is_success is not None:
            query = query.filter(LoginHistory.is_success == is_success)
        return query.order_by(
            LoginHistory.login_time.desc(), LoginHistory.login_history_id.desc()
        ).limit(limit).all()


def get_audit_service(request: Request, db: Session = Depends(get_db)) -> AuditService:
    """FastAPI 依賴：建立綁定目前請求的稽核服務"""
    return AuditService(db, request)
