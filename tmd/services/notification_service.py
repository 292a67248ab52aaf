"""
Real-time notification hub that pushes workflow events to WebSocket clients.
"""

import asyncio
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Coroutine, Dict, Iterable, List, Optional, Set
from fastapi import WebSocket

from tmd.models.user import User, ROLE_ADMIN
from tmd.utils.datetime_utils import local_now

logger = logging.getLogger(__name__)

ADMIN_GROUP = "admins"


class NotificationType(str, Enum):
    """通知類型枚舉"""
    TASK_ASSIGNED = "task_assigned"
    NEW_REQUEST = "new_request"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_AUTO_REJECTED = "request_auto_rejected"
    COLLEAGUE_ON_LEAVE = "colleague_on_leave"
    SYSTEM_ALERT = "system_alert"


def user_group(user_id: int) -> str:
    return f"user_{user_id}"


def department_group(department_id: int) -> str:
    return f"department_{department_id}"


def build_message(
    notification_type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return {
        "type": notification_type.value,
        "title": title,
        "message": message,
        "data": data or {},
        "timestamp": local_now().isoformat(),
    }


class NotificationHub:
    """WebSocket 連線管理與群組推播"""

    def __init__(self):
        self.groups: Dict[str, Set[WebSocket]] = defaultdict(set)
        self.connections: Dict[WebSocket, List[str]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """記錄應用程式的事件迴圈，供背景執行緒推播使用"""
        self.loop = loop

    @staticmethod
    def groups_for(user: User) -> List[str]:
        groups = [user_group(user.user_id)]
        if user.department_id:
            groups.append(department_group(user.department_id))
        if user.role_name == ROLE_ADMIN:
            groups.append(ADMIN_GROUP)
        return groups

    async def connect(self, websocket: WebSocket, user: User) -> List[str]:
        """接受連線並加入用戶、部門與管理員群組"""
        await websocket.accept()
        groups = self.groups_for(user)
        self.join(websocket, groups)
        logger.info(f"User {user.user_id} connected to notifications: {groups}")
        return groups

    def join(self, websocket: WebSocket, groups: Iterable[str]) -> None:
        for group in groups:
            self.groups[group].add(websocket)
            self.connections.setdefault(websocket, []).append(group)

    def disconnect(self, websocket: WebSocket) -> None:
        for group in self.connections.pop(websocket, []):
            members = self.groups.get(group)
            if members is None:
                continue
            members.discard(websocket)
            if not members:
                del self.groups[group]

    def connection_count(self, group: Optional[str] = None) -> int:
        if group is None:
            return len(self.connections)
        return len(self.groups.get(group, ()))

    async def send_to_group(self, group: str, message: Dict[str, Any]) -> int:
        """
        推播訊息至群組。

        Returns:
            成功送達的連線數
        """
        sent = 0
        dead = []
        for websocket in list(self.groups.get(group, ())):
            try:
                await websocket.send_json(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Dropping notification connection in {group}: {str(e)}")
                dead.append(websocket)
        for websocket in dead:
            self.disconnect(websocket)
        return sent

    async def send_to_user(self, user_id: int, message: Dict[str, Any]) -> int:
        return await self.send_to_group(user_group(user_id), message)

    async def send_to_department(self, department_id: int, message: Dict[str, Any]) -> int:
        return await self.send_to_group(department_group(department_id), message)

    async def send_to_admins(self, message: Dict[str, Any]) -> int:
        return await self.send_to_group(ADMIN_GROUP, message)

    async def broadcast(self, message: Dict[str, Any]) -> int:
        sent = 0
        for group in [g for g in self.groups if g.startswith("user_")]:
            sent += await self.send_to_group(group, message)
        return sent

    def notify_from_thread(self, coro: Coroutine) -> bool:
        """從背景執行緒把推播排入應用程式事件迴圈"""
        if self.loop is None or not self.loop.is_running():
            coro.close()
            logger.debug("No running event loop, notification skipped")
            return False
        asyncio.run_coroutine_threadsafe(coro, self.loop)
        return True


# 全域 Hub 實例
hub = NotificationHub()


class NotificationService:
    """工作流程事件通知"""

    def __init__(self, notification_hub: Optional[NotificationHub] = None):
        self.hub = notification_hub or hub

    async def notify_task_assigned(self, task, user_ids: Iterable[int]) -> int:
        message = build_message(
            NotificationType.TASK_ASSIGNED,
            "New task assigned",
            f"You have been assigned to task '{task.task_name}'",
            {
                "task_id": task.task_id,
                "task_name": task.task_name,
                "priority": task.priority,
                "deadline": task.deadline.isoformat() if task.deadline else None,
            }
        )
        sent = 0
        for user_id in set(user_ids):
            sent += await self.hub.send_to_user(user_id, message)
        return sent

    async def notify_request_submitted(self, request_obj, user: User) -> int:
        message = build_message(
            NotificationType.NEW_REQUEST,
            "New request",
            f"{user.full_name} submitted a {request_obj.kind} request",
            {"request_type": request_obj.kind, "request_id": request_obj.request_id, "user_id": user.user_id}
        )
        return await self.hub.send_to_admins(message)

    async def notify_request_reviewed(self, request_obj) -> int:
        """通知申請人審核結果；請假核准時同時通知同部門同事"""
        approved = request_obj.status == "Approved"
        notification_type = NotificationType.REQUEST_APPROVED if approved else NotificationType.REQUEST_REJECTED
        message = build_message(
            notification_type,
            f"Request {request_obj.status.lower()}",
            f"Your {request_obj.kind} request has been {request_obj.status.lower()}",
            {
                "request_type": request_obj.kind,
                "request_id": request_obj.request_id,
                "status": request_obj.status,
                "review_note": request_obj.review_note,
            }
        )
        sent = await self.hub.send_to_user(request_obj.user_id, message)

        user = request_obj.user
        if approved and request_obj.kind == "leave" and user is not None and user.department_id:
            sent += await self.hub.send_to_department(user.department_id, build_message(
                NotificationType.COLLEAGUE_ON_LEAVE,
                "Colleague on leave",
                f"{user.full_name} is on leave from {request_obj.start_date} to {request_obj.end_date}",
                {"user_id": user.user_id, "start_date": str(request_obj.start_date),
                 "end_date": str(request_obj.end_date)}
            ))
        return sent

    async def notify_auto_rejected(self, kind: str, request_id: int, user_id: int) -> int:
        message = build_message(
            NotificationType.REQUEST_AUTO_REJECTED,
            "Request expired",
            f"Your {kind} request was rejected automatically because it was not reviewed in time",
            {"request_type": kind, "request_id": request_id}
        )
        return await self.hub.send_to_user(user_id, message)
