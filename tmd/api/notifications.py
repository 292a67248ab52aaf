"""
WebSocket endpoint for real-time notifications.
"""

import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from tmd.database import get_db
from tmd.models.user import User
from tmd.services.notification_service import hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket):
    """
    通知連線。

    以 session 中的登入用戶加入 user_{id}、department_{id} 與 admins 群組；
    客戶端送出 "ping" 時回覆 "pong"。
    """
    user_id = websocket.session.get("user_id")
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    db = next(get_db())
    try:
        user = db.query(User).filter(User.user_id == user_id).first()
        if not user or not user.is_active:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        await hub.connect(websocket, user)
    finally:
        db.close()

    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.info(f"User {user_id} disconnected from notifications")
    finally:
        hub.disconnect(websocket)
