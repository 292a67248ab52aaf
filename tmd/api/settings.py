"""
System settings API routes, including the public layout snippets used by every page.
"""

import json
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from tmd.database import get_db
from tmd.models.user import User, ROLE_ADMIN
from tmd.schemas.setting import (
    SettingUpdate, SettingBatchUpdate, SettingResponse,
    LayoutType, LayoutUpdate, LayoutResponse, LayoutBackupResponse
)
from tmd.services.audit_service import AuditService, get_audit_service
from tmd.services.settings_service import SettingsService
from tmd.utils.auth import get_current_admin_user
from tmd.utils.datetime_utils import local_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


def _is_admin_session(request: Request) -> bool:
    return request.session.get("role_name") == ROLE_ADMIN


# ---- 公開版面片段（需在 /{key} 之前宣告）----

@router.get("/layout", summary="版面設定")
async def layout(request: Request, db: Session = Depends(get_db)):
    return SettingsService(db).layout(_is_admin_session(request))


@router.get("/custom-styles", response_class=HTMLResponse, summary="自訂 CSS")
async def custom_styles(request: Request, db: Session = Depends(get_db)):
    return HTMLResponse(SettingsService(db).custom_styles(_is_admin_session(request)))


@router.get("/custom-scripts", response_class=HTMLResponse, summary="自訂 JavaScript")
async def custom_scripts(request: Request, db: Session = Depends(get_db)):
    return HTMLResponse(SettingsService(db).custom_scripts(_is_admin_session(request)))


# ---- 管理員 ----

@router.get("", response_model=List[SettingResponse], summary="設定列表")
async def list_settings(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    items = SettingsService(db, audit).list_settings()
    audit.log_view(current_user.user_id, "SystemSetting", description="Viewed system settings")
    return [SettingResponse.model_validate(s) for s in items]


@router.get("/all", summary="所有設定值")
async def all_settings(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return SettingsService(db).get_all_settings()


@router.get("/export", summary="匯出設定")
async def export_settings(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    payload = SettingsService(db, audit).export_settings(current_user.user_id)
    filename = f"settings_backup_{local_now().strftime('%Y%m%d_%H%M%S')}.json"
    return Response(
        content=json.dumps(payload, ensure_ascii=False, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.post("/import", summary="匯入設定")
async def import_settings(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    content = await file.read()
    result = SettingsService(db, audit).import_settings(file.filename, content, current_user.user_id)
    return {"success": True, "message": "Settings imported", **result}


@router.post("/logo", summary="上傳 Logo")
async def upload_logo(
    logo: UploadFile = File(...),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    上傳 Logo 並更新 LOGO_URL。

    - 允許 jpg/jpeg/png/gif/svg，最大 5MB
    """
    content = await logo.read()
    url = SettingsService(db, audit).upload_logo(logo.filename, content, current_user.user_id)
    return {"success": True, "logo_url": url}


@router.post("/batch", summary="批次更新設定")
async def batch_update(
    payload: SettingBatchUpdate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    result = SettingsService(db, audit).batch_update(payload.settings, current_user.user_id)
    return {"success": True, "message": "Settings saved", **result}


@router.post("/reset", summary="重設為預設值")
async def reset_settings(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    created = SettingsService(db, audit).reset_to_default(current_user.user_id)
    return {"success": True, "message": "Settings reset to default", "count": created}


# ---- 版面範本（兩段路徑，不會與 /{key} 衝突）----

def _backup_row(backup) -> LayoutBackupResponse:
    return LayoutBackupResponse(
        backup_id=backup.backup_id,
        layout_type=backup.layout_type,
        size=len(backup.content or ""),
        created_at=backup.created_at,
        created_by=backup.created_by
    )


@router.get("/layouts/backups", response_model=List[LayoutBackupResponse], summary="版面備份列表")
async def list_layout_backups(
    layout_type: Optional[LayoutType] = Query(None),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return [_backup_row(b) for b in SettingsService(db).list_backups(layout_type)]


@router.post("/layouts/backups/{backup_id}/restore", response_model=LayoutResponse, summary="從備份還原版面")
async def restore_layout_backup(
    backup_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    template = SettingsService(db, audit).restore_backup(backup_id, current_user.user_id)
    return LayoutResponse.model_validate(template)


@router.delete("/layouts/backups/{backup_id}", summary="刪除版面備份")
async def delete_layout_backup(
    backup_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    SettingsService(db, audit).delete_backup(backup_id, current_user.user_id)
    return {"success": True, "message": f"Backup {backup_id} deleted"}


@router.get("/layouts/{layout_type}", response_model=LayoutResponse, summary="取得版面範本")
async def get_layout(
    layout_type: LayoutType,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return LayoutResponse.model_validate(SettingsService(db).get_layout(layout_type))


@router.put("/layouts/{layout_type}", response_model=LayoutResponse, summary="儲存版面範本")
async def save_layout(
    layout_type: LayoutType,
    payload: LayoutUpdate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """
    儲存管理員或員工版面範本。

    - 覆寫前自動備份目前內容
    - 每個版面保留最近 20 份備份
    """
    template = SettingsService(db, audit).save_layout(layout_type, payload.content, current_user.user_id)
    return LayoutResponse.model_validate(template)


@router.get("/{key}", response_model=SettingResponse, summary="取得設定")
async def get_setting(
    key: str,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    return SettingResponse.model_validate(SettingsService(db).get_setting(key))


@router.put("/{key}", response_model=SettingResponse, summary="更新設定")
async def update_setting(
    key: str,
    payload: SettingUpdate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    setting = SettingsService(db, audit).update_setting(key, payload.setting_value, current_user.user_id)
    return SettingResponse.model_validate(setting)


@router.delete("/{key}", summary="刪除設定")
async def delete_setting(
    key: str,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    SettingsService(db, audit).delete_setting(key, current_user.user_id)
    return {"success": True, "message": f"Setting {key} deleted"}
