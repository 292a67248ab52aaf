"""
System settings service: defaults, CRUD, import/export, layout snippets and layout templates.
"""

import json
import logging
from datetime import time
from typing import Any, Dict, List, Optional
from jinja2 import Environment
from sqlalchemy.orm import Session

from tmd.config import settings as app_settings
from tmd.models.setting import SystemSetting, LayoutTemplate, LayoutBackup
from tmd.schemas.setting import SettingItem, LayoutType
from tmd.services.audit_service import AuditService
from tmd.utils.datetime_utils import local_now, parse_time
from tmd.utils.storage import save_file
from tmd.utils.validators import ValidationError, NotFoundError, validate_upload, get_file_extension

logger = logging.getLogger(__name__)

# (key, value, description, data_type, category)
DEFAULT_SETTINGS = [
    # Salary
    ("BASE_SALARY", "5000000", "Monthly base salary", "Number", "Salary"),
    ("OVERTIME_RATE", "1.5", "Overtime pay multiplier", "Decimal", "Salary"),
    ("LATE_DEDUCTION", "50000", "Deduction per unexcused late day", "Number", "Salary"),
    ("STANDARD_HOURS_PER_DAY", "8", "Standard working hours per day", "Number", "Salary"),
    ("WORK_DAYS_PER_MONTH", "26", "Working days per month", "Number", "Salary"),
    # Attendance
    ("CHECK_IN_START_TIME", "07:00", "Earliest check-in time", "String", "Attendance"),
    ("CHECK_IN_STANDARD_TIME", "08:00", "Check-ins after this time are late", "String", "Attendance"),
    ("CHECK_OUT_MIN_TIME", "17:00", "Earliest regular check-out time", "String", "Attendance"),
    ("GEOFENCE_ENABLED", "true", "Check distance to the office on check-in", "Boolean", "Attendance"),
    ("GEOFENCE_RADIUS", "100", "Geofence radius in meters", "Number", "Attendance"),
    ("OFFICE_LATITUDE", "10.7769", "Office latitude", "Decimal", "Attendance"),
    ("OFFICE_LONGITUDE", "106.7009", "Office longitude", "Decimal", "Attendance"),
    # General
    ("SYSTEM_NAME", "TMD System", "System name", "String", "General"),
    ("COMPANY_NAME", "TMD Company", "Company name", "String", "General"),
    ("COMPANY_ADDRESS", "", "Company address", "String", "General"),
    ("COMPANY_PHONE", "", "Company phone number", "String", "General"),
    ("ADMIN_EMAIL", "", "Administrator contact e-mail", "String", "General"),
    # Notification
    ("ENABLE_EMAIL_NOTIFICATION", "false", "Send e-mail notifications", "Boolean", "Notification"),
    ("ENABLE_LATE_WARNING", "true", "Warn staff who are late too often", "Boolean", "Notification"),
    ("MAX_LATE_DAYS_PER_MONTH", "5", "Late days allowed per month before a warning", "Number", "Notification"),
    # CustomCode
    ("CUSTOM_CSS", "", "CSS injected into every page", "Code", "CustomCode"),
    ("CUSTOM_JS", "", "JavaScript injected into every page", "Code", "CustomCode"),
    ("ADMIN_CUSTOM_CSS", "", "CSS injected into admin pages", "Code", "CustomCode"),
    ("ADMIN_CUSTOM_JS", "", "JavaScript injected into admin pages", "Code", "CustomCode"),
    # Layout
    ("HEADER_HTML", "", "HTML rendered in the page header", "Code", "Layout"),
    ("FOOTER_HTML", "", "HTML rendered in the page footer", "Code", "Layout"),
    # Branding
    ("LOGO_URL", "/images/logo.png", "Logo URL", "String", "Branding"),
    ("PRIMARY_COLOR", "#E74C3C", "Primary color", "String", "Branding"),
    ("SECONDARY_COLOR", "#F39C12", "Secondary color", "String", "Branding"),
    ("FONT_FAMILY", "Segoe UI", "Font family", "String", "Branding"),
    ("FONT_SIZE_BASE", "16", "Base font size in px", "Number", "Branding"),
    ("SYSTEM_DISPLAY_NAME", "TMD System", "Name shown in the navigation bar", "String", "Branding"),
    ("SYSTEM_TAGLINE", "Task Management & Attendance", "Tagline shown under the name", "String", "Branding"),
]

DEFAULTS_BY_KEY = {item[0]: item for item in DEFAULT_SETTINGS}

_jinja = Environment(autoescape=False)
STYLE_TEMPLATE = _jinja.from_string('<style id="{{ element_id }}">\n{{ content }}\n</style>')
SCRIPT_TEMPLATE = _jinja.from_string(
    '<script id="{{ element_id }}">\n(function() {\n{{ content }}\n})();\n</script>'
)


def guess_category(key: str) -> str:
    """依 key 名稱推斷分類"""
    key = key.upper()
    if "HTML" in key:
        return "Layout"
    if "CSS" in key or _is_js_key(key):
        return "CustomCode"
    if any(token in key for token in ("COLOR", "LOGO", "FONT", "DISPLAY", "TAGLINE")):
        return "Branding"
    return "General"


def guess_data_type(key: str) -> str:
    """依 key 名稱推斷資料類型"""
    key = key.upper()
    if "HTML" in key or "CSS" in key or _is_js_key(key):
        return "Code"
    if "SIZE" in key:
        return "Number"
    return "String"


def guess_description(key: str) -> str:
    if key in DEFAULTS_BY_KEY:
        return DEFAULTS_BY_KEY[key][2]
    return f"Custom setting {key}"


def _is_js_key(key: str) -> bool:
    return key.endswith("_JS") or "_JS_" in key or key == "JS"


class SettingsService:
    """系統設定業務邏輯"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    # ---- 讀取 ----

    def initialize_defaults(self) -> int:
        """資料表為空時寫入預設設定，回傳新增筆數"""
        if self.db.query(SystemSetting).count() > 0:
            return 0

        now = local_now()
        for key, value, description, data_type, category in DEFAULT_SETTINGS:
            self.db.add(SystemSetting(
                setting_key=key,
                setting_value=value,
                description=description,
                data_type=data_type,
                category=category,
                is_active=True,
                created_at=now,
                updated_at=now
            ))
        self.db.commit()
        logger.info(f"Initialized {len(DEFAULT_SETTINGS)} default system settings")
        return len(DEFAULT_SETTINGS)

    def list_settings(self) -> List[SystemSetting]:
        """取得所有啟用中的設定（依分類、key 排序）"""
        self.initialize_defaults()
        return self.db.query(SystemSetting).filter(
            SystemSetting.is_active == True
        ).order_by(SystemSetting.category, SystemSetting.setting_key).all()

    def get_setting(self, key: str) -> SystemSetting:
        setting = self.db.query(SystemSetting).filter(
            SystemSetting.setting_key == key,
            SystemSetting.is_active == True
        ).first()
        if not setting:
            raise NotFoundError(f"Setting {key} not found", "setting_key")
        return setting

    def get_all_settings(self) -> Dict[str, Optional[str]]:
        return {s.setting_key: s.setting_value for s in self.list_settings()}

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """取得設定值；未設定時使用預設設定或 default"""
        setting = self.db.query(SystemSetting).filter(
            SystemSetting.setting_key == key,
            SystemSetting.is_active == True
        ).first()
        if setting is not None and setting.setting_value not in (None, ""):
            return setting.setting_value
        if default is not None:
            return default
        if key in DEFAULTS_BY_KEY:
            return DEFAULTS_BY_KEY[key][1]
        return None

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get_value(key)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Setting {key} is not numeric: {value!r}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_value(key)
        if value is None:
            return default
        return str(value).strip().lower() in ("true", "1", "yes", "on")

    def get_time(self, key: str, default: time) -> time:
        parsed = parse_time(self.get_value(key) or "")
        return parsed or default

    # ---- 寫入 ----

    def update_setting(self, key: str, value: Optional[str], user_id: int) -> SystemSetting:
        """更新單一設定值並寫入稽核"""
        setting = self.get_setting(key)
        old_value = setting.setting_value
        setting.setting_value = value
        setting.updated_at = local_now()
        setting.updated_by = user_id
        self.db.commit()
        self.db.refresh(setting)

        self.audit.log(
            user_id, "UPDATE", "SystemSetting", setting.setting_id,
            {"setting_key": key, "setting_value": old_value},
            {"setting_key": key, "setting_value": value},
            f"Updated setting {key}"
        )
        return setting

    def batch_update(self, items: List[SettingItem], user_id: int) -> Dict[str, int]:
        """
        批次更新設定，不存在的 key 會自動建立。

        Returns:
            {"updated": n, "created": m}
        """
        if not items:
            raise ValidationError("No settings provided", "settings")

        now = local_now()
        updated = 0
        created = 0
        changes = []
        touched: Dict[str, SystemSetting] = {}

        for item in items:
            key = item.setting_key.strip()
            if key in touched:
                # 同一批次重複的 key 以最後一個值為準
                touched[key].setting_value = item.setting_value
                continue
            setting = self.db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
            if setting:
                changes.append((setting, "UPDATE", {"setting_value": setting.setting_value}))
                setting.setting_value = item.setting_value
                setting.is_active = True
                setting.updated_at = now
                setting.updated_by = user_id
                updated += 1
            else:
                setting = SystemSetting(
                    setting_key=key,
                    setting_value=item.setting_value,
                    description=guess_description(key),
                    data_type=guess_data_type(key),
                    category=guess_category(key),
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                    updated_by=user_id
                )
                self.db.add(setting)
                changes.append((setting, "CREATE", None))
                created += 1
            touched[key] = setting

        self.db.commit()

        for setting, action, old in changes:
            self.audit.log(
                user_id, action, "SystemSetting", setting.setting_id,
                old, {"setting_key": setting.setting_key, "setting_value": setting.setting_value},
                f"{action.title()} setting {setting.setting_key}"
            )
        self.audit.log_detailed(
            user_id, "BATCH_UPDATE", "SystemSetting",
            new_values={"keys": [s.setting_key for s, _, _ in changes]},
            description=f"Batch update: {updated} updated, {created} created",
            extra={"updated": updated, "created": created}
        )
        return {"updated": updated, "created": created}

    def delete_setting(self, key: str, user_id: int) -> None:
        """軟刪除設定"""
        setting = self.get_setting(key)
        setting.is_active = False
        setting.updated_at = local_now()
        setting.updated_by = user_id
        self.db.commit()
        self.audit.log(
            user_id, "DELETE", "SystemSetting", setting.setting_id,
            {"setting_key": key, "setting_value": setting.setting_value}, None,
            f"Deleted setting {key}"
        )

    def reset_to_default(self, user_id: int) -> int:
        """刪除所有設定並重新寫入預設值"""
        removed = self.db.query(SystemSetting).delete()
        self.db.commit()
        created = self.initialize_defaults()
        self.audit.log_detailed(
            user_id, "RESET", "SystemSetting",
            description="Reset all settings to default",
            extra={"removed": removed, "created": created}
        )
        return created

    # ---- 匯入 / 匯出 ----

    def export_settings(self, user_id: int) -> Dict[str, Any]:
        payload = {
            "exported_at": local_now().isoformat(),
            "settings": [
                {
                    "setting_key": s.setting_key,
                    "setting_value": s.setting_value,
                    "description": s.description,
                    "data_type": s.data_type,
                    "category": s.category,
                }
                for s in self.list_settings()
            ]
        }
        self.audit.log_view(user_id, "SystemSetting", description="Exported settings")
        return payload

    def import_settings(self, filename: str, content: bytes, user_id: int) -> Dict[str, int]:
        """從 JSON 備份匯入設定（更新已存在的 key，建立其餘 key）"""
        if get_file_extension(filename) != ".json":
            raise ValidationError("Only .json files are accepted", "file")
        try:
            data = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Invalid settings file: {str(e)}", "file")

        entries = data.get("settings") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ValidationError("Settings file must contain a list of settings", "file")

        now = local_now()
        updated = 0
        created = 0
        touched: Dict[str, SystemSetting] = {}
        for entry in entries:
            key = (entry.get("setting_key") or "").strip() if isinstance(entry, dict) else ""
            if not key:
                continue
            if key in touched:
                touched[key].setting_value = entry.get("setting_value")
                continue
            setting = self.db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
            if setting:
                setting.setting_value = entry.get("setting_value")
                setting.is_active = True
                setting.updated_at = now
                setting.updated_by = user_id
                updated += 1
            else:
                setting = SystemSetting(
                    setting_key=key,
                    setting_value=entry.get("setting_value"),
                    description=entry.get("description") or guess_description(key),
                    data_type=entry.get("data_type") or guess_data_type(key),
                    category=entry.get("category") or guess_category(key),
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                    updated_by=user_id
                )
                self.db.add(setting)
                created += 1
            touched[key] = setting
        self.db.commit()

        self.audit.log_detailed(
            user_id, "IMPORT", "SystemSetting",
            description=f"Imported settings from {filename}",
            extra={"updated": updated, "created": created}
        )
        return {"updated": updated, "created": created}

    def upload_logo(self, filename: str, content: bytes, user_id: int) -> str:
        validate_upload(
            filename, content,
            app_settings.ALLOWED_LOGO_EXTENSIONS, app_settings.MAX_LOGO_SIZE, "logo"
        )
        stored_name = f"logo_{local_now().strftime('%Y%m%d%H%M%S')}{get_file_extension(filename)}"
        url = save_file("logos", stored_name, content)

        setting = self.db.query(SystemSetting).filter(SystemSetting.setting_key == "LOGO_URL").first()
        if setting:
            self.update_setting("LOGO_URL", url, user_id)
        else:
            self.batch_update([SettingItem(setting_key="LOGO_URL", setting_value=url)], user_id)
        return url

    # ---- 版面注入 ----

    def custom_styles(self, include_admin: bool = False) -> str:
        blocks = []
        css = self.get_value("CUSTOM_CSS")
        if css and css.strip():
            blocks.append(STYLE_TEMPLATE.render(element_id="system-custom-css", content=css))
        if include_admin:
            admin_css = self.get_value("ADMIN_CUSTOM_CSS")
            if admin_css and admin_css.strip():
                blocks.append(STYLE_TEMPLATE.render(element_id="admin-custom-css", content=admin_css))
        return "\n".join(blocks)

    def custom_scripts(self, include_admin: bool = False) -> str:
        blocks = []
        js = self.get_value("CUSTOM_JS")
        if js and js.strip():
            blocks.append(SCRIPT_TEMPLATE.render(element_id="system-custom-js", content=js))
        if include_admin:
            admin_js = self.get_value("ADMIN_CUSTOM_JS")
            if admin_js and admin_js.strip():
                blocks.append(SCRIPT_TEMPLATE.render(element_id="admin-custom-js", content=admin_js))
        return "\n".join(blocks)

    def layout(self, include_admin: bool = False) -> Dict[str, Any]:
        """頁面外框需要的 HTML 片段與品牌設定"""
        return {
            "header_html": self.get_value("HEADER_HTML") or "",
            "footer_html": self.get_value("FOOTER_HTML") or "",
            "custom_styles": self.custom_styles(include_admin),
            "custom_scripts": self.custom_scripts(include_admin),
            "template": self.get_layout(LayoutType.ADMIN if include_admin else LayoutType.STAFF).content,
            "branding": {
                key: self.get_value(key)
                for key in (
                    "LOGO_URL", "PRIMARY_COLOR", "SECONDARY_COLOR", "FONT_FAMILY",
                    "FONT_SIZE_BASE", "SYSTEM_DISPLAY_NAME", "SYSTEM_TAGLINE"
                )
            }
        }

    # ---- 版面範本與備份 ----

    def get_layout(self, layout_type: LayoutType) -> LayoutTemplate:
        """取得版面範本；尚未儲存過時回傳空白範本"""
        layout_type = LayoutType(layout_type)
        template = self.db.query(LayoutTemplate).filter(
            LayoutTemplate.layout_type == layout_type.value
        ).first()
        return template or LayoutTemplate(layout_type=layout_type.value, content="")

    def _backup_layout(self, template: LayoutTemplate, user_id: int) -> None:
        if not template.content:
            return
        self.db.add(LayoutBackup(
            layout_type=template.layout_type,
            content=template.content,
            created_at=local_now(),
            created_by=user_id
        ))

    def _trim_backups(self, layout_type: str) -> int:
        expired = self.db.query(LayoutBackup).filter(
            LayoutBackup.layout_type == layout_type
        ).order_by(LayoutBackup.backup_id.desc()).offset(app_settings.MAX_LAYOUT_BACKUPS).all()
        for backup in expired:
            self.db.delete(backup)
        return len(expired)

    def _write_layout(self, layout_type: str, content: str, user_id: int) -> LayoutTemplate:
        template = self.db.query(LayoutTemplate).filter(LayoutTemplate.layout_type == layout_type).first()
        if template:
            self._backup_layout(template, user_id)
        else:
            template = LayoutTemplate(layout_type=layout_type)
            self.db.add(template)
        template.content = content
        template.updated_at = local_now()
        template.updated_by = user_id
        self.db.flush()
        self._trim_backups(layout_type)
        self.db.commit()
        self.db.refresh(template)
        return template

    def save_layout(self, layout_type: LayoutType, content: str, user_id: int) -> LayoutTemplate:
        """
        儲存版面範本，覆寫前先備份目前內容。

        每個版面只保留最近 MAX_LAYOUT_BACKUPS 份備份。

        Raises:
            ValidationError: 內容空白
        """
        layout_type = LayoutType(layout_type)
        if not content or not content.strip():
            self.audit.log_failed_attempt(user_id, "UPDATE", "LayoutTemplate", "Empty layout content",
                                          {"layout_type": layout_type.value})
            raise ValidationError("Layout content is required", "content")

        old_size = len(self.get_layout(layout_type).content or "")
        template = self._write_layout(layout_type.value, content, user_id)
        self.audit.log_detailed(
            user_id, "UPDATE", "LayoutTemplate", None,
            {"layout_type": layout_type.value, "size": old_size},
            {"layout_type": layout_type.value, "size": len(content)},
            f"Updated {layout_type.value} layout",
            extra={"saved_at": template.updated_at.isoformat()}
        )
        logger.info(f"{layout_type.value} layout saved by {user_id}")
        return template

    def list_backups(self, layout_type: Optional[LayoutType] = None) -> List[LayoutBackup]:
        query = self.db.query(LayoutBackup)
        if layout_type:
            query = query.filter(LayoutBackup.layout_type == LayoutType(layout_type).value)
        return query.order_by(LayoutBackup.backup_id.desc()).limit(app_settings.MAX_LAYOUT_BACKUPS).all()

    def get_backup(self, backup_id: int) -> LayoutBackup:
        backup = self.db.query(LayoutBackup).filter(LayoutBackup.backup_id == backup_id).first()
        if not backup:
            raise NotFoundError("Backup not found")
        return backup

    def restore_backup(self, backup_id: int, user_id: int) -> LayoutTemplate:
        """以備份內容覆寫版面；目前內容會先備份"""
        backup = self.get_backup(backup_id)
        layout_type, content = backup.layout_type, backup.content
        template = self._write_layout(layout_type, content, user_id)
        self.audit.log(
            user_id, "RESTORE", "LayoutTemplate", backup_id, None,
            {"layout_type": layout_type, "backup_id": backup_id},
            f"Restored {layout_type} layout from backup {backup_id}"
        )
        return template

    def delete_backup(self, backup_id: int, user_id: int) -> None:
        backup = self.get_backup(backup_id)
        old_values = {"layout_type": backup.layout_type, "size": len(backup.content)}
        self.db.delete(backup)
        self.db.commit()
        self.audit.log(
            user_id, "DELETE", "LayoutBackup", backup_id, old_values, None,
            f"Deleted {old_values['layout_type']} layout backup {backup_id}"
        )
