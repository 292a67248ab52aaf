import json

import pytest

from conftest import API, ADMIN_PASSWORD, STAFF_PASSWORD, login
from tmd.models.audit import AuditLog
from tmd.models.setting import SystemSetting, LayoutBackup
from tmd.schemas.setting import SettingItem, LayoutType
from tmd.services.settings_service import (
    SettingsService, DEFAULT_SETTINGS, guess_category, guess_data_type
)
from tmd.utils.validators import ValidationError, NotFoundError


@pytest.mark.parametrize("key, category, data_type", [
    ("HEADER_HTML", "Layout", "Code"),
    ("LANDING_CSS", "CustomCode", "Code"),
    ("TRACKING_JS", "CustomCode", "Code"),
    ("ACCENT_COLOR", "Branding", "String"),
    ("LOGO_SIZE", "Branding", "Number"),
    ("HOTLINE", "General", "String"),
])
def test_new_keys_are_classified(key, category, data_type):
    assert guess_category(key) == category
    assert guess_data_type(key) == data_type


def test_initialize_defaults_only_once(db):
    service = SettingsService(db)

    assert service.initialize_defaults() == len(DEFAULT_SETTINGS)
    assert service.initialize_defaults() == 0


def test_get_value_falls_back_to_defaults(db):
    service = SettingsService(db)

    assert service.get_value("BASE_SALARY") == "5000000"
    assert service.get_float("OVERTIME_RATE") == 1.5
    assert service.get_bool("GEOFENCE_ENABLED") is True
    assert service.get_value("UNKNOWN_KEY") is None


def test_batch_update_creates_missing_keys(db, admin_user):
    service = SettingsService(db)
    service.initialize_defaults()

    result = service.batch_update([
        SettingItem(setting_key="BASE_SALARY", setting_value="6000000"),
        SettingItem(setting_key="PROMO_HTML", setting_value="<b>Sale</b>"),
    ], admin_user.user_id)

    assert result == {"updated": 1, "created": 1}
    assert service.get_float("BASE_SALARY") == 6000000
    created = service.get_setting("PROMO_HTML")
    assert created.category == "Layout"
    assert created.data_type == "Code"


def test_batch_update_requires_items(db, admin_user):
    with pytest.raises(ValidationError):
        SettingsService(db).batch_update([], admin_user.user_id)


def test_delete_and_reset(db, admin_user):
    service = SettingsService(db)
    service.initialize_defaults()

    service.delete_setting("COMPANY_PHONE", admin_user.user_id)
    with pytest.raises(NotFoundError):
        service.get_setting("COMPANY_PHONE")

    service.update_setting("PRIMARY_COLOR", "#000000", admin_user.user_id)
    assert service.reset_to_default(admin_user.user_id) == len(DEFAULT_SETTINGS)
    assert service.get_value("PRIMARY_COLOR") == "#E74C3C"
    assert service.get_setting("COMPANY_PHONE").is_active is True


def test_import_settings(db, admin_user):
    service = SettingsService(db)
    service.initialize_defaults()
    payload = json.dumps({"settings": [
        {"setting_key": "COMPANY_NAME", "setting_value": "TMD Vietnam"},
        {"setting_key": "SUPPORT_HOTLINE", "setting_value": "1900 1234"},
        {"setting_value": "ignored"},
    ]}).encode("utf-8")

    result = service.import_settings("backup.json", payload, admin_user.user_id)

    assert result == {"updated": 1, "created": 1}
    assert service.get_value("COMPANY_NAME") == "TMD Vietnam"


def test_import_rejects_non_json(db, admin_user):
    service = SettingsService(db)
    with pytest.raises(ValidationError):
        service.import_settings("backup.txt", b"{}", admin_user.user_id)
    with pytest.raises(ValidationError):
        service.import_settings("backup.json", b"not json", admin_user.user_id)


def test_custom_snippets_respect_admin_scope(db, admin_user):
    service = SettingsService(db)
    service.initialize_defaults()
    service.batch_update([
        SettingItem(setting_key="CUSTOM_CSS", setting_value="body { color: red; }"),
        SettingItem(setting_key="ADMIN_CUSTOM_JS", setting_value="console.log('admin');"),
    ], admin_user.user_id)

    styles = service.custom_styles()
    assert '<style id="system-custom-css">' in styles
    assert "body { color: red; }" in styles
    assert service.custom_scripts() == ""
    assert '<script id="admin-custom-js">' in service.custom_scripts(include_admin=True)


def test_settings_endpoints(admin_client, db):
    listing = admin_client.get(f"{API}/settings")
    assert listing.status_code == 200
    assert len(listing.json()) == len(DEFAULT_SETTINGS)

    updated = admin_client.put(f"{API}/settings/COMPANY_NAME", json={"setting_value": "TMD Group"})
    assert updated.json()["setting_value"] == "TMD Group"

    missing = admin_client.get(f"{API}/settings/NOPE")
    assert missing.status_code == 404

    exported = admin_client.get(f"{API}/settings/export")
    assert exported.headers["content-disposition"].startswith("attachment; filename=settings_backup_")
    assert any(s["setting_key"] == "COMPANY_NAME" for s in exported.json()["settings"])

    batch = admin_client.post(f"{API}/settings/batch", json={"settings": [
        {"setting_key": "FOOTER_HTML", "setting_value": "<p>TMD</p>"}
    ]})
    assert batch.json()["updated"] == 1

    layout = admin_client.get(f"{API}/settings/layout")
    assert layout.json()["footer_html"] == "<p>TMD</p>"


def test_logo_upload(admin_client):
    response = admin_client.post(f"{API}/settings/logo", files={"logo": ("logo.png", b"\x89PNG", "image/png")})

    assert response.status_code == 200
    logo_url = response.json()["logo_url"]
    assert logo_url.startswith("/uploads/logos/logo_")
    assert admin_client.get(f"{API}/settings/LOGO_URL").json()["setting_value"] == logo_url


def test_staff_cannot_change_settings(staff_client):
    response = staff_client.put(f"{API}/settings/COMPANY_NAME", json={"setting_value": "Hacked"})
    assert response.status_code == 403


def test_public_custom_styles(client):
    response = client.get(f"{API}/settings/custom-styles")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")


def test_settings_index_writes_view_audit(admin_client, db):
    admin_client.get(f"{API}/settings")

    views = db.query(AuditLog).filter(AuditLog.action == "VIEW", AuditLog.entity_name == "SystemSetting").all()
    assert len(views) == 1


def test_batch_update_with_repeated_new_key(db, admin_user):
    service = SettingsService(db)

    result = service.batch_update([
        SettingItem(setting_key="PROMO_HTML", setting_value="<b>Old</b>"),
        SettingItem(setting_key="PROMO_HTML", setting_value="<b>New</b>"),
    ], admin_user.user_id)

    assert result == {"updated": 0, "created": 1}
    assert db.query(SystemSetting).filter(SystemSetting.setting_key == "PROMO_HTML").count() == 1
    assert service.get_value("PROMO_HTML") == "<b>New</b>"


def test_import_with_repeated_new_key(db, admin_user):
    service = SettingsService(db)
    payload = json.dumps([
        {"setting_key": "SUPPORT_HOTLINE", "setting_value": "1900 1234"},
        {"setting_key": "SUPPORT_HOTLINE", "setting_value": "1900 5678"},
    ]).encode("utf-8")

    result = service.import_settings("backup.json", payload, admin_user.user_id)

    assert result == {"updated": 0, "created": 1}
    assert service.get_value("SUPPORT_HOTLINE") == "1900 5678"


def test_save_layout_keeps_previous_content_as_backup(db, admin_user):
    service = SettingsService(db)
    assert service.get_layout(LayoutType.STAFF).content == ""

    service.save_layout(LayoutType.STAFF, "<main>v1</main>", admin_user.user_id)
    service.save_layout(LayoutType.STAFF, "<main>v2</main>", admin_user.user_id)

    assert service.get_layout(LayoutType.STAFF).content == "<main>v2</main>"
    backups = service.list_backups(LayoutType.STAFF)
    assert [b.content for b in backups] == ["<main>v1</main>"]
    assert service.list_backups(LayoutType.ADMIN) == []
    assert service.layout()["template"] == "<main>v2</main>"
    assert service.layout(include_admin=True)["template"] == ""


def test_save_layout_rejects_blank_content(db, admin_user):
    with pytest.raises(ValidationError) as exc:
        SettingsService(db).save_layout(LayoutType.ADMIN, "   ", admin_user.user_id)

    assert exc.value.field == "content"
    assert db.query(AuditLog).filter(AuditLog.action == "UPDATE_FAILED").count() == 1


def test_layout_backups_are_capped(db, admin_user):
    service = SettingsService(db)
    for version in range(1, 24):
        service.save_layout(LayoutType.ADMIN, f"v{version}", admin_user.user_id)

    assert db.query(LayoutBackup).count() == 20
    contents = [b.content for b in service.list_backups()]
    assert contents[0] == "v22"
    assert contents[-1] == "v3"


def test_restore_and_delete_backup(db, admin_user):
    service = SettingsService(db)
    service.save_layout(LayoutType.ADMIN, "original", admin_user.user_id)
    service.save_layout(LayoutType.ADMIN, "broken", admin_user.user_id)
    original = service.list_backups(LayoutType.ADMIN)[0]

    restored = service.restore_backup(original.backup_id, admin_user.user_id)

    assert restored.content == "original"
    assert [b.content for b in service.list_backups(LayoutType.ADMIN)] == ["broken", "original"]

    service.delete_backup(original.backup_id, admin_user.user_id)
    with pytest.raises(NotFoundError):
        service.get_backup(original.backup_id)
    actions = {a.action for a in db.query(AuditLog).filter(
        AuditLog.entity_name.in_(["LayoutTemplate", "LayoutBackup"])
    )}
    assert actions == {"UPDATE", "RESTORE", "DELETE"}


def test_layout_endpoints(client, admin_user, staff_user):
    login(client, staff_user.username, STAFF_PASSWORD)
    assert client.get(f"{API}/settings/layouts/admin").status_code == 403
    client.post(f"{API}/account/logout")
    login(client, "admin", ADMIN_PASSWORD)

    saved = client.put(f"{API}/settings/layouts/admin", json={"content": "<nav>v1</nav>"})
    assert saved.status_code == 200
    assert saved.json()["layout_type"] == "admin"
    client.put(f"{API}/settings/layouts/admin", json={"content": "<nav>v2</nav>"})

    assert client.get(f"{API}/settings/layouts/admin").json()["content"] == "<nav>v2</nav>"
    assert client.get(f"{API}/settings/layouts/other").status_code == 422

    backups = client.get(f"{API}/settings/layouts/backups", params={"layout_type": "admin"}).json()
    assert len(backups) == 1
    assert backups[0]["size"] == len("<nav>v1</nav>")

    backup_id = backups[0]["backup_id"]
    restored = client.post(f"{API}/settings/layouts/backups/{backup_id}/restore")
    assert restored.json()["content"] == "<nav>v1</nav>"

    deleted = client.delete(f"{API}/settings/layouts/backups/{backup_id}")
    assert deleted.json()["success"] is True
    assert client.delete(f"{API}/settings/layouts/backups/{backup_id}").status_code == 404
