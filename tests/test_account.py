from datetime import date, datetime, timedelta

import pytest

from conftest import API, ADMIN_PASSWORD, STAFF_PASSWORD, login, create_staff
from tmd.models.audit import AuditLog, LoginHistory, PasswordResetHistory
from tmd.models.user import Role, ROLE_STAFF
from tmd.schemas.request import LeaveType, LeaveRequestCreate
from tmd.schemas.user import UserCreate, ProfileUpdate, ChangePasswordRequest
from tmd.services.account_service import AccountService, INVALID_CREDENTIALS, ACCOUNT_LOCKED
from tmd.services.dashboard_service import DashboardService
from tmd.services.request_service import RequestService
from tmd.services.user_service import UserService
from tmd.utils.auth import verify_password
from tmd.utils.validators import ValidationError, NotFoundError


def test_default_admin_is_created_once(db):
    service = AccountService(db)
    first = service.ensure_default_admin("admin", ADMIN_PASSWORD, "System Administrator")
    second = service.ensure_default_admin("other", "secret99", "Other")

    assert first is not None
    assert first.role_name == "Admin"
    assert verify_password(ADMIN_PASSWORD, first.password_hash)
    assert second is None


def test_login_success_records_history(db, admin_user):
    user = AccountService(db).login("admin", ADMIN_PASSWORD)

    assert user.user_id == admin_user.user_id
    assert user.last_login_at is not None
    history = db.query(LoginHistory).filter(LoginHistory.user_id == user.user_id).all()
    assert len(history) == 1
    assert history[0].is_success is True
    assert db.query(AuditLog).filter(AuditLog.action == "LOGIN").count() == 1


def test_login_unknown_user_and_wrong_password_share_message(db, admin_user):
    service = AccountService(db)
    with pytest.raises(ValidationError) as unknown:
        service.login("nobody", "whatever")
    with pytest.raises(ValidationError) as wrong:
        service.login("admin", "wrong-password")

    assert unknown.value.message == INVALID_CREDENTIALS
    assert wrong.value.message == INVALID_CREDENTIALS
    failed = db.query(LoginHistory).filter(LoginHistory.is_success == False).all()
    assert {h.fail_reason for h in failed} == {"Username does not exist", "Wrong password"}
    assert db.query(AuditLog).filter(AuditLog.action == "LOGIN_FAILED").count() == 2


def test_locked_account_cannot_login(db, staff_user):
    staff_user.is_active = False
    db.commit()

    with pytest.raises(ValidationError) as exc:
        AccountService(db).login(staff_user.username, STAFF_PASSWORD)
    assert exc.value.message == ACCOUNT_LOCKED


def test_register_rejects_duplicates(db, admin_user, staff_user):
    staff_role = db.query(Role).filter(Role.role_name == ROLE_STAFF).first()
    service = AccountService(db)

    with pytest.raises(ValidationError) as duplicate_username:
        service.register(UserCreate(username=staff_user.username, full_name="Copy", password="secret99",
                                    role_id=staff_role.role_id), admin_user.user_id)
    with pytest.raises(ValidationError) as duplicate_email:
        service.register(UserCreate(username="newbie", full_name="Copy", password="secret99",
                                    email="STAFF01@tmdcorp.com", role_id=staff_role.role_id),
                         admin_user.user_id)
    with pytest.raises(ValidationError) as short_password:
        service.register(UserCreate(username="newbie", full_name="Copy", password="123",
                                    role_id=staff_role.role_id), admin_user.user_id)

    assert duplicate_username.value.field == "username"
    assert duplicate_email.value.field == "email"
    assert short_password.value.field == "password"


def test_register_rejects_unknown_department(db, admin_user):
    with pytest.raises(ValidationError) as exc:
        create_staff(db, admin_user, department_id=999)
    assert exc.value.field == "department_id"


def test_login_endpoint_sets_session(client, admin_user):
    response = login(client, "admin", ADMIN_PASSWORD)

    assert response.status_code == 200
    body = response.json()
    assert body["redirect_url"] == "/admin/dashboard"
    assert body["user"]["role_name"] == "Admin"

    me = client.get(f"{API}/account/me")
    assert me.status_code == 200
    assert me.json()["username"] == "admin"


def test_login_endpoint_rejects_bad_credentials(client, admin_user):
    response = login(client, "admin", "nope-nope")

    assert response.status_code == 401
    assert response.json()["detail"] == INVALID_CREDENTIALS


def test_logout_clears_session(admin_client):
    response = admin_client.post(f"{API}/account/logout")

    assert response.status_code == 200
    assert admin_client.get(f"{API}/account/me").status_code == 401


def test_staff_cannot_register_accounts(staff_client, db):
    staff_role = db.query(Role).filter(Role.role_name == ROLE_STAFF).first()
    response = staff_client.post(f"{API}/account/register", json={
        "username": "intruder", "full_name": "Intruder", "password": "secret99", "role_id": staff_role.role_id
    })

    assert response.status_code == 403
    db.expire_all()
    assert db.query(AuditLog).filter(AuditLog.action == "UNAUTHORIZED_ACCESS_FAILED").count() == 1


def test_admin_registers_account(admin_client, db):
    staff_role = db.query(Role).filter(Role.role_name == ROLE_STAFF).first()
    response = admin_client.post(f"{API}/account/register", json={
        "username": "newstaff", "full_name": "Tran Thi B", "password": "secret99",
        "email": "b@tmdcorp.com", "role_id": staff_role.role_id
    })

    assert response.status_code == 201
    assert response.json()["role_name"] == ROLE_STAFF

    duplicate = admin_client.post(f"{API}/account/register", json={
        "username": "newstaff", "full_name": "Again", "password": "secret99", "role_id": staff_role.role_id
    })
    assert duplicate.status_code == 400
    assert duplicate.json()["field"] == "username"


# ---- 個人資料與密碼 ----

def test_update_profile_lists_changed_fields(db, staff_user):
    UserService(db).update_profile(staff_user.user_id, ProfileUpdate(
        full_name="Nguyen Van B", email="staff01@tmdcorp.com", phone_number=" 0901234567 "
    ))

    entry = db.query(AuditLog).filter(AuditLog.action == "UPDATE_PROFILE").one()
    assert entry.description == "full_name: 'Nguyen Van A' → 'Nguyen Van B'; phone_number: '' → '0901234567'"
    assert staff_user.phone_number == "0901234567"


def test_update_profile_without_changes(db, staff_user):
    UserService(db).update_profile(staff_user.user_id, ProfileUpdate(
        full_name="Nguyen Van A", email="staff01@tmdcorp.com"
    ))

    entry = db.query(AuditLog).filter(AuditLog.action == "UPDATE_PROFILE").one()
    assert entry.description == "No changes"


def test_update_profile_rejects_taken_email(db, admin_user, staff_user):
    create_staff(db, admin_user, username="staff02", full_name="Le Van C", email="lec@tmdcorp.com")

    with pytest.raises(ValidationError) as exc:
        UserService(db).update_profile(staff_user.user_id, ProfileUpdate(
            full_name="Nguyen Van A", email="LEC@tmdcorp.com"
        ))

    assert exc.value.field == "email"
    assert staff_user.email == "staff01@tmdcorp.com"
    assert db.query(AuditLog).filter(AuditLog.action == "UPDATE_PROFILE_FAILED").count() == 1


@pytest.mark.parametrize("current, new, confirm, field", [
    ("wrong-one", "newpass1", "newpass1", "current_password"),
    (STAFF_PASSWORD, "12345", "12345", "new_password"),
    (STAFF_PASSWORD, "newpass1", "newpass2", "confirm_password"),
    (STAFF_PASSWORD, STAFF_PASSWORD, STAFF_PASSWORD, "new_password"),
])
def test_change_password_rules(db, staff_user, current, new, confirm, field):
    with pytest.raises(ValidationError) as exc:
        UserService(db).change_password(staff_user.user_id, ChangePasswordRequest(
            current_password=current, new_password=new, confirm_password=confirm
        ))

    assert exc.value.field == field
    assert verify_password(STAFF_PASSWORD, staff_user.password_hash)
    assert db.query(AuditLog).filter(AuditLog.action == "CHANGE_PASSWORD_FAILED").count() == 1


def test_change_password_endpoint_logs_out(staff_client, db, staff_user):
    old_hash = staff_user.password_hash
    response = staff_client.post(f"{API}/staff/change-password", json={
        "current_password": STAFF_PASSWORD, "new_password": "newpass1", "confirm_password": "newpass1"
    })

    assert response.status_code == 200
    assert response.json()["redirect_url"] == "/account/login"
    assert staff_client.get(f"{API}/staff/profile").status_code == 401
    history = db.query(PasswordResetHistory).one()
    assert history.user_id == staff_user.user_id
    assert history.reset_by_user_id == staff_user.user_id
    assert history.old_password_hash == old_hash
    assert login(staff_client, staff_user.username, "newpass1").status_code == 200


def test_my_department_requires_assignment(db, admin_user, staff_user):
    loner = create_staff(db, admin_user, username="staff02", full_name="Le Van C")

    with pytest.raises(NotFoundError) as exc:
        UserService(db).my_department(loner.user_id)
    department = UserService(db).my_department(staff_user.user_id)

    assert exc.value.message == "You are not assigned to a department"
    assert department["department_name"] == "Marketing"
    assert [m["user_id"] for m in department["members"]] == [staff_user.user_id]


def test_my_login_history_is_limited_and_audited(db, staff_user):
    start = datetime(2025, 1, 1, 8, 0)
    for i in range(55):
        db.add(LoginHistory(user_id=staff_user.user_id, username=staff_user.username,
                            login_time=start + timedelta(hours=i), is_success=True))
    db.commit()

    histories = UserService(db).my_login_history(staff_user.user_id)

    assert len(histories) == 50
    assert histories[0].login_time == start + timedelta(hours=54)
    views = db.query(AuditLog).filter(AuditLog.action == "VIEW", AuditLog.entity_name == "LoginHistory")
    assert views.count() == 1


def test_staff_dashboard(db, staff_user):
    AccountService(db).login(staff_user.username, STAFF_PASSWORD)
    AccountService(db).login(staff_user.username, STAFF_PASSWORD)
    start = date.today() + timedelta(days=7)
    RequestService(db).create_leave_request(staff_user, LeaveRequestCreate(
        leave_type=LeaveType.ANNUAL, start_date=start, end_date=start, reason="Family trip"
    ))

    dashboard = DashboardService(db).staff_dashboard(staff_user)

    assert dashboard["department_name"] == "Marketing"
    assert len(dashboard["recent_logins"]) == 2
    assert dashboard["logins_this_month"] == 2
    assert dashboard["previous_login"] == dashboard["recent_logins"][1]["login_time"]
    assert dashboard["department_members"] == 1
    assert dashboard["attendance_days_this_month"] == 0
    assert dashboard["pending_requests"] == 1
