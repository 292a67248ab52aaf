from datetime import date, datetime, timedelta

import pytest

from conftest import API, STAFF_PASSWORD, login, create_staff
from tmd.models.attendance import Attendance
from tmd.models.audit import AuditLog, LoginHistory, PasswordResetHistory
from tmd.models.task import UserTask
from tmd.models.user import User
from tmd.schemas.department import DepartmentCreate, DepartmentUpdate
from tmd.schemas.task import TaskCreate, TaskUpdate, TaskProgressUpdate, TaskPriority
from tmd.services.dashboard_service import DashboardService
from tmd.services.department_service import DepartmentService
from tmd.services.task_service import TaskService
from tmd.services.user_service import UserService
from tmd.utils.auth import verify_password
from tmd.utils.validators import ValidationError, NotFoundError


# ---- 用戶 ----

def test_admin_cannot_lock_own_account(db, admin_user):
    with pytest.raises(ValidationError):
        UserService(db).toggle_user_status(admin_user.user_id, admin_user.user_id)


def test_toggle_user_status_locks_and_unlocks(db, admin_user, staff_user):
    service = UserService(db)

    assert service.toggle_user_status(staff_user.user_id, admin_user.user_id).is_active is False
    assert service.toggle_user_status(staff_user.user_id, admin_user.user_id).is_active is True


def test_reset_password_keeps_history(db, admin_user, staff_user):
    old_hash = staff_user.password_hash
    UserService(db).reset_password(staff_user.user_id, "brandnew1", "Forgot password", admin_user.user_id)

    history = db.query(PasswordResetHistory).filter(PasswordResetHistory.user_id == staff_user.user_id).one()
    assert history.old_password_hash == old_hash
    assert history.reset_by_user_id == admin_user.user_id
    assert verify_password("brandnew1", staff_user.password_hash)


def test_reset_password_requires_reason(db, admin_user, staff_user):
    with pytest.raises(ValidationError) as exc:
        UserService(db).reset_password(staff_user.user_id, "brandnew1", "  ", admin_user.user_id)
    assert exc.value.field == "reason"


def test_user_details_are_audited(db, admin_user, staff_user):
    details = UserService(db).get_user_details(staff_user.user_id, admin_user.user_id)

    assert details["user"].username == staff_user.username
    assert details["total_logins"] == 0
    assert db.query(AuditLog).filter(AuditLog.action == "VIEW", AuditLog.entity_id == staff_user.user_id).count() == 1


def test_locked_user_loses_access(client, db, admin_user, staff_user):
    assert login(client, staff_user.username, STAFF_PASSWORD).status_code == 200

    UserService(db).toggle_user_status(staff_user.user_id, admin_user.user_id)

    response = client.get(f"{API}/staff/profile")
    assert response.status_code == 403
    assert client.get(f"{API}/staff/profile").status_code == 401


def test_admin_user_endpoints(admin_client, staff_user):
    users = admin_client.get(f"{API}/admin/users")
    assert users.status_code == 200
    assert {u["username"] for u in users.json()} == {"admin", staff_user.username}

    details = admin_client.get(f"{API}/admin/users/{staff_user.user_id}")
    assert details.status_code == 200
    assert details.json()["user"]["department_name"] == "Marketing"

    missing = admin_client.get(f"{API}/admin/users/9999")
    assert missing.status_code == 404


# ---- 部門 ----

def test_department_names_are_unique(db, admin_user, department):
    with pytest.raises(ValidationError):
        DepartmentService(db).create_department(DepartmentCreate(department_name="marketing"), admin_user.user_id)


def test_department_update_and_details(db, admin_user, department, staff_user):
    service = DepartmentService(db)
    updated = service.update_department(
        department.department_id,
        DepartmentUpdate(department_name="Growth", description="Growth team"),
        admin_user.user_id
    )
    details = service.get_department_details(department.department_id)

    assert updated.department_name == "Growth"
    assert details["total_users"] == 1
    assert details["active_users"] == 1


def test_department_with_users_cannot_be_deleted(db, admin_user, department, staff_user):
    service = DepartmentService(db)
    with pytest.raises(ValidationError):
        service.delete_department(department.department_id, admin_user.user_id)

    empty = service.create_department(DepartmentCreate(department_name="Sales"), admin_user.user_id)
    service.delete_department(empty.department_id, admin_user.user_id)
    with pytest.raises(NotFoundError):
        service.get_department(empty.department_id)


def test_department_with_active_users_cannot_be_deactivated(db, admin_user, department, staff_user):
    service = DepartmentService(db)
    with pytest.raises(ValidationError) as exc:
        service.toggle_department_status(department.department_id, admin_user.user_id)
    assert "1 active user" in exc.value.message

    UserService(db).toggle_user_status(staff_user.user_id, admin_user.user_id)
    assert service.toggle_department_status(department.department_id, admin_user.user_id).is_active is False
    assert service.list_departments() == []

    assert service.toggle_department_status(department.department_id, admin_user.user_id).is_active is True
    toggles = db.query(AuditLog).filter(AuditLog.entity_name == "Department", AuditLog.action == "UPDATE")
    assert toggles.count() == 2


def test_reactivating_department_checks_name(db, admin_user):
    service = DepartmentService(db)
    old = service.create_department(DepartmentCreate(department_name="Sales"), admin_user.user_id)
    service.toggle_department_status(old.department_id, admin_user.user_id)
    service.create_department(DepartmentCreate(department_name="sales"), admin_user.user_id)

    with pytest.raises(ValidationError) as exc:
        service.toggle_department_status(old.department_id, admin_user.user_id)
    with pytest.raises(NotFoundError):
        service.toggle_department_status(9999, admin_user.user_id)

    assert exc.value.field == "department_name"


def test_department_endpoints(admin_client):
    created = admin_client.post(f"{API}/admin/departments", json={"department_name": "Design"})
    assert created.status_code == 201

    listing = admin_client.get(f"{API}/admin/departments")
    assert [d["department_name"] for d in listing.json()] == ["Design"]

    duplicate = admin_client.post(f"{API}/admin/departments", json={"department_name": "design"})
    assert duplicate.status_code == 400

    empty_id = created.json()["department_id"]
    toggled = admin_client.post(f"{API}/admin/departments/{empty_id}/toggle-status")
    assert toggled.status_code == 200
    assert toggled.json()["is_active"] is False
    assert admin_client.post(f"{API}/admin/departments/9999/toggle-status").status_code == 404


def test_department_toggle_endpoint_refuses_busy_department(admin_client, department, staff_user):
    response = admin_client.post(f"{API}/admin/departments/{department.department_id}/toggle-status")

    assert response.status_code == 400
    assert response.json()["success"] is False


# ---- 任務 ----

def _task_data(user_ids, **overrides):
    data = {
        "task_name": "Post on Facebook",
        "description": "Weekly posts",
        "platform": "Facebook",
        "target_per_week": 3,
        "deadline": datetime(2030, 1, 31, 17, 0),
        "priority": TaskPriority.HIGH,
        "assigned_user_ids": user_ids,
    }
    data.update(overrides)
    return data


def test_create_task_assigns_users(db, admin_user, staff_user):
    service = TaskService(db)
    task = service.create_task(TaskCreate(**_task_data([staff_user.user_id, staff_user.user_id])),
                               admin_user.user_id)

    serialized = service.serialize_task(task)
    assert serialized["assigned_count"] == 1
    assert serialized["is_completed"] is False
    assert serialized["assignees"][0]["status"] == "InProgress"


def test_create_task_validation(db, admin_user, staff_user):
    service = TaskService(db)
    now = datetime(2025, 3, 10, 9, 0)

    with pytest.raises(ValidationError) as past_deadline:
        service.create_task(TaskCreate(**_task_data([], deadline=now - timedelta(days=1))), admin_user.user_id, now)
    with pytest.raises(ValidationError) as unknown_user:
        service.create_task(TaskCreate(**_task_data([9999])), admin_user.user_id, now)
    with pytest.raises(ValidationError) as negative:
        service.create_task(TaskCreate(**_task_data([], target_per_week=-1)), admin_user.user_id, now)

    assert past_deadline.value.field == "deadline"
    assert unknown_user.value.field == "assigned_user_ids"
    assert negative.value.field == "target_per_week"


def test_update_task_replaces_assignments(db, admin_user, department, staff_user):
    other = create_staff(db, admin_user, username="staff02", full_name="Le Van C",
                         department_id=department.department_id)
    service = TaskService(db)
    task = service.create_task(TaskCreate(**_task_data([staff_user.user_id])), admin_user.user_id)

    updated = service.update_task(task.task_id, TaskUpdate(**_task_data([other.user_id], task_name="Post on TikTok")),
                                  admin_user.user_id)

    assert updated.task_name == "Post on TikTok"
    assert [ut.user_id for ut in updated.user_tasks] == [other.user_id]
    assert db.query(UserTask).filter(UserTask.user_id == staff_user.user_id).count() == 0


def test_progress_completes_task(db, admin_user, staff_user):
    service = TaskService(db)
    task = service.create_task(TaskCreate(**_task_data([staff_user.user_id])), admin_user.user_id)
    user_task = task.user_tasks[0]

    service.update_progress(staff_user.user_id, user_task.user_task_id,
                            TaskProgressUpdate(completed_this_week=3, report_link=" https://fb.com/post "))

    detail = service.get_user_task_detail(staff_user.user_id, user_task.user_task_id)
    assert detail["status"] == "Completed"
    assert detail["progress_percent"] == 100.0
    assert detail["report_link"] == "https://fb.com/post"
    assert service.serialize_task(service.get_task(task.task_id))["is_completed"] is True


def test_progress_on_someone_elses_task_is_refused(db, admin_user, department, staff_user):
    other = create_staff(db, admin_user, username="staff02", full_name="Le Van C",
                         department_id=department.department_id)
    service = TaskService(db)
    task = service.create_task(TaskCreate(**_task_data([staff_user.user_id])), admin_user.user_id)

    with pytest.raises(NotFoundError):
        service.update_progress(other.user_id, task.user_tasks[0].user_task_id,
                                TaskProgressUpdate(completed_this_week=1))


def test_tasks_summary_orders_by_priority(db, admin_user, staff_user):
    service = TaskService(db)
    service.create_task(TaskCreate(**_task_data([staff_user.user_id], task_name="Low one",
                                                priority=TaskPriority.LOW)), admin_user.user_id)
    service.create_task(TaskCreate(**_task_data([staff_user.user_id], task_name="High one")), admin_user.user_id)

    summary = service.get_tasks_summary(staff_user.user_id)

    assert [t["task_name"] for t in summary["tasks"]] == ["High one", "Low one"]
    assert summary["in_progress"] == 2


def test_deleted_task_disappears_for_staff(db, admin_user, staff_user):
    service = TaskService(db)
    task = service.create_task(TaskCreate(**_task_data([staff_user.user_id])), admin_user.user_id)

    service.delete_task(task.task_id, admin_user.user_id)

    assert service.get_user_tasks(staff_user.user_id) == []


def test_task_endpoints(admin_client, staff_user):
    created = admin_client.post(f"{API}/admin/tasks", json={
        "task_name": "Write blog post",
        "target_per_week": 2,
        "priority": "Medium",
        "assigned_user_ids": [staff_user.user_id],
    })
    assert created.status_code == 201
    task_id = created.json()["task_id"]

    toggled = admin_client.post(f"{API}/admin/tasks/{task_id}/toggle-status")
    assert toggled.status_code == 200

    listing = admin_client.get(f"{API}/admin/tasks")
    assert listing.json()[0]["assigned_count"] == 1


def test_admin_dashboard(admin_client, staff_user):
    response = admin_client.get(f"{API}/admin/dashboard")

    assert response.status_code == 200
    body = response.json()
    assert body["total_users"] == 2
    assert body["total_departments"] == 1
    assert body["pending_requests"]["total"] == 0


def test_punctual_staff_counts_on_time_days_of_everyone(db, admin_user, department):
    for i in range(6):
        user = create_staff(db, admin_user, username=f"staff{i:02d}", full_name=f"Staff {i}",
                            department_id=department.department_id)
        on_time_days = [3, 5] if i == 0 else [3]
        for day in on_time_days:
            db.add(Attendance(user_id=user.user_id, work_date=date(2025, 3, day),
                              check_in_time=datetime(2025, 3, day, 7, 55), is_late=False))
        if i:
            db.add(Attendance(user_id=user.user_id, work_date=date(2025, 3, 4),
                              check_in_time=datetime(2025, 3, 4, 8, 30), is_late=True))
    db.commit()

    dashboard = DashboardService(db).admin_dashboard(now=datetime(2025, 3, 20, 18, 0))

    assert dashboard["attendance"]["late"] == 5
    assert len(dashboard["punctual_staff"]) == 5
    top = dashboard["punctual_staff"][0]
    assert (top["full_name"], top["on_time_count"]) == ("Staff 0", 2)


# ---- 稽核 ----

def test_audit_log_filters(admin_client, db, admin_user):
    db.add_all([
        AuditLog(user_id=admin_user.user_id, action="EXPORT", entity_name="SystemSetting",
                 timestamp=datetime(2025, 1, 10, 9, 0)),
        AuditLog(user_id=admin_user.user_id, action="EXPORT", entity_name="SystemSetting",
                 timestamp=datetime(2025, 1, 31, 23, 30)),
        AuditLog(user_id=admin_user.user_id, action="EXPORT", entity_name="SystemSetting",
                 timestamp=datetime(2025, 2, 1, 0, 0)),
        AuditLog(user_id=admin_user.user_id, action="DELETE", entity_name="Task",
                 timestamp=datetime(2025, 1, 15, 9, 0)),
    ])
    db.commit()

    response = admin_client.get(f"{API}/admin/audit-logs", params={
        "action": "EXPORT", "from_date": "2025-01-01", "to_date": "2025-01-31"
    })

    assert response.status_code == 200
    assert [row["timestamp"] for row in response.json()] == ["2025-01-31T23:30:00", "2025-01-10T09:00:00"]
    views = db.query(AuditLog).filter(AuditLog.action == "VIEW", AuditLog.entity_name == "AuditLog")
    assert views.count() == 1
    assert "EXPORT" in admin_client.get(f"{API}/admin/audit-logs/actions").json()


def test_login_history_success_filter(admin_client, db, admin_user):
    db.add(LoginHistory(user_id=admin_user.user_id, username="admin", is_success=False,
                        fail_reason="Wrong password", login_time=datetime(2025, 1, 10, 9, 0)))
    db.commit()

    failed = admin_client.get(f"{API}/admin/login-history", params={"is_success": "false"}).json()
    succeeded = admin_client.get(f"{API}/admin/login-history", params={"is_success": "true"}).json()

    assert [h["fail_reason"] for h in failed] == ["Wrong password"]
    assert len(succeeded) == 1
    assert succeeded[0]["is_success"] is True
