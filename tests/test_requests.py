from datetime import date, datetime, timedelta

import pytest

from conftest import API, ADMIN_PASSWORD, STAFF_PASSWORD, login, create_staff
from tmd.models.attendance import Attendance
from tmd.models.audit import AuditLog
from tmd.models.requests import LeaveRequest
from tmd.schemas.request import (
    RequestStatus, RequestType, LeaveType, LeaveRequestCreate, OvertimeRequestCreate, LateRequestCreate
)
from tmd.services.attendance_service import AttendanceService, AttendancePunch
from tmd.services.payroll_service import PayrollService
from tmd.services.request_service import RequestService
from tmd.services.scheduler import RequestScheduler
from tmd.utils.validators import ValidationError, PermissionDeniedError

TODAY = date(2025, 3, 10)
DAILY_RATE = 5000000 / 26


def leave_data(start=date(2025, 3, 12), end=date(2025, 3, 13), leave_type=LeaveType.ANNUAL):
    return LeaveRequestCreate(leave_type=leave_type, start_date=start, end_date=end, reason="Family trip")


def test_leave_request_counts_days(db, staff_user):
    request_obj = RequestService(db).create_leave_request(staff_user, leave_data())

    assert request_obj.status == RequestStatus.PENDING.value
    assert request_obj.total_days == 2


def test_leave_request_validation(db, staff_user):
    service = RequestService(db)
    with pytest.raises(ValidationError) as inverted:
        service.create_leave_request(staff_user, leave_data(start=date(2025, 3, 14), end=date(2025, 3, 12)))

    service.create_leave_request(staff_user, leave_data())
    with pytest.raises(ValidationError) as overlap:
        service.create_leave_request(staff_user, leave_data(start=date(2025, 3, 13), end=date(2025, 3, 15)))

    assert inverted.value.field == "start_date"
    assert "overlaps" in overlap.value.message


def test_overtime_request_rules(db, staff_user):
    service = RequestService(db)

    with pytest.raises(ValidationError) as future:
        service.create_overtime_request(staff_user, OvertimeRequestCreate(
            work_date=TODAY + timedelta(days=1), actual_check_out_time="20:00", overtime_hours=2, reason="Launch"
        ), today=TODAY)
    with pytest.raises(ValidationError) as bad_time:
        service.create_overtime_request(staff_user, OvertimeRequestCreate(
            work_date=TODAY, actual_check_out_time="8pm", overtime_hours=2, reason="Launch"
        ), today=TODAY)
    with pytest.raises(ValidationError) as too_long:
        service.create_overtime_request(staff_user, OvertimeRequestCreate(
            work_date=TODAY, actual_check_out_time="20:00", overtime_hours=13, reason="Launch"
        ), today=TODAY)

    assert future.value.field == "work_date"
    assert bad_time.value.field == "actual_check_out_time"
    assert too_long.value.field == "overtime_hours"


def test_late_request_cannot_be_in_the_past(db, staff_user):
    with pytest.raises(ValidationError):
        RequestService(db).create_late_request(staff_user, LateRequestCreate(
            request_date=TODAY - timedelta(days=1), expected_arrival_time="09:00", reason="Traffic"
        ), today=TODAY)


def test_approve_leave_marks_attendance_and_recalculates_salary(db, admin_user, staff_user):
    service = RequestService(db)
    request_obj = service.create_leave_request(staff_user, leave_data())

    result = service.approve_request(RequestType.LEAVE, request_obj.request_id, admin_user, "Enjoy",
                                     now=datetime(2025, 3, 11, 10, 0))

    assert result["request"].status == RequestStatus.APPROVED.value
    assert result["request"].reviewed_by == admin_user.user_id
    assert result["attendance_updated"] == 2
    days = db.query(Attendance).filter(Attendance.user_id == staff_user.user_id).all()
    assert sorted(a.work_date for a in days) == [date(2025, 3, 12), date(2025, 3, 13)]
    assert all(a.is_on_leave and a.leave_type == "Annual" for a in days)
    assert result["salaries"][0]["paid_leave_days"] == 2
    assert result["salaries"][0]["total_salary"] == round(2 * DAILY_RATE, 2)


def test_unpaid_leave_is_not_paid(db, admin_user, staff_user):
    service = RequestService(db)
    request_obj = service.create_leave_request(staff_user, leave_data(leave_type=LeaveType.UNPAID))

    result = service.approve_request(RequestType.LEAVE, request_obj.request_id, admin_user)

    assert result["salaries"][0]["unpaid_leave_days"] == 2
    assert result["salaries"][0]["total_salary"] == 0


def test_leave_across_months_recalculates_each_month(db, admin_user, staff_user):
    service = RequestService(db)
    request_obj = service.create_leave_request(staff_user, leave_data(start=date(2025, 3, 31), end=date(2025, 4, 1)))

    result = service.approve_request(RequestType.LEAVE, request_obj.request_id, admin_user)

    assert [(s["year"], s["month"]) for s in result["salaries"]] == [(2025, 3), (2025, 4)]
    assert [s["paid_leave_days"] for s in result["salaries"]] == [1, 1]


def test_approve_overtime_adds_overtime_pay(db, admin_user, staff_user):
    service = RequestService(db)
    request_obj = service.create_overtime_request(staff_user, OvertimeRequestCreate(
        work_date=TODAY, actual_check_out_time="19:30", overtime_hours=2, reason="Campaign launch"
    ), today=TODAY)

    result = service.approve_request(RequestType.OVERTIME, request_obj.request_id, admin_user)

    attendance = db.query(Attendance).filter(Attendance.work_date == TODAY).one()
    assert attendance.overtime_hours == 2
    assert result["salaries"][0]["overtime_pay"] == round(2 * DAILY_RATE / 8 * 1.5, 2)


def test_approve_late_request_excuses_existing_late_check_in(db, admin_user, staff_user):
    AttendanceService(db).check_in(
        staff_user,
        AttendancePunch(latitude=10.7769, longitude=106.7009, photo_filename="a.jpg", photo_content=b"img"),
        now=datetime(2025, 3, 10, 8, 40)
    )
    service = RequestService(db)
    request_obj = service.create_late_request(staff_user, LateRequestCreate(
        request_date=TODAY, expected_arrival_time="09:00", reason="Flat tyre"
    ), today=TODAY)

    result = service.approve_request(RequestType.LATE, request_obj.request_id, admin_user)

    assert result["attendance_updated"] == 1
    assert result["salaries"][0]["late_days"] == 0
    assert result["salaries"][0]["excused_late_days"] == 1


def test_reject_requires_note_and_pending_status(db, admin_user, staff_user):
    service = RequestService(db)
    request_obj = service.create_leave_request(staff_user, leave_data())

    with pytest.raises(ValidationError) as missing_note:
        service.reject_request(RequestType.LEAVE, request_obj.request_id, admin_user, " ")
    rejected = service.reject_request(RequestType.LEAVE, request_obj.request_id, admin_user, "Busy week")
    with pytest.raises(ValidationError) as twice:
        service.approve_request(RequestType.LEAVE, request_obj.request_id, admin_user)

    assert missing_note.value.field == "note"
    assert rejected.status == RequestStatus.REJECTED.value
    assert rejected.review_note == "Busy week"
    assert twice.value.field == "status"


def test_only_owner_can_cancel(db, admin_user, department, staff_user):
    other = create_staff(db, admin_user, username="staff02", full_name="Le Van C",
                         department_id=department.department_id)
    service = RequestService(db)
    request_obj = service.create_leave_request(staff_user, leave_data())

    with pytest.raises(PermissionDeniedError):
        service.cancel_request(other, RequestType.LEAVE, request_obj.request_id)
    cancelled = service.cancel_request(staff_user, RequestType.LEAVE, request_obj.request_id)

    assert cancelled.status == RequestStatus.CANCELLED.value
    assert service.count_pending()["total"] == 0


def test_auto_reject_stale_requests(db, staff_user):
    service = RequestService(db)
    stale = service.create_leave_request(staff_user, leave_data())
    fresh = service.create_leave_request(staff_user, leave_data(start=date(2025, 4, 1), end=date(2025, 4, 1)))
    now = datetime(2025, 3, 20, 12, 0)
    stale.created_at = now - timedelta(days=4)
    fresh.created_at = now - timedelta(days=1)
    db.commit()

    rejected = service.auto_reject_stale(now=now, days=3)

    assert rejected == [{"kind": "leave", "request_id": stale.request_id, "user_id": staff_user.user_id}]
    db.refresh(stale)
    db.refresh(fresh)
    assert stale.status == RequestStatus.REJECTED.value
    assert stale.reviewed_by is None
    assert "3 days" in stale.review_note
    assert fresh.status == RequestStatus.PENDING.value
    assert db.query(AuditLog).filter(AuditLog.action == "AUTO_REJECT").count() == 1


def test_auto_reject_keeps_request_exactly_at_cutoff(db, staff_user):
    service = RequestService(db)
    request_obj = service.create_leave_request(staff_user, leave_data())
    now = datetime(2025, 3, 20, 12, 0)
    request_obj.created_at = now - timedelta(days=3)
    db.commit()

    assert service.auto_reject_stale(now=now, days=3) == []
    db.refresh(request_obj)
    assert request_obj.status == RequestStatus.PENDING.value


def test_scheduler_job_rejects_old_requests(db, staff_user):
    request_obj = RequestService(db).create_leave_request(staff_user, leave_data())
    request_obj.created_at = datetime(2020, 1, 1, 9, 0)
    db.commit()

    scheduler = RequestScheduler()
    assert scheduler.scheduler.get_job("auto_reject_requests") is not None
    assert scheduler.auto_reject_job() == 1

    db.expire_all()
    assert db.query(LeaveRequest).one().status == RequestStatus.REJECTED.value


def test_payroll_counts_worked_days_and_late_deduction(db, staff_user):
    service = AttendanceService(db)
    punch = AttendancePunch(latitude=10.7769, longitude=106.7009, photo_filename="a.jpg", photo_content=b"img")
    service.check_in(staff_user, punch, now=datetime(2025, 3, 3, 7, 55))
    service.check_out(staff_user, punch, now=datetime(2025, 3, 3, 17, 0))
    service.check_in(staff_user, punch, now=datetime(2025, 3, 4, 8, 30))
    service.check_out(staff_user, punch, now=datetime(2025, 3, 4, 17, 0))

    salary = PayrollService(db).calculate_monthly_salary(staff_user.user_id, 2025, 3)

    assert salary["worked_days"] == 2
    assert salary["late_days"] == 1
    assert salary["late_deduction"] == 50000
    assert salary["total_salary"] == round(2 * DAILY_RATE - 50000, 2)


def test_payroll_rejects_invalid_month(db, staff_user):
    with pytest.raises(ValidationError):
        PayrollService(db).calculate_monthly_salary(staff_user.user_id, 2025, 13)


def test_request_endpoints_flow(client, db, admin_user, staff_user):
    login(client, staff_user.username, STAFF_PASSWORD)
    start = date.today() + timedelta(days=7)
    created = client.post(f"{API}/staff/requests/leave", json={
        "leave_type": "Sick", "start_date": start.isoformat(), "end_date": start.isoformat(),
        "reason": "Check-up"
    })
    assert created.status_code == 201
    request_id = created.json()["request_id"]

    proof = client.post(f"{API}/staff/requests/leave/{request_id}/proof",
                        files={"document": ("note.pdf", b"%PDF-1.4", "application/pdf")})
    assert proof.status_code == 200
    assert proof.json()["proof_document"].startswith("/uploads/requests/")

    mine = client.get(f"{API}/staff/requests", params={"status": "Pending"})
    assert [r["request_id"] for r in mine.json()] == [request_id]

    client.post(f"{API}/account/logout")
    login(client, "admin", ADMIN_PASSWORD)

    reject = client.post(f"{API}/admin/requests/leave/{request_id}/reject", json={"note": ""})
    assert reject.status_code == 400

    approved = client.post(f"{API}/admin/requests/leave/{request_id}/approve", json={"note": "Get well"})
    assert approved.status_code == 200
    assert approved.json()["request"]["status"] == "Approved"
    assert approved.json()["attendance_updated"] == 1

    missing = client.post(f"{API}/admin/requests/late/999/approve")
    assert missing.status_code == 404
