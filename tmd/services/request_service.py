"""
Leave / overtime / late request workflow: submission, review and automatic expiry.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union
from sqlalchemy.orm import Session, joinedload

from tmd.config import settings
from tmd.models.attendance import Attendance
from tmd.models.requests import LeaveRequest, OvertimeRequest, LateRequest
from tmd.models.user import User
from tmd.schemas.request import (
    RequestStatus, RequestType, LeaveRequestCreate, OvertimeRequestCreate, LateRequestCreate
)
from tmd.services.audit_service import AuditService
from tmd.services.payroll_service import PayrollService
from tmd.utils.datetime_utils import local_now, iter_dates
from tmd.utils.storage import save_file
from tmd.utils.validators import (
    ValidationError, NotFoundError, PermissionDeniedError,
    validate_time_string, validate_date_range, validate_upload, get_file_extension
)

logger = logging.getLogger(__name__)

AnyRequest = Union[LeaveRequest, OvertimeRequest, LateRequest]

REQUEST_MODELS = {
    RequestType.LEAVE: LeaveRequest,
    RequestType.OVERTIME: OvertimeRequest,
    RequestType.LATE: LateRequest,
}

ENTITY_NAMES = {
    RequestType.LEAVE: "LeaveRequest",
    RequestType.OVERTIME: "OvertimeRequest",
    RequestType.LATE: "LateRequest",
}

MIN_OVERTIME_HOURS = 0.1
MAX_OVERTIME_HOURS = 12


def _pk(model):
    return {
        LeaveRequest: LeaveRequest.leave_request_id,
        OvertimeRequest: OvertimeRequest.overtime_request_id,
        LateRequest: LateRequest.late_request_id,
    }[model]


def affected_months(request_obj: AnyRequest) -> List[Tuple[int, int]]:
    """申請影響的 (年, 月)，用於重新計算薪資；跨月請假會回傳多個月份"""
    if isinstance(request_obj, LeaveRequest):
        months = []
        for day in iter_dates(request_obj.start_date, request_obj.end_date):
            if (day.year, day.month) not in months:
                months.append((day.year, day.month))
        return months
    if isinstance(request_obj, OvertimeRequest):
        return [(request_obj.work_date.year, request_obj.work_date.month)]
    return [(request_obj.request_date.year, request_obj.request_date.month)]


def serialize_request(request_obj: AnyRequest) -> Dict[str, Any]:
    data = {
        "request_type": request_obj.kind,
        "request_id": request_obj.request_id,
        "user_id": request_obj.user_id,
        "full_name": request_obj.user.full_name if request_obj.user else None,
        "status": request_obj.status,
        "reason": request_obj.reason,
        "reviewed_by": request_obj.reviewed_by,
        "reviewed_at": request_obj.reviewed_at,
        "review_note": request_obj.review_note,
        "created_at": request_obj.created_at,
    }
    if isinstance(request_obj, LeaveRequest):
        data.update({
            "leave_type": request_obj.leave_type,
            "start_date": request_obj.start_date,
            "end_date": request_obj.end_date,
            "total_days": request_obj.total_days,
            "proof_document": request_obj.proof_document,
        })
    elif isinstance(request_obj, OvertimeRequest):
        data.update({
            "work_date": request_obj.work_date,
            "actual_check_out_time": request_obj.actual_check_out_time,
            "overtime_hours": request_obj.overtime_hours,
            "task_description": request_obj.task_description,
        })
    else:
        data.update({
            "request_date": request_obj.request_date,
            "expected_arrival_time": request_obj.expected_arrival_time,
            "proof_document": request_obj.proof_document,
        })
    return data


class RequestService:
    """申請審核業務邏輯"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    # ---- 查詢 ----

    def get_request(self, request_type: RequestType, request_id: int) -> AnyRequest:
        model = REQUEST_MODELS[RequestType(request_type)]
        request_obj = self.db.query(model).options(joinedload(model.user)).filter(
            _pk(model) == request_id
        ).first()
        if not request_obj:
            raise NotFoundError("Request not found")
        return request_obj

    def list_requests(
        self,
        request_type: Optional[RequestType] = None,
        status: Optional[RequestStatus] = None,
        user_id: Optional[int] = None
    ) -> List[AnyRequest]:
        """列出申請（新到舊）"""
        types = [RequestType(request_type)] if request_type else list(REQUEST_MODELS)
        results: List[AnyRequest] = []
        for kind in types:
            model = REQUEST_MODELS[kind]
            query = self.db.query(model).options(joinedload(model.user))
            if status:
                query = query.filter(model.status == RequestStatus(status).value)
            if user_id:
                query = query.filter(model.user_id == user_id)
            results.extend(query.all())
        return sorted(results, key=lambda r: r.created_at or datetime.min, reverse=True)

    def count_pending(self, user_id: Optional[int] = None) -> Dict[str, int]:
        counts = {}
        for kind, model in REQUEST_MODELS.items():
            query = self.db.query(model).filter(model.status == RequestStatus.PENDING.value)
            if user_id:
                query = query.filter(model.user_id == user_id)
            counts[kind.value] = query.count()
        counts["total"] = sum(counts.values())
        return counts

    def _has_active_duplicate(self, model, user_id: int, *criteria) -> bool:
        return self.db.query(model).filter(
            model.user_id == user_id,
            model.status.in_([RequestStatus.PENDING.value, RequestStatus.APPROVED.value]),
            *criteria
        ).first() is not None

    # ---- 建立 ----

    def create_leave_request(self, user: User, data: LeaveRequestCreate) -> LeaveRequest:
        """
        建立請假申請。

        Raises:
            ValidationError: 日期區間無效、原因為空、與既有申請重疊
        """
        try:
            if not validate_date_range(data.start_date, data.end_date):
                raise ValidationError("Start date must be on or before end date", "start_date")
            reason = data.reason.strip()
            if not reason:
                raise ValidationError("Reason is required", "reason")
            if self._has_active_duplicate(
                LeaveRequest, user.user_id,
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date
            ):
                raise ValidationError("The leave period overlaps an existing request", "start_date")
        except ValidationError as e:
            self.audit.log_failed_attempt(user.user_id, "CREATE", "LeaveRequest", e.message)
            raise

        now = local_now()
        request_obj = LeaveRequest(
            user_id=user.user_id,
            leave_type=data.leave_type.value,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=(data.end_date - data.start_date).days + 1,
            reason=reason,
            status=RequestStatus.PENDING.value,
            created_at=now,
            updated_at=now
        )
        return self._save_new(user, RequestType.LEAVE, request_obj)

    def create_overtime_request(self, user: User, data: OvertimeRequestCreate,
                                today: Optional[date] = None) -> OvertimeRequest:
        """
        建立加班申請。

        Raises:
            ValidationError: 日期在未來、時間格式錯誤、時數超出範圍、重複申請
        """
        today = today or local_now().date()
        try:
            if data.work_date > today:
                raise ValidationError("Overtime can only be requested for today or earlier", "work_date")
            check_out_time = validate_time_string(data.actual_check_out_time, "actual_check_out_time")
            if not MIN_OVERTIME_HOURS <= data.overtime_hours <= MAX_OVERTIME_HOURS:
                raise ValidationError(
                    f"Overtime hours must be between {MIN_OVERTIME_HOURS} and {MAX_OVERTIME_HOURS}",
                    "overtime_hours"
                )
            reason = data.reason.strip()
            if not reason:
                raise ValidationError("Reason is required", "reason")
            if self._has_active_duplicate(OvertimeRequest, user.user_id,
                                          OvertimeRequest.work_date == data.work_date):
                raise ValidationError("An overtime request already exists for this date", "work_date")
        except ValidationError as e:
            self.audit.log_failed_attempt(user.user_id, "CREATE", "OvertimeRequest", e.message)
            raise

        now = local_now()
        request_obj = OvertimeRequest(
            user_id=user.user_id,
            work_date=data.work_date,
            actual_check_out_time=check_out_time,
            overtime_hours=round(data.overtime_hours, 2),
            reason=reason,
            task_description=data.task_description,
            status=RequestStatus.PENDING.value,
            created_at=now,
            updated_at=now
        )
        return self._save_new(user, RequestType.OVERTIME, request_obj)

    def create_late_request(self, user: User, data: LateRequestCreate,
                            today: Optional[date] = None) -> LateRequest:
        """
        建立遲到申請。

        Raises:
            ValidationError: 日期已過、時間格式錯誤、重複申請
        """
        today = today or local_now().date()
        try:
            if data.request_date < today:
                raise ValidationError("Late requests cannot be made for past dates", "request_date")
            arrival = validate_time_string(data.expected_arrival_time, "expected_arrival_time")
            reason = data.reason.strip()
            if not reason:
                raise ValidationError("Reason is required", "reason")
            if self._has_active_duplicate(LateRequest, user.user_id,
                                          LateRequest.request_date == data.request_date):
                raise ValidationError("A late request already exists for this date", "request_date")
        except ValidationError as e:
            self.audit.log_failed_attempt(user.user_id, "CREATE", "LateRequest", e.message)
            raise

        now = local_now()
        request_obj = LateRequest(
            user_id=user.user_id,
            request_date=data.request_date,
            expected_arrival_time=arrival,
            reason=reason,
            status=RequestStatus.PENDING.value,
            created_at=now,
            updated_at=now
        )
        return self._save_new(user, RequestType.LATE, request_obj)

    def _save_new(self, user: User, request_type: RequestType, request_obj: AnyRequest) -> AnyRequest:
        self.db.add(request_obj)
        self.db.commit()
        self.db.refresh(request_obj)
        self.audit.log(
            user.user_id, "CREATE", ENTITY_NAMES[request_type], request_obj.request_id, None,
            serialize_request(request_obj), f"Submitted {request_type.value} request"
        )
        logger.info(f"User {user.user_id} submitted {request_type.value} request {request_obj.request_id}")
        return request_obj

    def attach_proof(self, user: User, request_type: RequestType, request_id: int,
                     filename: str, content: bytes) -> AnyRequest:
        """上傳請假或遲到申請的證明文件"""
        request_type = RequestType(request_type)
        if request_type == RequestType.OVERTIME:
            raise ValidationError("Overtime requests do not accept documents")
        request_obj = self.get_request(request_type, request_id)
        if request_obj.user_id != user.user_id:
            raise NotFoundError("Request not found")
        if request_obj.status != RequestStatus.PENDING.value:
            raise ValidationError("Only pending requests can be changed")
        validate_upload(filename, content, settings.ALLOWED_DOCUMENT_EXTENSIONS,
                        settings.MAX_DOCUMENT_SIZE, "proof_document")

        stored = (f"{user.user_id}_{request_type.value}_{request_id}_"
                  f"{local_now().strftime('%Y%m%d_%H%M%S')}{get_file_extension(filename)}")
        request_obj.proof_document = save_file("requests", stored, content)
        request_obj.updated_at = local_now()
        self.db.commit()
        self.audit.log(user.user_id, "UPLOAD_PROOF", ENTITY_NAMES[request_type], request_id,
                       None, {"proof_document": request_obj.proof_document})
        return request_obj

    # ---- 狀態轉換 ----

    def cancel_request(self, user: User, request_type: RequestType, request_id: int) -> AnyRequest:
        """申請人取消自己待審的申請"""
        request_type = RequestType(request_type)
        request_obj = self.get_request(request_type, request_id)
        if request_obj.user_id != user.user_id:
            self.audit.log_failed_attempt(user.user_id, "CANCEL", ENTITY_NAMES[request_type],
                                          "Not the owner of the request", {"request_id": request_id})
            raise PermissionDeniedError("You can only cancel your own requests")
        self._ensure_pending(request_obj, user.user_id, "CANCEL", request_type)

        request_obj.status = RequestStatus.CANCELLED.value
        request_obj.updated_at = local_now()
        self.db.commit()
        self.audit.log(user.user_id, "CANCEL", ENTITY_NAMES[request_type], request_id,
                       {"status": RequestStatus.PENDING.value}, {"status": request_obj.status})
        return request_obj

    def _ensure_pending(self, request_obj: AnyRequest, actor_id: Optional[int], action: str,
                        request_type: RequestType) -> None:
        if request_obj.status != RequestStatus.PENDING.value:
            message = f"Request has already been {request_obj.status.lower()}"
            self.audit.log_failed_attempt(actor_id, action, ENTITY_NAMES[request_type], message,
                                          {"request_id": request_obj.request_id})
            raise ValidationError(message, "status")

    def approve_request(self, request_type: RequestType, request_id: int, reviewer: User,
                        note: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        核准申請並套用到考勤紀錄，回傳受影響月份重新計算的薪資。

        Args:
            request_type: 申請類型
            request_id: 申請 ID
            reviewer: 審核的管理員
            note: 審核備註
            now: 審核時間（測試用）

        Returns:
            {"request": 申請, "attendance_updated": 受影響的考勤筆數, "salaries": 各受影響月份的薪資}

        Raises:
            NotFoundError: 申請不存在
            ValidationError: 申請已不在待審狀態
        """
        request_type = RequestType(request_type)
        now = now or local_now()
        request_obj = self.get_request(request_type, request_id)
        self._ensure_pending(request_obj, reviewer.user_id, "APPROVE", request_type)

        request_obj.status = RequestStatus.APPROVED.value
        request_obj.reviewed_by = reviewer.user_id
        request_obj.reviewed_at = now
        request_obj.review_note = note.strip() if note else None
        request_obj.updated_at = now
        updated = self._apply_to_attendance(request_obj, now)
        self.db.commit()
        self.db.refresh(request_obj)

        payroll = PayrollService(self.db)
        salaries = [
            payroll.calculate_monthly_salary(request_obj.user_id, year, month)
            for year, month in affected_months(request_obj)
        ]

        self.audit.log_detailed(
            reviewer.user_id, "APPROVE", ENTITY_NAMES[request_type], request_id,
            {"status": RequestStatus.PENDING.value},
            {"status": request_obj.status, "review_note": request_obj.review_note},
            f"Approved {request_type.value} request of user {request_obj.user_id}",
            extra={"attendance_updated": updated,
                   "total_salary": {f"{s['year']}-{s['month']:02d}": s["total_salary"] for s in salaries}}
        )
        logger.info(f"{request_type.value} request {request_id} approved by {reviewer.user_id}")
        return {"request": request_obj, "attendance_updated": updated, "salaries": salaries}

    def reject_request(self, request_type: RequestType, request_id: int, reviewer: User,
                       note: Optional[str], now: Optional[datetime] = None) -> AnyRequest:
        """
        拒絕申請（必須填寫原因）。

        Raises:
            ValidationError: 未填寫原因或申請已不在待審狀態
        """
        request_type = RequestType(request_type)
        now = now or local_now()
        request_obj = self.get_request(request_type, request_id)
        if not note or not note.strip():
            self.audit.log_failed_attempt(reviewer.user_id, "REJECT", ENTITY_NAMES[request_type],
                                          "Missing rejection reason", {"request_id": request_id})
            raise ValidationError("A reason is required to reject a request", "note")
        self._ensure_pending(request_obj, reviewer.user_id, "REJECT", request_type)

        request_obj.status = RequestStatus.REJECTED.value
        request_obj.reviewed_by = reviewer.user_id
        request_obj.reviewed_at = now
        request_obj.review_note = note.strip()
        request_obj.updated_at = now
        self.db.commit()
        self.db.refresh(request_obj)

        self.audit.log(
            reviewer.user_id, "REJECT", ENTITY_NAMES[request_type], request_id,
            {"status": RequestStatus.PENDING.value},
            {"status": request_obj.status, "review_note": request_obj.review_note},
            f"Rejected {request_type.value} request of user {request_obj.user_id}"
        )
        return request_obj

    def auto_reject_stale(self, now: Optional[datetime] = None,
                          days: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        自動拒絕超過期限仍未審核的申請。

        Args:
            now: 目前時間
            days: 期限天數，預設為 AUTO_REJECT_DAYS

        Returns:
            被拒絕的申請摘要（kind、request_id、user_id）
        """
        now = now or local_now()
        days = settings.AUTO_REJECT_DAYS if days is None else days
        cutoff = now - timedelta(days=days)
        note = f"Automatically rejected: not reviewed within {days} days"

        rejected: List[AnyRequest] = []
        for kind, model in REQUEST_MODELS.items():
            stale = self.db.query(model).filter(
                model.status == RequestStatus.PENDING.value,
                model.created_at < cutoff
            ).all()
            for request_obj in stale:
                request_obj.status = RequestStatus.REJECTED.value
                request_obj.reviewed_by = None
                request_obj.reviewed_at = now
                request_obj.review_note = note
                request_obj.updated_at = now
                rejected.append(request_obj)

        if not rejected:
            return []

        self.db.commit()
        summary = []
        for request_obj in rejected:
            kind = RequestType(request_obj.kind)
            self.audit.log(
                None, "AUTO_REJECT", ENTITY_NAMES[kind], request_obj.request_id,
                {"status": RequestStatus.PENDING.value},
                {"status": RequestStatus.REJECTED.value, "review_note": note},
                f"Auto-rejected {kind.value} request of user {request_obj.user_id}"
            )
            summary.append({"kind": kind.value, "request_id": request_obj.request_id,
                            "user_id": request_obj.user_id})
        logger.info(f"Auto-rejected {len(summary)} stale request(s)")
        return summary

    # ---- 考勤套用 ----

    def _get_or_create_attendance(self, user_id: int, work_date: date, now: datetime) -> Attendance:
        attendance = self.db.query(Attendance).filter(
            Attendance.user_id == user_id,
            Attendance.work_date == work_date
        ).first()
        if attendance is None:
            attendance = Attendance(user_id=user_id, work_date=work_date, created_at=now, updated_at=now)
            self.db.add(attendance)
        return attendance

    def _apply_to_attendance(self, request_obj: AnyRequest, now: datetime) -> int:
        """把已核准的申請寫入考勤紀錄，回傳受影響筆數"""
        if isinstance(request_obj, LeaveRequest):
            count = 0
            for day in iter_dates(request_obj.start_date, request_obj.end_date):
                attendance = self._get_or_create_attendance(request_obj.user_id, day, now)
                attendance.is_on_leave = True
                attendance.leave_type = request_obj.leave_type
                attendance.updated_at = now
                count += 1
            return count

        if isinstance(request_obj, OvertimeRequest):
            attendance = self._get_or_create_attendance(request_obj.user_id, request_obj.work_date, now)
            attendance.overtime_hours = request_obj.overtime_hours
            attendance.updated_at = now
            return 1

        attendance = self.db.query(Attendance).filter(
            Attendance.user_id == request_obj.user_id,
            Attendance.work_date == request_obj.request_date
        ).first()
        if attendance is not None and attendance.is_late:
            attendance.is_late_excused = True
            attendance.updated_at = now
            return 1
        return 0
