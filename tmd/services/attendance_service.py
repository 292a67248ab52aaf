"""
Attendance service for photo-based, geolocated check-in/check-out and attendance reporting.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, joinedload

from tmd.config import settings
from tmd.models.attendance import Attendance
from tmd.models.requests import LateRequest
from tmd.models.user import User
from tmd.schemas.attendance import AttendanceStats
from tmd.schemas.request import RequestStatus
from tmd.services.audit_service import AuditService
from tmd.services.geocoding_service import GeocodingService, format_coordinates
from tmd.services.settings_service import SettingsService
from tmd.utils.datetime_utils import local_now, get_today, duration_to_hours, parse_time
from tmd.utils.storage import save_file
from tmd.utils.validators import ValidationError, validate_upload, get_file_extension, validate_pagination_params

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000
DEFAULT_STANDARD_TIME = time(8, 0)


@dataclass
class AttendancePunch:
    """打卡請求資料"""
    latitude: float
    longitude: float
    photo_filename: Optional[str]
    photo_content: Optional[bytes]
    notes: Optional[str] = None
    address: Optional[str] = None
    ip_address: Optional[str] = None


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """兩點間的大圓距離（公尺）"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def coordinates_valid(latitude: Optional[float], longitude: Optional[float]) -> bool:
    if latitude is None or longitude is None:
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def validate_coordinates(latitude: float, longitude: float) -> None:
    if latitude is None or longitude is None:
        raise ValidationError("Location is required", "latitude")
    if not coordinates_valid(latitude, longitude):
        raise ValidationError("Invalid coordinates", "latitude")


class AttendanceService:
    """考勤業務邏輯"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None,
                 geocoder: Optional[GeocodingService] = None):
        self.db = db
        self.audit = audit or AuditService(db)
        self.geocoder = geocoder or GeocodingService()
        self.settings = SettingsService(db)

    def get_today_attendance(self, user_id: int, today: Optional[date] = None) -> Optional[Attendance]:
        today = today or get_today()
        return self.db.query(Attendance).filter(
            Attendance.user_id == user_id,
            Attendance.work_date == today
        ).first()

    def is_within_geofence(self, latitude: float, longitude: float) -> bool:
        if not self.settings.get_bool("GEOFENCE_ENABLED", True):
            return True
        office_lat = self.settings.get_float("OFFICE_LATITUDE", 10.7769)
        office_lon = self.settings.get_float("OFFICE_LONGITUDE", 106.7009)
        radius = self.settings.get_float("GEOFENCE_RADIUS", 100)
        return distance_meters(latitude, longitude, office_lat, office_lon) <= radius

    def _save_photo(self, user_id: int, punch: AttendancePunch, now: datetime, suffix: str) -> str:
        validate_upload(
            punch.photo_filename, punch.photo_content,
            settings.ALLOWED_PHOTO_EXTENSIONS, settings.MAX_PHOTO_SIZE, "photo"
        )
        filename = f"{user_id}_{now.strftime('%Y%m%d_%H%M%S')}_{suffix}{get_file_extension(punch.photo_filename)}"
        return save_file("attendance", filename, punch.photo_content)

    def _is_late_excused(self, user_id: int, work_date: date, check_in: datetime) -> bool:
        late_request = self.db.query(LateRequest).filter(
            LateRequest.user_id == user_id,
            LateRequest.request_date == work_date,
            LateRequest.status == RequestStatus.APPROVED.value
        ).first()
        if not late_request:
            return False
        expected = parse_time(late_request.expected_arrival_time)
        return expected is None or check_in.time() <= expected

    def check_in(self, user: User, punch: AttendancePunch, now: Optional[datetime] = None) -> Attendance:
        """
        上班打卡。

        Args:
            user: 打卡用戶
            punch: 座標、照片與備註
            now: 伺服器時間（測試用）

        Returns:
            考勤紀錄

        Raises:
            ValidationError: 今日已打卡、照片不符規定、座標無效
        """
        now = now or local_now()
        today = now.date()
        attendance = self.get_today_attendance(user.user_id, today)

        try:
            if attendance and attendance.check_in_time:
                raise ValidationError("You have already checked in today")
            if attendance and attendance.check_out_time:
                raise ValidationError("You have already checked out today")
            validate_coordinates(punch.latitude, punch.longitude)
            photo_url = self._save_photo(user.user_id, punch, now, "checkin")
        except ValidationError as e:
            self.audit.log_failed_attempt(user.user_id, "CHECK_IN", "Attendance", e.message,
                                          {"latitude": punch.latitude, "longitude": punch.longitude})
            raise

        standard_time = self.settings.get_time("CHECK_IN_STANDARD_TIME", DEFAULT_STANDARD_TIME)
        is_late = now.time() > standard_time
        address = punch.address or format_coordinates(punch.latitude, punch.longitude)

        if attendance is None:
            attendance = Attendance(user_id=user.user_id, work_date=today, created_at=now)
            self.db.add(attendance)

        attendance.check_in_time = now
        attendance.check_in_latitude = punch.latitude
        attendance.check_in_longitude = punch.longitude
        attendance.check_in_address = address
        attendance.check_in_photos = photo_url
        attendance.check_in_notes = punch.notes
        attendance.check_in_ip = punch.ip_address or self.audit.ip_address
        attendance.is_late = is_late
        attendance.is_late_excused = is_late and self._is_late_excused(user.user_id, today, now)
        attendance.is_within_geofence = self.is_within_geofence(punch.latitude, punch.longitude)
        attendance.updated_at = now
        self.db.commit()
        self.db.refresh(attendance)

        self.audit.log_detailed(
            user.user_id, "CHECK_IN", "Attendance", attendance.attendance_id,
            new_values={"check_in_time": now, "address": address},
            description=f"Checked in at {now.strftime('%H:%M:%S')}{' (late)' if is_late else ''}",
            extra={"is_late": is_late, "is_within_geofence": attendance.is_within_geofence,
                   "latitude": punch.latitude, "longitude": punch.longitude},
            location=address
        )
        logger.info(f"User {user.user_id} checked in at {now}")
        return attendance

    def check_out(self, user: User, punch: AttendancePunch, now: Optional[datetime] = None) -> Attendance:
        """
        下班打卡，計算當日工時。

        Raises:
            ValidationError: 尚未上班打卡、今日已下班打卡、照片不符規定
        """
        now = now or local_now()
        attendance = self.get_today_attendance(user.user_id, now.date())

        try:
            if not attendance or not attendance.check_in_time:
                raise ValidationError("You have not checked in today")
            if attendance.check_out_time:
                raise ValidationError("You have already checked out today")
            validate_coordinates(punch.latitude, punch.longitude)
            photo_url = self._save_photo(user.user_id, punch, now, "checkout")
        except ValidationError as e:
            self.audit.log_failed_attempt(user.user_id, "CHECK_OUT", "Attendance", e.message,
                                          {"latitude": punch.latitude, "longitude": punch.longitude})
            raise

        address = punch.address or format_coordinates(punch.latitude, punch.longitude)

        attendance.check_out_time = now
        attendance.check_out_latitude = punch.latitude
        attendance.check_out_longitude = punch.longitude
        attendance.check_out_address = address
        attendance.check_out_photos = photo_url
        attendance.check_out_notes = punch.notes
        attendance.check_out_ip = punch.ip_address or self.audit.ip_address
        attendance.total_hours = duration_to_hours(attendance.check_in_time, now)
        attendance.updated_at = now
        self.db.commit()
        self.db.refresh(attendance)

        self.audit.log_detailed(
            user.user_id, "CHECK_OUT", "Attendance", attendance.attendance_id,
            new_values={"check_out_time": now, "address": address},
            description=f"Checked out at {now.strftime('%H:%M:%S')}",
            extra={"total_hours": attendance.total_hours},
            location=address
        )
        logger.info(f"User {user.user_id} checked out at {now}, {attendance.total_hours}h")
        return attendance

    def get_history(self, user_id: int, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        """個人考勤紀錄（分頁，新到舊）"""
        page, page_size = validate_pagination_params(page, page_size)
        query = self.db.query(Attendance).filter(Attendance.user_id == user_id)
        total = query.count()
        records = query.order_by(Attendance.work_date.desc()).offset((page - 1) * page_size).limit(page_size).all()
        return {
            "records": records,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if total else 0,
        }

    def list_by_date(self, work_date: Optional[date] = None) -> List[Attendance]:
        work_date = work_date or get_today()
        return self.db.query(Attendance).options(joinedload(Attendance.user)).filter(
            Attendance.work_date == work_date
        ).order_by(Attendance.check_in_time).all()

    def search(
        self,
        user_id: Optional[int] = None,
        department_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        管理員考勤查詢，預設最近 30 天。

        Returns:
            {"records": [...], "stats": AttendanceStats, "from_date", "to_date"}
        """
        to_date = to_date or get_today()
        from_date = from_date or (to_date - timedelta(days=30))
        if from_date > to_date:
            raise ValidationError("From date must be before to date", "from_date")

        query = self.db.query(Attendance).join(User).options(joinedload(Attendance.user)).filter(
            Attendance.work_date >= from_date,
            Attendance.work_date <= to_date
        )
        if user_id:
            query = query.filter(Attendance.user_id == user_id)
        if department_id:
            query = query.filter(User.department_id == department_id)

        records = query.order_by(Attendance.work_date.desc(), Attendance.check_in_time.desc()).all()
        return {
            "records": records,
            "stats": self.compute_stats(records),
            "from_date": from_date,
            "to_date": to_date,
        }

    @staticmethod
    def compute_stats(records: List[Attendance]) -> AttendanceStats:
        checked_in = [r for r in records if r.check_in_time]
        return AttendanceStats(
            total_records=len(records),
            total_check_ins=len(checked_in),
            total_check_outs=sum(1 for r in records if r.check_out_time),
            completed_days=sum(1 for r in records if r.check_in_time and r.check_out_time),
            on_time_count=sum(1 for r in checked_in if not r.is_late),
            late_count=sum(1 for r in checked_in if r.is_late),
            total_hours=round(sum(r.total_hours or 0 for r in records), 2),
            within_geofence=sum(1 for r in checked_in if r.is_within_geofence),
            outside_geofence=sum(1 for r in checked_in if not r.is_within_geofence),
        )

    async def resolve_address(self, punch: AttendancePunch) -> None:
        """打卡前反查地址；座標無效時留給打卡流程驗證"""
        if punch.address or not coordinates_valid(punch.latitude, punch.longitude):
            return
        punch.address = await self.geocoder.reverse(punch.latitude, punch.longitude)

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        validate_coordinates(latitude, longitude)
        return await self.geocoder.reverse(latitude, longitude)
