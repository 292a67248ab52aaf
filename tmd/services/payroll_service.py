"""
Payroll service that derives a monthly salary summary from attendance records.
"""

import logging
from typing import Any, Dict, List
from sqlalchemy.orm import Session

from tmd.models.attendance import Attendance
from tmd.models.user import User
from tmd.schemas.request import LeaveType
from tmd.services.settings_service import SettingsService
from tmd.utils.datetime_utils import get_month_range
from tmd.utils.validators import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class PayrollService:
    """薪資計算業務邏輯"""

    def __init__(self, db: Session):
        self.db = db
        self.settings = SettingsService(db)

    def get_rates(self) -> Dict[str, float]:
        """取得目前的薪資參數"""
        base_salary = self.settings.get_float("BASE_SALARY", 5000000)
        work_days = self.settings.get_float("WORK_DAYS_PER_MONTH", 26) or 26
        standard_hours = self.settings.get_float("STANDARD_HOURS_PER_DAY", 8) or 8
        daily_rate = base_salary / work_days
        return {
            "base_salary": base_salary,
            "work_days_per_month": work_days,
            "standard_hours_per_day": standard_hours,
            "daily_rate": daily_rate,
            "hourly_rate": daily_rate / standard_hours,
            "overtime_rate": self.settings.get_float("OVERTIME_RATE", 1.5),
            "late_deduction": self.settings.get_float("LATE_DEDUCTION", 50000),
        }

    def calculate_monthly_salary(self, user_id: int, year: int, month: int) -> Dict[str, Any]:
        """
        計算用戶當月薪資。

        Args:
            user_id: 用戶 ID
            year: 年
            month: 月

        Returns:
            薪資明細

        Raises:
            NotFoundError: 用戶不存在
            ValidationError: 月份無效
        """
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12", "month")

        user = self.db.query(User).filter(User.user_id == user_id).first()
        if not user:
            raise NotFoundError("User not found")

        start_date, end_date = get_month_range(year, month)
        records = self.db.query(Attendance).filter(
            Attendance.user_id == user_id,
            Attendance.work_date >= start_date,
            Attendance.work_date <= end_date
        ).all()

        rates = self.get_rates()

        worked_days = sum(1 for r in records if r.check_in_time and r.check_out_time)
        paid_leave_days = sum(
            1 for r in records
            if r.is_on_leave and not r.check_in_time and r.leave_type != LeaveType.UNPAID.value
        )
        unpaid_leave_days = sum(
            1 for r in records
            if r.is_on_leave and not r.check_in_time and r.leave_type == LeaveType.UNPAID.value
        )
        late_days = sum(1 for r in records if r.is_late and not r.is_late_excused)
        excused_late_days = sum(1 for r in records if r.is_late and r.is_late_excused)
        overtime_hours = sum(r.overtime_hours or 0 for r in records)
        total_hours = sum(r.total_hours or 0 for r in records)

        base_pay = (worked_days + paid_leave_days) * rates["daily_rate"]
        overtime_pay = overtime_hours * rates["hourly_rate"] * rates["overtime_rate"]
        late_deduction = late_days * rates["late_deduction"]
        total_salary = max(base_pay + overtime_pay - late_deduction, 0)

        return {
            "user_id": user.user_id,
            "full_name": user.full_name,
            "year": year,
            "month": month,
            "worked_days": worked_days,
            "paid_leave_days": paid_leave_days,
            "unpaid_leave_days": unpaid_leave_days,
            "late_days": late_days,
            "excused_late_days": excused_late_days,
            "total_hours": round(total_hours, 2),
            "overtime_hours": round(overtime_hours, 2),
            "daily_rate": round(rates["daily_rate"], 2),
            "hourly_rate": round(rates["hourly_rate"], 2),
            "base_pay": round(base_pay, 2),
            "overtime_pay": round(overtime_pay, 2),
            "late_deduction": round(late_deduction, 2),
            "total_salary": round(total_salary, 2),
        }

    def calculate_all(self, year: int, month: int) -> List[Dict[str, Any]]:
        """計算所有啟用用戶的當月薪資"""
        users = self.db.query(User).filter(User.is_active == True).order_by(User.full_name).all()
        return [self.calculate_monthly_salary(u.user_id, year, month) for u in users]
