"""
Dashboard statistics for the admin and staff home pages.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, time
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session, joinedload

from tmd.models.attendance import Attendance
from tmd.models.audit import AuditLog, LoginHistory
from tmd.models.task import Task, UserTask
from tmd.models.user import User, Department
from tmd.services.request_service import RequestService
from tmd.services.task_service import is_task_completed, is_overdue
from tmd.utils.datetime_utils import local_now, get_month_range

logger = logging.getLogger(__name__)


class DashboardService:
    """儀表板統計"""

    def __init__(self, db: Session):
        self.db = db

    def admin_dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or local_now()
        month_start, month_end = get_month_range(now.year, now.month)

        total_users = self.db.query(User).count()
        active_users = self.db.query(User).filter(User.is_active == True).count()
        total_departments = self.db.query(Department).filter(Department.is_active == True).count()

        tasks = self.db.query(Task).options(
            joinedload(Task.user_tasks).joinedload(UserTask.user)
        ).filter(Task.is_active == True).all()
        completed_tasks = [t for t in tasks if is_task_completed(t)]
        overdue_tasks = [t for t in tasks if is_overdue(t, now) and not is_task_completed(t)]

        month_records = self.db.query(Attendance).options(joinedload(Attendance.user)).filter(
            Attendance.work_date >= month_start,
            Attendance.work_date <= month_end,
            Attendance.check_in_time.isnot(None)
        ).all()
        late_records = [r for r in month_records if r.is_late]
        on_time_records = [r for r in month_records if not r.is_late]

        late_by_user = Counter(r.user_id for r in late_records)
        on_time_by_user = Counter(r.user_id for r in on_time_records)
        names = {r.user_id: r.user.full_name for r in month_records if r.user}

        completed_by_user: Dict[int, int] = defaultdict(int)
        user_names: Dict[int, str] = {}
        for task in tasks:
            for ut in task.user_tasks:
                completed_by_user[ut.user_id] += ut.completed_this_week or 0
                if ut.user:
                    user_names[ut.user_id] = ut.user.full_name
        top_performers = sorted(completed_by_user.items(), key=lambda item: item[1], reverse=True)[:5]

        priority_counts = Counter(t.priority or "Medium" for t in tasks)
        upcoming = sorted(
            [t for t in tasks if t.deadline is not None and t.deadline >= now],
            key=lambda t: t.deadline
        )[:10]

        recent_audits = self.db.query(AuditLog).options(joinedload(AuditLog.user)).order_by(
            AuditLog.timestamp.desc(), AuditLog.audit_log_id.desc()
        ).limit(5).all()

        total_month = len(month_records)
        return {
            "total_users": total_users,
            "active_users": active_users,
            "total_departments": total_departments,
            "total_tasks": len(tasks),
            "completed_tasks": len(completed_tasks),
            "in_progress_tasks": len(tasks) - len(completed_tasks),
            "overdue_tasks": len(overdue_tasks),
            "task_completion_rate": round(len(completed_tasks) * 100.0 / len(tasks), 1) if tasks else 0.0,
            "attendance": {
                "total": total_month,
                "on_time": len(on_time_records),
                "late": len(late_records),
                "on_time_rate": round(len(on_time_records) * 100.0 / total_month, 1) if total_month else 0.0,
            },
            "top_performers": [
                {"user_id": uid, "full_name": user_names.get(uid), "completed": total}
                for uid, total in top_performers
            ],
            "top_late_comers": [
                {"user_id": uid, "full_name": names.get(uid), "late_count": count}
                for uid, count in late_by_user.most_common(5)
            ],
            "punctual_staff": [
                {"user_id": uid, "full_name": names.get(uid), "on_time_count": count}
                for uid, count in on_time_by_user.most_common(5)
            ],
            "tasks_by_priority": {p: priority_counts.get(p, 0) for p in ("High", "Medium", "Low")},
            "upcoming_deadlines": [
                {
                    "task_id": t.task_id,
                    "task_name": t.task_name,
                    "deadline": t.deadline,
                    "priority": t.priority,
                    "assigned_count": len(t.user_tasks),
                    "completed_count": sum(1 for ut in t.user_tasks if ut.is_completed),
                    "days_left": (t.deadline.date() - now.date()).days,
                }
                for t in upcoming
            ],
            "recent_activities": [
                {
                    "audit_log_id": a.audit_log_id,
                    "user": a.user.full_name if a.user else "System",
                    "action": a.action,
                    "entity_name": a.entity_name,
                    "description": a.description,
                    "timestamp": a.timestamp,
                }
                for a in recent_audits
            ],
            "pending_requests": RequestService(self.db).count_pending(),
        }

    def staff_dashboard(self, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or local_now()
        month_start, month_end = get_month_range(now.year, now.month)

        logins = self.db.query(LoginHistory).filter(
            LoginHistory.user_id == user.user_id,
            LoginHistory.is_success == True
        ).order_by(LoginHistory.login_time.desc(), LoginHistory.login_history_id.desc())
        recent_logins = logins.limit(5).all()
        logins_this_month = logins.filter(
            LoginHistory.login_time >= datetime.combine(month_start, time.min)
        ).count()
        previous_login = recent_logins[1].login_time if len(recent_logins) > 1 else None

        colleagues = 0
        if user.department_id:
            colleagues = self.db.query(User).filter(
                User.department_id == user.department_id,
                User.is_active == True
            ).count()

        records = self.db.query(Attendance).filter(
            Attendance.user_id == user.user_id,
            Attendance.work_date >= month_start,
            Attendance.work_date <= month_end,
            Attendance.check_in_time.isnot(None)
        ).all()

        return {
            "user_id": user.user_id,
            "full_name": user.full_name,
            "department_name": user.department_name,
            "recent_logins": [
                {"login_time": h.login_time, "ip_address": h.ip_address, "browser": h.browser,
                 "device": h.device}
                for h in recent_logins
            ],
            "logins_this_month": logins_this_month,
            "previous_login": previous_login,
            "department_members": colleagues,
            "attendance_days_this_month": len(records),
            "late_days_this_month": sum(1 for r in records if r.is_late and not r.is_late_excused),
            "total_hours_this_month": round(sum(r.total_hours or 0 for r in records), 2),
            "pending_requests": RequestService(self.db).count_pending(user.user_id)["total"],
        }
