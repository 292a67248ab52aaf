"""
Task service: admin task management, assignment and staff progress tracking.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, joinedload

from tmd.models.task import Task, UserTask
from tmd.models.user import User
from tmd.schemas.task import TaskCreate, TaskUpdate, TaskProgressUpdate, TaskPriority
from tmd.services.audit_service import AuditService
from tmd.utils.datetime_utils import local_now, get_today
from tmd.utils.validators import ValidationError, NotFoundError

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {TaskPriority.HIGH.value: 0, TaskPriority.MEDIUM.value: 1, TaskPriority.LOW.value: 2}


def task_status(user_task: UserTask) -> str:
    return "Completed" if user_task.is_completed else "InProgress"


def is_overdue(task: Task, now: datetime) -> bool:
    return task.deadline is not None and task.deadline < now


def is_task_completed(task: Task) -> bool:
    """任務有指派且所有指派都達成每週目標才算完成"""
    assignments = task.user_tasks
    return bool(assignments) and all(ut.is_completed for ut in assignments)


class TaskService:
    """任務管理業務邏輯"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def get_task(self, task_id: int, active_only: bool = False) -> Task:
        query = self.db.query(Task).options(
            joinedload(Task.user_tasks).joinedload(UserTask.user)
        ).filter(Task.task_id == task_id)
        if active_only:
            query = query.filter(Task.is_active == True)
        task = query.first()
        if not task:
            raise NotFoundError("Task not found")
        return task

    def serialize_task(self, task: Task, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or local_now()
        assignments = task.user_tasks
        target = task.target_per_week or 0
        total_completed = sum(ut.completed_this_week or 0 for ut in assignments)
        total_target = target * len(assignments)
        return {
            "task_id": task.task_id,
            "task_name": task.task_name,
            "description": task.description,
            "platform": task.platform,
            "target_per_week": target,
            "deadline": task.deadline,
            "priority": task.priority,
            "is_active": task.is_active,
            "created_at": task.created_at,
            "is_overdue": is_overdue(task, now),
            "is_completed": is_task_completed(task),
            "assigned_count": len(assignments),
            "completed_count": sum(1 for ut in assignments if ut.is_completed),
            "progress_percent": round(total_completed * 100.0 / total_target, 1) if total_target else 0.0,
            "assignees": [
                {
                    "user_task_id": ut.user_task_id,
                    "user_id": ut.user_id,
                    "full_name": ut.user.full_name if ut.user else None,
                    "completed_this_week": ut.completed_this_week,
                    "report_link": ut.report_link,
                    "status": task_status(ut),
                    "progress_percent": ut.progress_percent,
                }
                for ut in assignments
            ],
        }

    def list_tasks(self, include_inactive: bool = True) -> List[Dict[str, Any]]:
        query = self.db.query(Task).options(joinedload(Task.user_tasks).joinedload(UserTask.user))
        if not include_inactive:
            query = query.filter(Task.is_active == True)
        now = local_now()
        return [self.serialize_task(t, now) for t in query.order_by(Task.created_at.desc()).all()]

    def _validate(self, data: TaskCreate, now: datetime) -> str:
        name = (data.task_name or "").strip()
        if not name:
            raise ValidationError("Task name is required", "task_name")
        if data.target_per_week is None or data.target_per_week < 0:
            raise ValidationError("Target per week must be zero or greater", "target_per_week")
        if data.deadline is not None and data.deadline.date() < now.date():
            raise ValidationError("Deadline cannot be in the past", "deadline")

        user_ids = set(data.assigned_user_ids or [])
        if user_ids:
            found = {u.user_id for u in self.db.query(User).filter(
                User.user_id.in_(user_ids), User.is_active == True
            ).all()}
            missing = user_ids - found
            if missing:
                raise ValidationError(
                    f"Unknown or inactive users: {', '.join(str(i) for i in sorted(missing))}",
                    "assigned_user_ids"
                )
        return name

    def _assign(self, task: Task, user_ids: List[int], now: datetime) -> None:
        week_start = get_today()
        for user_id in dict.fromkeys(user_ids or []):
            self.db.add(UserTask(
                user_id=user_id,
                task_id=task.task_id,
                completed_this_week=0,
                week_start_date=week_start,
                created_at=now,
                updated_at=now
            ))

    def create_task(self, data: TaskCreate, admin_id: int, now: Optional[datetime] = None) -> Task:
        """
        建立任務並指派給用戶。

        Raises:
            ValidationError: 名稱為空、目標為負數、截止日已過、指派的用戶不存在
        """
        now = now or local_now()
        try:
            name = self._validate(data, now)
        except ValidationError as e:
            self.audit.log_failed_attempt(admin_id, "CREATE", "Task", e.message, {"task_name": data.task_name})
            raise

        task = Task(
            task_name=name,
            description=data.description,
            platform=data.platform,
            target_per_week=data.target_per_week,
            deadline=data.deadline,
            priority=(data.priority or TaskPriority.MEDIUM).value,
            is_active=True,
            created_at=now,
            updated_at=now
        )
        self.db.add(task)
        self.db.flush()
        self._assign(task, data.assigned_user_ids, now)
        self.db.commit()
        self.db.refresh(task)

        self.audit.log(
            admin_id, "CREATE", "Task", task.task_id, None,
            {"task_name": task.task_name, "priority": task.priority, "target_per_week": task.target_per_week,
             "deadline": task.deadline, "assigned_user_ids": list(dict.fromkeys(data.assigned_user_ids))},
            f"Created task {task.task_name}"
        )
        return task

    def update_task(self, task_id: int, data: TaskUpdate, admin_id: int, now: Optional[datetime] = None) -> Task:
        """更新任務並以新的指派清單取代原有指派"""
        now = now or local_now()
        task = self.get_task(task_id)
        try:
            name = self._validate(data, now)
        except ValidationError as e:
            self.audit.log_failed_attempt(admin_id, "UPDATE", "Task", e.message, {"task_id": task_id})
            raise

        old_values = {
            "task_name": task.task_name, "priority": task.priority, "target_per_week": task.target_per_week,
            "deadline": task.deadline, "assigned_user_ids": [ut.user_id for ut in task.user_tasks],
        }
        task.task_name = name
        task.description = data.description
        task.platform = data.platform
        task.target_per_week = data.target_per_week
        task.deadline = data.deadline
        task.priority = (data.priority or TaskPriority.MEDIUM).value
        task.updated_at = now

        task.user_tasks.clear()
        self.db.flush()
        self._assign(task, data.assigned_user_ids, now)
        self.db.commit()
        self.db.expire(task)
        task = self.get_task(task_id)

        self.audit.log(
            admin_id, "UPDATE", "Task", task_id, old_values,
            {"task_name": task.task_name, "priority": task.priority, "target_per_week": task.target_per_week,
             "deadline": task.deadline, "assigned_user_ids": [ut.user_id for ut in task.user_tasks]},
            f"Updated task {task.task_name}"
        )
        return task

    def delete_task(self, task_id: int, admin_id: int) -> None:
        """軟刪除任務"""
        task = self.get_task(task_id)
        task.is_active = False
        task.updated_at = local_now()
        self.db.commit()
        self.audit.log(admin_id, "DELETE", "Task", task_id, {"is_active": True}, {"is_active": False},
                       f"Deleted task {task.task_name}")

    def toggle_task_status(self, task_id: int, admin_id: int) -> Task:
        task = self.get_task(task_id)
        old_status = task.is_active
        task.is_active = not old_status
        task.updated_at = local_now()
        self.db.commit()
        self.db.refresh(task)
        self.audit.log(admin_id, "UPDATE", "Task", task_id, {"is_active": old_status},
                       {"is_active": task.is_active},
                       f"{'Activated' if task.is_active else 'Deactivated'} task {task.task_name}")
        return task

    # ---- 用戶任務 ----

    def _user_tasks(self, user_id: int) -> List[UserTask]:
        return self.db.query(UserTask).join(Task).options(joinedload(UserTask.task)).filter(
            UserTask.user_id == user_id,
            Task.is_active == True
        ).all()

    def serialize_user_task(self, ut: UserTask, now: datetime) -> Dict[str, Any]:
        task = ut.task
        return {
            "user_task_id": ut.user_task_id,
            "task_id": task.task_id,
            "task_name": task.task_name,
            "description": task.description,
            "platform": task.platform,
            "priority": task.priority,
            "deadline": task.deadline,
            "target_per_week": task.target_per_week,
            "completed_this_week": ut.completed_this_week,
            "report_link": ut.report_link,
            "week_start_date": ut.week_start_date,
            "status": task_status(ut),
            "is_overdue": is_overdue(task, now),
            "progress_percent": ut.progress_percent,
            "updated_at": ut.updated_at,
        }

    def get_user_tasks(self, user_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or local_now()
        return [self.serialize_user_task(ut, now) for ut in self._user_tasks(user_id)]

    def get_tasks_summary(self, user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """依優先度、截止日排序的個人任務摘要"""
        now = now or local_now()
        user_tasks = sorted(
            self._user_tasks(user_id),
            key=lambda ut: (
                PRIORITY_ORDER.get(ut.task.priority, len(PRIORITY_ORDER)),
                ut.task.deadline is None,
                ut.task.deadline or datetime.max,
            )
        )
        tasks = [self.serialize_user_task(ut, now) for ut in user_tasks]
        return {
            "tasks": tasks,
            "total": len(tasks),
            "completed": sum(1 for t in tasks if t["status"] == "Completed"),
            "in_progress": sum(1 for t in tasks if t["status"] == "InProgress"),
            "overdue": sum(1 for t in tasks if t["is_overdue"] and t["status"] != "Completed"),
        }

    def get_user_task_detail(self, user_id: int, user_task_id: int) -> Dict[str, Any]:
        ut = self.db.query(UserTask).options(joinedload(UserTask.task)).filter(
            UserTask.user_task_id == user_task_id,
            UserTask.user_id == user_id
        ).first()
        if not ut:
            raise NotFoundError("Task not found")
        return self.serialize_user_task(ut, local_now())

    def update_progress(self, user_id: int, user_task_id: int, data: TaskProgressUpdate) -> UserTask:
        """
        更新自己的任務進度。

        Raises:
            NotFoundError: 任務不存在或不屬於此用戶
        """
        ut = self.db.query(UserTask).options(joinedload(UserTask.task)).filter(
            UserTask.user_task_id == user_task_id
        ).first()
        if not ut or ut.user_id != user_id:
            self.audit.log_failed_attempt(user_id, "UPDATE_PROGRESS", "UserTask",
                                          "Task not found or not assigned to user",
                                          {"user_task_id": user_task_id})
            raise NotFoundError("Task not found")

        old_values = {"completed_this_week": ut.completed_this_week, "report_link": ut.report_link,
                      "progress_percent": ut.progress_percent}
        ut.completed_this_week = data.completed_this_week
        ut.report_link = data.report_link.strip() if data.report_link else None
        ut.updated_at = local_now()
        self.db.commit()
        self.db.refresh(ut)

        self.audit.log(
            user_id, "UPDATE_PROGRESS", "UserTask", ut.user_task_id, old_values,
            {"completed_this_week": ut.completed_this_week, "report_link": ut.report_link,
             "progress_percent": ut.progress_percent},
            f"Updated progress of task {ut.task.task_name}"
        )
        return ut
