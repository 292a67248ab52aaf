from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship, backref
from tmd.database import Base
from tmd.utils.datetime_utils import local_now


class Task(Base):
    __tablename__ = "tasks"

    task_id = Column(Integer, primary_key=True, index=True)
    task_name = Column(String(200), nullable=False)
    description = Column(String(500))
    platform = Column(String(200))
    target_per_week = Column(Integer, default=0)
    deadline = Column(DateTime)
    priority = Column(String(20), default="Medium")  # 'High', 'Medium', 'Low'
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)


class UserTask(Base):
    __tablename__ = "user_tasks"

    user_task_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.task_id"), nullable=False)
    completed_this_week = Column(Integer, default=0)
    report_link = Column(String(500))
    week_start_date = Column(Date)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    user = relationship("User", backref="user_tasks")
    task = relationship("Task", backref=backref("user_tasks", cascade="all, delete-orphan"))

    @property
    def is_completed(self) -> bool:
        target = self.task.target_per_week if self.task else 0
        return (self.completed_this_week or 0) >= (target or 0)

    @property
    def progress_percent(self) -> float:
        target = self.task.target_per_week if self.task else 0
        if not target:
            return 100.0 if self.is_completed else 0.0
        return round(min((self.completed_this_week or 0) * 100.0 / target, 100.0), 1)
