from sqlalchemy import Column, Integer, String, Date, DateTime, Float, Text, ForeignKey
from sqlalchemy.orm import relationship
from tmd.database import Base
from tmd.utils.datetime_utils import local_now


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    kind = "leave"

    leave_request_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    leave_type = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Float, default=1)
    reason = Column(String(1000), nullable=False)
    proof_document = Column(String(500))
    status = Column(String(20), default="Pending", index=True)  # 'Pending', 'Approved', 'Rejected', 'Cancelled'
    reviewed_by = Column(Integer, ForeignKey("users.user_id"))
    reviewed_at = Column(DateTime)
    review_note = Column(Text)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    user = relationship("User", foreign_keys=[user_id], backref="leave_requests")
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    @property
    def request_id(self):
        return self.leave_request_id


class OvertimeRequest(Base):
    __tablename__ = "overtime_requests"
    kind = "overtime"

    overtime_request_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    work_date = Column(Date, nullable=False)
    actual_check_out_time = Column(String(5), nullable=False)  # HH:MM
    overtime_hours = Column(Float, nullable=False)
    reason = Column(String(500), nullable=False)
    task_description = Column(String(1000))
    status = Column(String(20), default="Pending", index=True)
    reviewed_by = Column(Integer, ForeignKey("users.user_id"))
    reviewed_at = Column(DateTime)
    review_note = Column(Text)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    user = relationship("User", foreign_keys=[user_id], backref="overtime_requests")
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    @property
    def request_id(self):
        return self.overtime_request_id


class LateRequest(Base):
    __tablename__ = "late_requests"
    kind = "late"

    late_request_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    request_date = Column(Date, nullable=False)
    expected_arrival_time = Column(String(5), nullable=False)  # HH:MM
    reason = Column(String(500), nullable=False)
    proof_document = Column(String(500))
    status = Column(String(20), default="Pending", index=True)
    reviewed_by = Column(Integer, ForeignKey("users.user_id"))
    reviewed_at = Column(DateTime)
    review_note = Column(Text)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    user = relationship("User", foreign_keys=[user_id], backref="late_requests")
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    @property
    def request_id(self):
        return self.late_request_id
