from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from tmd.database import Base
from tmd.utils.datetime_utils import local_now


class Attendance(Base):
    __tablename__ = "attendances"

    attendance_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    work_date = Column(Date, nullable=False, index=True)

    check_in_time = Column(DateTime)
    check_in_latitude = Column(Float)
    check_in_longitude = Column(Float)
    check_in_address = Column(String(500))
    check_in_photos = Column(String(500))
    check_in_notes = Column(String(500))
    check_in_ip = Column(String(50))

    check_out_time = Column(DateTime)
    check_out_latitude = Column(Float)
    check_out_longitude = Column(Float)
    check_out_address = Column(String(500))
    check_out_photos = Column(String(500))
    check_out_notes = Column(String(500))
    check_out_ip = Column(String(50))

    is_late = Column(Boolean, default=False)
    is_late_excused = Column(Boolean, default=False)
    is_within_geofence = Column(Boolean, default=True)
    total_hours = Column(Float)
    overtime_hours = Column(Float, default=0)
    is_on_leave = Column(Boolean, default=False)
    leave_type = Column(String(50))

    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    user = relationship("User", backref="attendances")

    __table_args__ = (
        UniqueConstraint('user_id', 'work_date', name='uix_attendance_user_date'),
    )
