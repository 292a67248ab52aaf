from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from tmd.database import Base
from tmd.utils.datetime_utils import local_now


class AuditLog(Base):
    __tablename__ = "audit_logs"

    audit_log_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"))
    action = Column(String(50), nullable=False, index=True)
    entity_name = Column(String(100))
    entity_id = Column(Integer)
    old_values = Column(Text)  # JSON
    new_values = Column(Text)  # JSON
    description = Column(String(500))
    ip_address = Column(String(50))
    user_agent = Column(String(500))
    location = Column(String(200))
    timestamp = Column(DateTime, default=local_now, index=True)

    user = relationship("User", backref="audit_logs")


class LoginHistory(Base):
    __tablename__ = "login_histories"

    login_history_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"))
    username = Column(String(50))
    login_time = Column(DateTime, default=local_now, index=True)
    logout_time = Column(DateTime)
    ip_address = Column(String(50))
    user_agent = Column(String(500))
    browser = Column(String(50))
    device = Column(String(50))
    is_success = Column(Boolean, default=False)
    fail_reason = Column(String(200))
    location = Column(String(200))
    created_at = Column(DateTime, default=local_now)

    user = relationship("User", backref="login_histories")


class PasswordResetHistory(Base):
    __tablename__ = "password_reset_histories"

    reset_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    reset_by_user_id = Column(Integer, ForeignKey("users.user_id"))
    old_password_hash = Column(String(255))
    reset_time = Column(DateTime, default=local_now)
    reset_reason = Column(String(500))
    ip_address = Column(String(50))

    user = relationship("User", foreign_keys=[user_id])
    reset_by = relationship("User", foreign_keys=[reset_by_user_id])
