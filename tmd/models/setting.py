from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from tmd.database import Base
from tmd.utils.datetime_utils import local_now


class SystemSetting(Base):
    __tablename__ = "system_settings"

    setting_id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String(100), unique=True, nullable=False, index=True)
    setting_value = Column(Text)
    description = Column(String(500))
    data_type = Column(String(20), default="String")  # 'String', 'Number', 'Decimal', 'Boolean', 'Code'
    category = Column(String(50), default="General")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)
    updated_by = Column(Integer, ForeignKey("users.user_id"))


class LayoutTemplate(Base):
    __tablename__ = "layout_templates"

    layout_type = Column(String(20), primary_key=True)  # 'admin', 'staff'
    content = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)
    updated_by = Column(Integer, ForeignKey("users.user_id"))


class LayoutBackup(Base):
    __tablename__ = "layout_backups"

    backup_id = Column(Integer, primary_key=True, index=True)
    layout_type = Column(String(20), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=local_now, index=True)
    created_by = Column(Integer, ForeignKey("users.user_id"))
