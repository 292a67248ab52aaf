from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from tmd.database import Base
from tmd.utils.datetime_utils import local_now

ROLE_ADMIN = "Admin"
ROLE_STAFF = "Staff"


class Role(Base):
    __tablename__ = "roles"

    role_id = Column(Integer, primary_key=True, index=True)
    role_name = Column(String(50), unique=True, nullable=False)
    description = Column(String(200))
    created_at = Column(DateTime, default=local_now)


class Department(Base):
    __tablename__ = "departments"

    department_id = Column(Integer, primary_key=True, index=True)
    department_name = Column(String(100), nullable=False)
    description = Column(String(500))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    email = Column(String(100))
    phone_number = Column(String(20))
    avatar = Column(String(500))
    department_id = Column(Integer, ForeignKey("departments.department_id"))
    role_id = Column(Integer, ForeignKey("roles.role_id"), nullable=False)
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=local_now)
    created_by = Column(Integer, ForeignKey("users.user_id"))
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    role = relationship("Role", backref="users")
    department = relationship("Department", backref="users")

    @property
    def role_name(self):
        return self.role.role_name if self.role else None

    @property
    def department_name(self):
        return self.department.department_name if self.department else None

    @property
    def is_admin(self) -> bool:
        return self.role_name == ROLE_ADMIN
