"""
Department management service.
"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from tmd.models.user import Department, User
from tmd.schemas.department import DepartmentCreate, DepartmentUpdate
from tmd.services.audit_service import AuditService
from tmd.utils.datetime_utils import local_now
from tmd.utils.validators import ValidationError, NotFoundError

logger = logging.getLogger(__name__)


class DepartmentService:
    """部門管理業務邏輯"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def list_departments(self) -> List[Dict[str, Any]]:
        departments = self.db.query(Department).filter(
            Department.is_active == True
        ).order_by(Department.department_name).all()
        counts = dict(
            self.db.query(User.department_id, func.count(User.user_id))
            .group_by(User.department_id).all()
        )
        return [
            {
                "department_id": d.department_id,
                "department_name": d.department_name,
                "description": d.description,
                "is_active": d.is_active,
                "created_at": d.created_at,
                "user_count": counts.get(d.department_id, 0),
            }
            for d in departments
        ]

    def get_department(self, department_id: int) -> Department:
        department = self.db.query(Department).filter(
            Department.department_id == department_id,
            Department.is_active == True
        ).first()
        if not department:
            raise NotFoundError("Department not found")
        return department

    def get_department_details(self, department_id: int) -> Dict[str, Any]:
        department = self.get_department(department_id)
        users = self.db.query(User).filter(
            User.department_id == department_id
        ).order_by(User.full_name).all()
        active = sum(1 for u in users if u.is_active)
        return {
            "department_id": department.department_id,
            "department_name": department.department_name,
            "description": department.description,
            "created_at": department.created_at,
            "total_users": len(users),
            "active_users": active,
            "inactive_users": len(users) - active,
            "users": [
                {"user_id": u.user_id, "username": u.username, "full_name": u.full_name,
                 "email": u.email, "is_active": u.is_active}
                for u in users
            ],
        }

    def _validate_name(self, name: str, exclude_id: Optional[int] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Department name is required", "department_name")

        query = self.db.query(Department).filter(
            func.lower(Department.department_name) == name.lower(),
            Department.is_active == True
        )
        if exclude_id is not None:
            query = query.filter(Department.department_id != exclude_id)
        if query.first():
            raise ValidationError("Department name already exists", "department_name")
        return name

    def create_department(self, data: DepartmentCreate, admin_id: int) -> Department:
        try:
            name = self._validate_name(data.department_name)
        except ValidationError as e:
            self.audit.log_failed_attempt(admin_id, "CREATE", "Department", e.message,
                                          {"department_name": data.department_name})
            raise

        now = local_now()
        department = Department(
            department_name=name,
            description=data.description.strip() if data.description else None,
            is_active=True,
            created_at=now,
            updated_at=now
        )
        self.db.add(department)
        self.db.commit()
        self.db.refresh(department)

        self.audit.log(
            admin_id, "CREATE", "Department", department.department_id, None,
            {"department_name": name, "description": department.description},
            f"Created department {name}"
        )
        return department

    def update_department(self, department_id: int, data: DepartmentUpdate, admin_id: int) -> Department:
        department = self.get_department(department_id)
        try:
            name = self._validate_name(data.department_name, exclude_id=department_id)
        except ValidationError as e:
            self.audit.log_failed_attempt(admin_id, "UPDATE", "Department", e.message,
                                          {"department_id": department_id})
            raise

        old_values = {"department_name": department.department_name, "description": department.description}
        department.department_name = name
        department.description = data.description.strip() if data.description else None
        department.updated_at = local_now()
        self.db.commit()
        self.db.refresh(department)

        self.audit.log(
            admin_id, "UPDATE", "Department", department_id, old_values,
            {"department_name": name, "description": department.description},
            f"Updated department {name}"
        )
        return department

    def delete_department(self, department_id: int, admin_id: int) -> None:
        """軟刪除部門；仍有用戶時拒絕"""
        department = self.get_department(department_id)
        user_count = self.db.query(User).filter(User.department_id == department_id).count()
        if user_count > 0:
            reason = f"Department still has {user_count} user(s)"
            self.audit.log_failed_attempt(admin_id, "DELETE", "Department", reason,
                                          {"department_id": department_id})
            raise ValidationError(f"Cannot delete department: it still has {user_count} user(s)")

        department.is_active = False
        department.updated_at = local_now()
        self.db.commit()

        self.audit.log(
            admin_id, "DELETE", "Department", department_id,
            {"department_name": department.department_name, "is_active": True},
            {"is_active": False},
            f"Deleted department {department.department_name}"
        )

    def toggle_department_status(self, department_id: int, admin_id: int) -> Department:
        """
        切換部門啟用狀態。

        停用前部門內不可有啟用中的用戶；重新啟用時名稱不可與其他啟用中的部門重複。

        Raises:
            NotFoundError: 部門不存在
            ValidationError: 部門仍有啟用中的用戶，或名稱已被使用
        """
        department = self.db.query(Department).filter(Department.department_id == department_id).first()
        if not department:
            self.audit.log_failed_attempt(admin_id, "UPDATE", "Department", "Department not found",
                                          {"department_id": department_id})
            raise NotFoundError("Department not found")

        if department.is_active:
            active_users = self.db.query(User).filter(
                User.department_id == department_id,
                User.is_active == True
            ).count()
            if active_users > 0:
                self.audit.log_failed_attempt(admin_id, "UPDATE", "Department",
                                              "Department has active users",
                                              {"department_id": department_id, "active_users": active_users})
                raise ValidationError(
                    f"Cannot deactivate department: it has {active_users} active user(s)"
                )
        else:
            try:
                self._validate_name(department.department_name, exclude_id=department_id)
            except ValidationError as e:
                self.audit.log_failed_attempt(admin_id, "UPDATE", "Department", e.message,
                                              {"department_id": department_id})
                raise

        old_status = department.is_active
        department.is_active = not old_status
        department.updated_at = local_now()
        self.db.commit()
        self.db.refresh(department)

        self.audit.log(
            admin_id, "UPDATE", "Department", department_id,
            {"is_active": old_status}, {"is_active": department.is_active},
            f"{'Activated' if department.is_active else 'Deactivated'} department {department.department_name}"
        )
        logger.info(f"Department {department_id} active={department.is_active} by {admin_id}")
        return department
