"""
Authentication utilities for password hashing and session-based authorization.
"""

from passlib.context import CryptContext
from fastapi import HTTPException, status, Depends, Request
from sqlalchemy.orm import Session, joinedload
from tmd.database import get_db
from tmd.models.user import User, ROLE_ADMIN
from tmd.services.audit_service import AuditService

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_KEYS = ("user_id", "username", "full_name", "role_name", "avatar")


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # 非 bcrypt 格式的舊雜湊
        return False


def set_session_user(request: Request, user: User) -> dict:
    """
    Store the authenticated user in the signed session cookie.

    Args:
        request: Current request
        user: Authenticated user

    Returns:
        The session payload
    """
    payload = {key: getattr(user, key) for key in SESSION_KEYS}
    request.session.update(payload)
    return payload


def clear_session(request: Request) -> None:
    request.session.clear()


def get_session_user_id(request: Request):
    return request.session.get("user_id")


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from the session.

    Raises:
        HTTPException: If there is no valid session
    """
    user_id = get_session_user_id(request)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(User).options(
        joinedload(User.role), joinedload(User.department)
    ).filter(User.user_id == user_id).first()
    if user is None:
        clear_session(request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    return user


async def get_current_active_user(
    request: Request,
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get the current active user. A locked account loses its session.

    Raises:
        HTTPException: If user is inactive
    """
    if not current_user.is_active:
        clear_session(request)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is locked"
        )
    return current_user


async def get_current_admin_user(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
) -> User:
    """
    Get the current admin user. Refused attempts are written to the audit trail.

    Raises:
        HTTPException: If user is not an admin
    """
    if current_user.role_name != ROLE_ADMIN:
        AuditService(db, request).log_failed_attempt(
            current_user.user_id,
            "UNAUTHORIZED_ACCESS",
            "Admin",
            "Staff account tried to access an admin operation",
            {"path": request.url.path, "method": request.method}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return current_user
