import os
from datetime import date
from typing import Optional, Tuple

from tmd.utils.datetime_utils import parse_time


class ValidationError(ValueError):
    """驗證錯誤異常"""

    def __init__(self, message: str, field: str = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


class NotFoundError(ValidationError):
    """資源不存在"""
    pass


class PermissionDeniedError(Exception):
    """權限不足"""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        self.message = message
        super().__init__(self.message)


MIN_PASSWORD_LENGTH = 6


def validate_password(password: str, field: str = "password") -> str:
    """驗證密碼長度，不符合時拋出 ValidationError"""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field)
    return password


def validate_time_string(value: str, field: str) -> str:
    """驗證 HH:MM 時間格式並回傳正規化字串"""
    parsed = parse_time(value)
    if parsed is None:
        raise ValidationError(f"{field} must be in HH:MM format", field)
    return parsed.strftime("%H:%M")


def validate_date_range(start_date: date, end_date: date) -> bool:
    """驗證日期範圍"""
    return start_date <= end_date


def get_file_extension(filename: str) -> str:
    """取得小寫副檔名（含點）"""
    return os.path.splitext(filename or "")[1].lower()


def validate_file_extension(filename: str, allowed_extensions: list) -> bool:
    """驗證檔案副檔名"""
    extension = get_file_extension(filename)
    if not extension:
        return False
    return extension.lstrip('.') in [ext.strip().lower() for ext in allowed_extensions]


def validate_file_size(file_size: int, max_size: int) -> bool:
    """驗證檔案大小"""
    return 0 < file_size <= max_size


def validate_upload(filename: str, content: Optional[bytes], allowed_extensions: list, max_size: int,
                    field: str = "file") -> None:
    """驗證上傳檔案（必填、大小、副檔名）"""
    if not filename or not content:
        raise ValidationError("A file is required", field)
    if not validate_file_size(len(content), max_size):
        raise ValidationError(f"File must not exceed {max_size // (1024 * 1024)}MB", field)
    if not validate_file_extension(filename, allowed_extensions):
        allowed = ", ".join(f".{ext.strip()}" for ext in allowed_extensions)
        raise ValidationError(f"Only {allowed} files are allowed", field)


def validate_pagination_params(page: int, page_size: int, max_page_size: int = 100) -> Tuple[int, int]:
    """正規化分頁參數"""
    page = max(page or 1, 1)
    page_size = min(max(page_size or 20, 1), max_page_size)
    return page, page_size


def parse_browser(user_agent: Optional[str]) -> str:
    """從 User-Agent 判斷瀏覽器"""
    if not user_agent:
        return "Unknown"
    if "Edg" in user_agent:
        return "Edge"
    if "Chrome" in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent:
        return "Safari"
    return "Unknown"


def parse_device(user_agent: Optional[str]) -> str:
    """從 User-Agent 判斷裝置類型"""
    if not user_agent:
        return "Unknown"
    if "Mobile" in user_agent:
        return "Mobile"
    if "Tablet" in user_agent or "iPad" in user_agent:
        return "Tablet"
    return "Desktop"
