import calendar
from datetime import datetime, date, time, timedelta
from typing import Iterator, Optional, Tuple, Union
import pytz

from tmd.config import settings


def get_timezone(timezone_str: str = None) -> pytz.BaseTzInfo:
    """獲取系統時區"""
    try:
        return pytz.timezone(timezone_str or settings.TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone("Asia/Ho_Chi_Minh")


def utc_now() -> datetime:
    """獲取當前 UTC 時間"""
    return datetime.now(pytz.UTC)


def local_now(timezone_str: str = None) -> datetime:
    """獲取系統時區當前時間（不含時區資訊，直接寫入資料庫）"""
    return utc_now().astimezone(get_timezone(timezone_str)).replace(tzinfo=None)


def get_today(timezone_str: str = None) -> date:
    """獲取系統時區今天日期"""
    return local_now(timezone_str).date()


def parse_time(time_str: str) -> Optional[time]:
    """解析 HH:MM 或 HH:MM:SS 時間字符串"""
    if not time_str:
        return None
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(time_str.strip(), fmt).time()
        except ValueError:
            continue
    return None


def get_week_start(dt: Union[datetime, date]) -> date:
    """獲取週開始日期 (週一)"""
    if isinstance(dt, datetime):
        dt = dt.date()
    return dt - timedelta(days=dt.weekday())


def get_month_range(year: int, month: int) -> Tuple[date, date]:
    """獲取月份的第一天與最後一天"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    """逐日迭代日期區間（含頭尾）"""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def duration_to_hours(start_dt: datetime, end_dt: datetime) -> float:
    """計算兩個時間之間的小時數（兩位小數）"""
    return round((end_dt - start_dt).total_seconds() / 3600, 2)
