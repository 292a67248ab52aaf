from datetime import date, datetime, time

import pytest

from tmd.utils.datetime_utils import parse_time, get_week_start, get_month_range, iter_dates, duration_to_hours
from tmd.utils.validators import (
    ValidationError, validate_password, validate_time_string, validate_upload,
    validate_pagination_params, parse_browser, parse_device
)

CHROME = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
EDGE = CHROME + " Edg/120.0"
IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile Safari/604.1"


def test_parse_time_formats():
    assert parse_time("08:30") == time(8, 30)
    assert parse_time(" 17:05:30 ") == time(17, 5, 30)
    assert parse_time("8pm") is None
    assert parse_time("") is None


def test_date_helpers():
    assert get_week_start(datetime(2025, 3, 13, 10, 0)) == date(2025, 3, 10)
    assert get_month_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert list(iter_dates(date(2025, 3, 30), date(2025, 4, 1))) == [
        date(2025, 3, 30), date(2025, 3, 31), date(2025, 4, 1)
    ]
    assert duration_to_hours(datetime(2025, 3, 3, 8, 0), datetime(2025, 3, 3, 12, 20)) == 4.33


def test_password_and_time_validation():
    assert validate_password("secret") == "secret"
    with pytest.raises(ValidationError):
        validate_password("12345")
    assert validate_time_string("9:05", "expected_arrival_time") == "09:05"


def test_upload_validation():
    validate_upload("doc.PDF", b"data", ["pdf"], 1024)
    with pytest.raises(ValidationError):
        validate_upload("doc.exe", b"data", ["pdf"], 1024)
    with pytest.raises(ValidationError):
        validate_upload("doc.pdf", b"x" * 2048, ["pdf"], 1024)


def test_pagination_is_clamped():
    assert validate_pagination_params(0, 0) == (1, 20)
    assert validate_pagination_params(3, 500) == (3, 100)


@pytest.mark.parametrize("user_agent, browser, device", [
    (CHROME, "Chrome", "Desktop"),
    (EDGE, "Edge", "Desktop"),
    (IPHONE, "Safari", "Mobile"),
    (None, "Unknown", "Unknown"),
])
def test_user_agent_parsing(user_agent, browser, device):
    assert parse_browser(user_agent) == browser
    assert parse_device(user_agent) == device
