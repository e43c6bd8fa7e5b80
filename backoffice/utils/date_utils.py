"""
시간/영업일 유틸리티

- 모든 저장 시각은 UTC 기준 aware datetime으로 다룬다
- 일일 구매 제한은 설정된 TIMEZONE의 영업일(자정~자정) 기준
"""

from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple

import pytz


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    naive datetime을 UTC로 간주해 aware로 변환

    SQLite는 timezone 정보를 보존하지 않으므로 비교 전에 항상 거친다.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def business_day_bounds(
    tz_name: str, now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """
    현재 영업일의 [시작, 끝) 구간을 UTC로 반환

    Examples:
        >>> business_day_bounds("Asia/Bangkok", datetime(2024, 1, 1, 18, 0, tzinfo=timezone.utc))
        (2024-01-01 17:00 UTC, 2024-01-02 17:00 UTC)
    """
    tz = pytz.timezone(tz_name)
    local_now = (ensure_aware(now) or utc_now()).astimezone(tz)
    local_start = tz.localize(datetime.combine(local_now.date(), time.min))
    local_end = tz.localize(datetime.combine(local_now.date() + timedelta(days=1), time.min))
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def is_within_window(
    now: datetime, valid_from: Optional[datetime], valid_until: Optional[datetime]
) -> Optional[str]:
    """
    유효기간 검사 - 위반 시 사유 문자열, 통과 시 None
    """
    now = ensure_aware(now)
    start = ensure_aware(valid_from)
    end = ensure_aware(valid_until)
    if start is not None and now < start:
        return "not_yet_valid"
    if end is not None and now > end:
        return "expired"
    return None
