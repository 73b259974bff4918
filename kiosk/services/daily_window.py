"""
일일 대여 횟수 집계 구간 계산

하루 = 설정된 시간대의 자정부터 다음 자정 직전까지.
시간대는 system_settings.daily_window_timezone 값 ('local' 또는 IANA 이름).
"""

import logging
from datetime import datetime, time as dtime, timedelta, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

LOCAL_TIMEZONE = 'local'


def resolve_timezone(tz_name: Optional[str]) -> Optional[tzinfo]:
    """시간대 이름을 tzinfo로 변환 ('local'이면 None = 키오스크 로컬 시간)"""
    if not tz_name or tz_name == LOCAL_TIMEZONE:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"알 수 없는 시간대, 로컬 시간 사용: {tz_name}, {e}")
        return None


def _midnight_bounds(day_start: datetime, tz: Optional[tzinfo]) -> Tuple[int, int]:
    next_day = datetime.combine(day_start.date() + timedelta(days=1), dtime.min, tzinfo=tz)
    return int(day_start.timestamp()), int(next_day.timestamp())


def day_bounds(now: int, tz_name: Optional[str] = LOCAL_TIMEZONE) -> Tuple[int, int]:
    """now가 속한 하루의 [시작, 끝) epoch 초

    Args:
        now: 기준 시각 (epoch 초)
        tz_name: 시간대 이름

    Returns:
        (자정, 다음 날 자정)
    """
    tz = resolve_timezone(tz_name)
    current = datetime.fromtimestamp(now, tz)
    start = current.replace(hour=0, minute=0, second=0, microsecond=0)
    return _midnight_bounds(start, tz)


def date_bounds(date_str: str, tz_name: Optional[str] = LOCAL_TIMEZONE) -> Tuple[int, int]:
    """'YYYY-MM-DD' 날짜의 [시작, 끝) epoch 초

    Raises:
        ValueError: 날짜 형식이 잘못된 경우
    """
    tz = resolve_timezone(tz_name)
    day = datetime.strptime(date_str, '%Y-%m-%d').date()
    start = datetime.combine(day, dtime.min, tzinfo=tz)
    return _midnight_bounds(start, tz)
