from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Annotated
from zoneinfo import ZoneInfo

from pydantic.functional_serializers import PlainSerializer


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


UtcDateTime = Annotated[
    datetime,
    PlainSerializer(
        serialize_datetime_to_utc_iso8601,
        return_type=str,
        when_used="json",
    ),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """naive datetime 은 UTC 로 간주하고, aware datetime 은 UTC 로 변환한다."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: str) -> tzinfo:
    """IANA 타임존 이름을 tzinfo 로 변환한다. "UTC" 는 timezone.utc 를 쓴다."""

    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local_date(value: datetime, tz: tzinfo) -> date:
    """UTC(또는 tz-aware) 시각이 사용자 로컬 기준으로 어느 날짜에 속하는지 반환한다."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """로컬 날짜 하루의 [시작, 다음날 시작) 구간을 UTC datetime 으로 반환한다."""

    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)
