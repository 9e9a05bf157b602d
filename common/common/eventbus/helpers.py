from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from .core import Event, RetryDelays


def new_json_event(
    payload: Mapping[str, Any],
    *,
    max_retry: int | None = None,
    event_id: str | None = None,
) -> Event:
    """dict 페이로드를 Event 로 감싼다.

    - event_id 가 비어 있으면 uuid4 hex 를 사용한다.
    - max_retry 가 범위를 벗어나면 기본값(len(RetryDelays))을 쓴다.
    """
    if max_retry is None or max_retry <= 0 or max_retry > len(RetryDelays):
        max_retry = len(RetryDelays)

    if not event_id:
        event_id = uuid.uuid4().hex

    return Event(id=event_id, payload=dict(payload), retry=0, max_retry=max_retry)


def utc_timestamp() -> str:
    """이벤트 timestamp 필드에 쓰는 UTC ISO8601 문자열."""
    return datetime.now(timezone.utc).isoformat()
