from __future__ import annotations

import os


def get_brokers() -> str:
    value = os.getenv("KAFKA_BOOTSTRAP_SERVERS")
    if not value:
        raise RuntimeError("KAFKA_BOOTSTRAP_SERVERS environment variable is required")
    return value


def get_group_id() -> str:
    value = os.getenv("KAFKA_GROUP_ID")
    if not value:
        raise RuntimeError("KAFKA_GROUP_ID environment variable is required")
    return value


def get_poll_timeout() -> float:
    """consumer.poll 대기 시간(초). KAFKA_POLL_TIMEOUT_SECONDS 가 없으면 0.5 초."""

    raw_value = os.getenv("KAFKA_POLL_TIMEOUT_SECONDS", "").strip()
    if not raw_value:
        return 0.5

    try:
        value = float(raw_value)
    except ValueError as exc:  # noqa: TRY003
        raise RuntimeError(
            f"KAFKA_POLL_TIMEOUT_SECONDS must be a number, got: {raw_value!r}"
        ) from exc

    if value <= 0:
        raise RuntimeError("KAFKA_POLL_TIMEOUT_SECONDS must be positive")
    return value
