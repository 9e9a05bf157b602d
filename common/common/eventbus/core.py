from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# 재시도 토픽별 대기 시간(초). 결제 콜백은 빨리 반영되어야 하므로 짧게 잡는다.
RetryDelays: list[float] = [
    10.0,
    60.0,
    300.0,
]


class MaxRetryExceededError(Exception):
    """최대 재시도 횟수를 초과한 경우 사용되는 예외."""


@dataclass(slots=True)
class Event:
    """Kafka 메시지 한 건의 메타데이터와 페이로드.

    payload 는 JSON 으로 직렬화 가능한 dict 를 담고, 인코딩/디코딩은 KafkaEventBus 가 맡는다.
    """

    id: str
    payload: Any
    retry: int = 0
    max_retry: int = 0
    last_error: str | None = None

    def __post_init__(self) -> None:
        if self.max_retry <= 0 or self.max_retry > len(RetryDelays):
            self.max_retry = len(RetryDelays)

    @property
    def exhausted(self) -> bool:
        return self.retry >= self.max_retry


@dataclass(frozen=True, slots=True)
class Topic:
    base: str

    def dlq(self) -> str:
        return f"{self.base}.dlq"

    def get_retry_topics(self) -> list[str]:
        return [
            f"{self.base}.retry.{index}" for index in range(1, len(RetryDelays) + 1)
        ]

    def get_retry_topic(self, retry_count: int) -> str:
        if retry_count <= 0 or retry_count > len(RetryDelays):
            raise MaxRetryExceededError()
        return f"{self.base}.retry.{retry_count}"
