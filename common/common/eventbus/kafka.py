from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import Callable

from confluent_kafka import Consumer, KafkaError, Message, Producer

from .core import Event, MaxRetryExceededError, RetryDelays, Topic

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 EventBus.

    - publish: Event 를 JSON 으로 인코딩해 발행한다.
    - subscribe: base 토픽과 재시도 토픽을 함께 구독하고, 핸들러 실패 시
      다음 재시도 토픽으로 넘기며, 재시도를 다 쓰면 DLQ 로 보낸다.
    """

    def __init__(self, brokers: str) -> None:
        self._producer = Producer({"bootstrap.servers": brokers})
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    # 발행 -----------------------------------------------------------------
    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False).encode("utf-8")

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)

    # 구독 -----------------------------------------------------------------
    def subscribe(
        self,
        group_id: str,
        topic: Topic,
        handler: Callable[[Event], None],
        *,
        poll_timeout: float = 0.5,
        stop_flag: list[bool] | None = None,
    ) -> None:
        consumer = Consumer(
            {
                "bootstrap.servers": self._brokers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
            }
        )
        consumer.subscribe([topic.base, *topic.get_retry_topics()])
        logger.info("Kafka consumer started. group_id=%s topic=%s", group_id, topic.base)

        try:
            while not (stop_flag and stop_flag[0]):
                msg = consumer.poll(poll_timeout)
                if msg is None:
                    continue
                if msg.error():
                    if msg.error().code() != KafkaError._PARTITION_EOF:
                        logger.error("consumer error: %s", msg.error())
                    continue

                if self._dispatch(msg, topic, handler):
                    try:
                        consumer.commit(message=msg, asynchronous=False)
                    except Exception as exc:  # noqa: BLE001
                        logger.error("offset commit error: %s", exc)
        finally:
            consumer.close()

    def _dispatch(
        self, msg: Message, topic: Topic, handler: Callable[[Event], None]
    ) -> bool:
        """메시지 한 건을 처리한다. 오프셋을 커밋해도 되면 True."""

        try:
            raw = json.loads(msg.value())
        except Exception as exc:  # noqa: BLE001
            logger.error("invalid event payload on topic %s: %s", msg.topic(), exc)
            return True

        evt = self._decode_event(raw)
        if evt.retry > 0:
            _wait_for_retry_delay(msg, evt.retry)

        try:
            handler(evt)
        except Exception as exc:  # noqa: BLE001
            evt.last_error = str(exc)
            return self._route_failure(evt, topic, exc)
        return True

    def _route_failure(self, evt: Event, topic: Topic, exc: Exception) -> bool:
        """실패한 이벤트를 다음 재시도 토픽 또는 DLQ 로 보낸다.

        재발행에 실패하면 False 를 반환해 오프셋을 커밋하지 않는다.
        """

        next_retry = evt.retry + 1
        try:
            if next_retry > evt.max_retry:
                raise MaxRetryExceededError()
            destination = topic.get_retry_topic(next_retry)
        except MaxRetryExceededError:
            destination = topic.dlq()
            logger.error(
                "event %s exceeded max retry, sending to DLQ %s: %s",
                evt.id,
                destination,
                exc,
            )
        else:
            evt.retry = next_retry
            logger.warning(
                "event %s failed, scheduling retry %d/%d to %s: %s",
                evt.id,
                evt.retry,
                evt.max_retry,
                destination,
                exc,
            )

        try:
            self.publish(destination, evt)
        except Exception as pub_exc:  # noqa: BLE001
            logger.error(
                "failed to publish event %s to %s: %s", evt.id, destination, pub_exc
            )
            return False
        return True

    @staticmethod
    def _decode_event(raw: dict) -> Event:
        return Event(
            id=str(raw.get("id", "")),
            payload=raw.get("payload"),
            retry=int(raw.get("retry", 0)),
            max_retry=int(raw.get("max_retry", 0)),
            last_error=raw.get("last_error"),
        )


def _wait_for_retry_delay(msg: Message, retry: int) -> None:
    """재시도 메시지는 발행 시각 + RetryDelays[retry-1] 까지 기다린 뒤 처리한다."""

    if retry <= 0 or retry > len(RetryDelays):
        return
    ts_type, ts_ms = msg.timestamp()
    if ts_ms is None or ts_ms <= 0:
        return
    due = ts_ms / 1000.0 + RetryDelays[retry - 1]
    remaining = due - time.time()
    if remaining > 0:
        time.sleep(remaining)


_bus_singleton: KafkaEventBus | None = None


def get_kafka_event_bus(brokers: str) -> KafkaEventBus:
    """프로세스 전역에서 공유하는 KafkaEventBus 를 반환한다."""

    global _bus_singleton
    if _bus_singleton is None:
        _bus_singleton = KafkaEventBus(brokers)
    return _bus_singleton
