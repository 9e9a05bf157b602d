from __future__ import annotations

from decimal import Decimal

from common.eventbus.core import Event
from ledger_service.app.services.notifier import (
    EventBusNotifier,
    NotificationType,
    render_notification,
    safe_notify,
)


class RecordingBus:
    def __init__(self, fail: bool = False) -> None:
        self.published: list[tuple[str, Event]] = []
        self.fail = fail

    def publish(self, topic: str, event: Event) -> None:
        if self.fail:
            raise RuntimeError("broker down")
        self.published.append((topic, event))


class ExplodingNotifier:
    def notify(self, user_id, notification_type, data) -> None:  # type: ignore[no-untyped-def]
        raise RuntimeError("boom")


def test_render_violation_template() -> None:
    title, message, priority = render_notification(
        NotificationType.CONTRACT_VIOLATION,
        {"penalty": Decimal("33"), "remaining": Decimal("67")},
    )

    assert title == "契约违约提醒"
    assert "¥33" in message
    assert "¥67" in message
    assert priority == "high"


def test_render_keeps_missing_placeholders() -> None:
    _, message, _ = render_notification(NotificationType.REFUND_SUCCESS, {})

    assert "{amount}" in message


def test_render_unknown_type_falls_back_to_system_notice() -> None:
    title, message, priority = render_notification("custom", {"message": "hello"})

    assert (title, message, priority) == ("系统通知", "hello", "medium")


def test_event_bus_notifier_publishes_to_notification_topic() -> None:
    bus = RecordingBus()
    notifier = EventBusNotifier(bus)  # type: ignore[arg-type]

    notifier.notify("user-1", NotificationType.PAYMENT_SUCCESS, {"amount": Decimal("150")})

    assert len(bus.published) == 1
    topic, event = bus.published[0]
    assert topic == "fitpact.notification"
    assert event.payload["id"] == event.id
    assert event.payload["user_id"] == "user-1"
    assert event.payload["notification_type"] == "payment_success"
    assert event.payload["data"] == {"amount": "150"}
    assert "¥150" in event.payload["message"]


def test_event_bus_notifier_swallows_publish_errors() -> None:
    notifier = EventBusNotifier(RecordingBus(fail=True))  # type: ignore[arg-type]

    notifier.notify("user-1", NotificationType.PAYMENT_FAILED, {"amount": "1"})


def test_safe_notify_never_raises() -> None:
    safe_notify(ExplodingNotifier(), "user-1", NotificationType.REFUND_FAILED, {})
