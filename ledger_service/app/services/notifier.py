"""알림 협력자.

장부 변경이 끝난 뒤(락 해제 후) 호출되며, 실패해도 장부 상태를 되돌리지 않는다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Protocol

from common.eventbus.helpers import new_json_event, utc_timestamp
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_NOTIFICATION
from common.events.notification import (
    NotificationEventType,
    NotificationRequestedEvent,
)


logger = logging.getLogger(__name__)


class NotificationType:
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    REFUND_REQUEST = "refund_request"
    REFUND_SUCCESS = "refund_success"
    REFUND_FAILED = "refund_failed"
    CONTRACT_CREATED = "contract_created"
    CONTRACT_VIOLATION = "contract_violation"
    CONTRACT_COMPLETED = "contract_completed"
    CONTRACT_FAILED = "contract_failed"
    CONTRACT_CANCELLED = "contract_cancelled"


@dataclass(frozen=True, slots=True)
class NotificationTemplate:
    title: str
    template: str
    priority: str


TEMPLATES: dict[str, NotificationTemplate] = {
    NotificationType.PAYMENT_SUCCESS: NotificationTemplate(
        "支付成功", "您的保证金 ¥{amount} 支付成功，契约已生效。", "high"
    ),
    NotificationType.PAYMENT_FAILED: NotificationTemplate(
        "支付失败", "保证金支付失败，请重新尝试。金额：¥{amount}", "high"
    ),
    NotificationType.REFUND_REQUEST: NotificationTemplate(
        "退款申请已提交",
        "您的保证金退款申请已提交，退款金额：¥{amount}，预计1-3个工作日到账。",
        "medium",
    ),
    NotificationType.REFUND_SUCCESS: NotificationTemplate(
        "退款成功", "您的保证金 ¥{amount} 已成功退款，请查收。", "high"
    ),
    NotificationType.REFUND_FAILED: NotificationTemplate(
        "退款失败", "保证金退款失败，请联系客服。退款金额：¥{amount}", "high"
    ),
    NotificationType.CONTRACT_CREATED: NotificationTemplate(
        "契约创建成功",
        "您的健身契约已创建成功，保证金：¥{amount}，请按时完成打卡。",
        "medium",
    ),
    NotificationType.CONTRACT_VIOLATION: NotificationTemplate(
        "契约违约提醒",
        "检测到您未完成打卡，已从保证金中扣除 ¥{penalty}，剩余 ¥{remaining}。",
        "high",
    ),
    NotificationType.CONTRACT_COMPLETED: NotificationTemplate(
        "契约完成", "恭喜完成契约！可退还保证金 ¥{refund_amount} 已申请退款。", "high"
    ),
    NotificationType.CONTRACT_FAILED: NotificationTemplate(
        "契约失败", "您的契约已结束，剩余保证金 ¥{remaining} 可在个人中心申请退款。", "high"
    ),
    NotificationType.CONTRACT_CANCELLED: NotificationTemplate(
        "契约已取消", "您的契约已取消，剩余保证金 ¥{remaining} 可在个人中心申请退款。", "medium"
    ),
}


class NotifierInterface(Protocol):
    def notify(
        self, user_id: str, notification_type: str, data: Mapping[str, Any]
    ) -> None:  # pragma: no cover - Protocol
        ...


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_notification(
    notification_type: str, data: Mapping[str, Any]
) -> tuple[str, str, str]:
    """(title, message, priority) 를 만든다. 템플릿에 없는 타입은 시스템 알림으로 처리한다."""

    template = TEMPLATES.get(notification_type)
    if template is None:
        return "系统通知", str(data.get("message", "")), "medium"
    values = _KeepMissing({key: str(value) for key, value in data.items()})
    return template.title, template.template.format_map(values), template.priority


class EventBusNotifier(NotifierInterface):
    """알림 요청을 TOPIC_NOTIFICATION 으로 발행하는 구현체."""

    def __init__(self, bus: KafkaEventBus, source: str = "ledger-service") -> None:
        self._bus = bus
        self._source = source

    def notify(
        self, user_id: str, notification_type: str, data: Mapping[str, Any]
    ) -> None:
        title, message, priority = render_notification(notification_type, data)
        event_id = uuid.uuid4().hex
        event = NotificationRequestedEvent(
            id=event_id,
            type=NotificationEventType.NOTIFICATION_REQUESTED,
            timestamp=utc_timestamp(),
            source=self._source,
            version="1.0",
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority,
            data={key: str(value) for key, value in data.items()},
        )
        wrapped = new_json_event(asdict(event), event_id=event_id)
        try:
            self._bus.publish(TOPIC_NOTIFICATION.base, wrapped)
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to publish notification type=%s user_id=%s",
                notification_type,
                user_id,
            )


def safe_notify(
    notifier: NotifierInterface,
    user_id: str,
    notification_type: str,
    data: Mapping[str, Any],
) -> None:
    """알림 실패를 로그로만 남긴다. 서비스 레이어는 항상 이 함수를 통해 알린다."""

    try:
        notifier.notify(user_id, notification_type, data)
    except Exception:  # noqa: BLE001
        logger.exception(
            "notification failed type=%s user_id=%s", notification_type, user_id
        )
