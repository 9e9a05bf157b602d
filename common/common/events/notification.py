"""알림 요청 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Self


class NotificationEventType:
    NOTIFICATION_REQUESTED = "notification.requested"


@dataclass(slots=True)
class NotificationRequestedEvent:
    """알림 전송 요청.

    장부 서비스는 렌더링된 제목/본문까지만 만들고, 실제 푸시/웹소켓 전송은
    TOPIC_NOTIFICATION 을 구독하는 알림 서비스가 맡는다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    user_id: str
    notification_type: str
    title: str
    message: str
    priority: str
    data: dict[str, Any] = field(default_factory=dict)
    channels: list[str] = field(default_factory=lambda: ["push", "websocket"])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            user_id=str(data["user_id"]),
            notification_type=str(data["notification_type"]),
            title=str(data["title"]),
            message=str(data["message"]),
            priority=str(data.get("priority", "medium")),
            data=dict(data.get("data") or {}),
            channels=list(data.get("channels") or ["push", "websocket"]),
        )
