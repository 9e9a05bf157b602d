"""결제사 콜백 이벤트 정의.

결제 게이트웨이 어댑터가 결제/환불 결과를 받으면 TOPIC_PAYMENT 로 발행한다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class PaymentEventType:
    """결제 이벤트 타입 상수."""

    PAYMENT_CALLBACK = "payment.callback"
    REFUND_CALLBACK = "payment.refund_callback"


@dataclass(slots=True)
class PaymentCallbackEvent:
    """결제 결과 콜백.

    order_id 는 보증금 레코드 ID 이고, status 는 "success" | "failed" 이다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    order_id: str
    transaction_id: str
    status: str
    payment_time: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data.get("source", "payment-gateway")),
            version=str(data.get("version", "1.0")),
            order_id=str(data["order_id"]),
            transaction_id=str(data["transaction_id"]),
            status=str(data["status"]),
            payment_time=str(data["payment_time"]),
        )


@dataclass(slots=True)
class RefundCallbackEvent:
    """환불 결과 콜백. status 는 "completed" | "failed" 이다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    order_id: str
    refund_id: str
    status: str
    refund_time: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        refund_time = data.get("refund_time")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data.get("source", "payment-gateway")),
            version=str(data.get("version", "1.0")),
            order_id=str(data["order_id"]),
            refund_id=str(data["refund_id"]),
            status=str(data["status"]),
            refund_time=str(refund_time) if refund_time else None,
        )
