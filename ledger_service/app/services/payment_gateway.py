"""결제 게이트웨이 협력자.

서명 생성, 벤더 프로토콜은 결제 어댑터 서비스가 담당하고, 여기서는 그 내부 API 만 호출한다.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Protocol

import httpx

from ..config import PaymentGatewayConfig
from ..models.deposit import PaymentIntent, PaymentMethod


logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """결제 어댑터 호출 실패."""


class PaymentGatewayInterface(Protocol):
    def create_payment_intent(
        self,
        order_id: str,
        amount: Decimal,
        method: PaymentMethod,
        description: str,
    ) -> PaymentIntent:  # pragma: no cover - Protocol
        ...

    def request_external_refund(
        self,
        order_id: str,
        transaction_id: str | None,
        amount: Decimal,
        reason: str,
    ) -> str:  # pragma: no cover - Protocol
        """결제사 환불 ID 를 반환한다."""
        ...


class HttpPaymentGateway(PaymentGatewayInterface):
    """httpx 기반 결제 어댑터 클라이언트."""

    def __init__(
        self, config: PaymentGatewayConfig, client: httpx.Client | None = None
    ) -> None:
        self._client = client or httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def create_payment_intent(
        self,
        order_id: str,
        amount: Decimal,
        method: PaymentMethod,
        description: str,
    ) -> PaymentIntent:
        body = self._post(
            "/payments/intents",
            {
                "order_id": order_id,
                "amount": format(amount, "f"),
                "payment_method": str(method),
                "description": description,
            },
        )
        return PaymentIntent(
            payment_url=str(body["payment_url"]),
            qr_code=body.get("qr_code"),
        )

    def request_external_refund(
        self,
        order_id: str,
        transaction_id: str | None,
        amount: Decimal,
        reason: str,
    ) -> str:
        body = self._post(
            "/payments/refunds",
            {
                "order_id": order_id,
                "transaction_id": transaction_id,
                "amount": format(amount, "f"),
                "reason": reason,
            },
        )
        return str(body["refund_id"])

    def _post(self, path: str, payload: dict) -> dict:
        try:
            resp = self._client.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PaymentGatewayError(
                f"payment gateway returned {exc.response.status_code} for {path}"
            ) from exc
        except httpx.RequestError as exc:
            raise PaymentGatewayError(f"payment gateway request failed: {exc}") from exc

        data = resp.json()
        if not isinstance(data, dict):
            raise PaymentGatewayError(f"unexpected response body for {path}: {data!r}")
        return data
