"""결제 콜백 이벤트 핸들러.

결제 게이트웨이 어댑터가 TOPIC_PAYMENT 로 보낸 결제/환불 결과를 장부에 반영한다.
같은 콜백이 다시 오면 AlreadyFinalized 가 나며, 이는 정상 흐름으로 보고 커밋한다.
결제 콜백은 중복이어도 연결된 계약 활성화(멱등)까지는 진행한다.
"""

from __future__ import annotations

import logging
from datetime import datetime

from common.eventbus.config import get_brokers, get_group_id, get_poll_timeout
from common.eventbus.core import Event
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_PAYMENT
from common.events.payment import (
    PaymentCallbackEvent,
    PaymentEventType,
    RefundCallbackEvent,
)
from common.types.datetime import ensure_utc

from ..exceptions import AlreadyFinalized, ContractNotActive
from ..models.deposit import PaymentOutcome, PaymentStatus, RefundOutcome
from ..services.contract_service import ContractService
from ..services.deposit_ledger_service import DepositLedgerService


logger = logging.getLogger(__name__)


def _handle_payment_event(
    evt: Event,
    *,
    ledger: DepositLedgerService,
    contracts: ContractService,
) -> None:
    payload = evt.payload
    if not isinstance(payload, dict):
        logger.error("unexpected payload type for event %s: %r", evt.id, type(payload))
        return

    event_type = str(payload.get("type", ""))
    if event_type == PaymentEventType.PAYMENT_CALLBACK:
        _handle_payment_callback(payload, ledger, contracts)
    elif event_type == PaymentEventType.REFUND_CALLBACK:
        _handle_refund_callback(payload, ledger)
    else:
        logger.debug("ignoring unknown payment event type=%s id=%s", event_type, evt.id)


def _handle_payment_callback(
    payload: dict, ledger: DepositLedgerService, contracts: ContractService
) -> None:
    try:
        event = PaymentCallbackEvent.from_dict(payload)
    except Exception:
        logger.exception("failed to decode PaymentCallbackEvent payload=%r", payload)
        raise

    logger.info(
        "handling payment.callback event id=%s order_id=%s status=%s",
        event.id,
        event.order_id,
        event.status,
        extra={"event_id": event.id, "deposit_id": event.order_id},
    )

    try:
        record = ledger.confirm_payment(
            event.order_id,
            event.transaction_id,
            ensure_utc(datetime.fromisoformat(event.payment_time)),
            PaymentOutcome(event.status),
        )
    except AlreadyFinalized as exc:
        # 결제 확정은 끝났어도 계약 활성화는 아직일 수 있다.
        logger.info(
            "duplicate payment callback event_id=%s: %s",
            event.id,
            exc,
            extra={"event_id": event.id, "deposit_id": event.order_id},
        )
        record = ledger.get(event.order_id)

    if record.payment_status == PaymentStatus.SUCCESS and record.contract_id:
        try:
            contracts.activate(record.contract_id)
        except ContractNotActive as exc:
            logger.warning(
                "paid deposit %s could not activate contract %s: %s",
                record.id,
                record.contract_id,
                exc,
                extra={"deposit_id": record.id, "contract_id": record.contract_id},
            )


def _handle_refund_callback(payload: dict, ledger: DepositLedgerService) -> None:
    try:
        event = RefundCallbackEvent.from_dict(payload)
    except Exception:
        logger.exception("failed to decode RefundCallbackEvent payload=%r", payload)
        raise

    logger.info(
        "handling payment.refund_callback event id=%s order_id=%s refund_id=%s status=%s",
        event.id,
        event.order_id,
        event.refund_id,
        event.status,
        extra={"event_id": event.id, "deposit_id": event.order_id},
    )

    refunded_at = (
        ensure_utc(datetime.fromisoformat(event.refund_time)) if event.refund_time else None
    )
    try:
        ledger.complete_refund(
            event.order_id,
            event.refund_id,
            RefundOutcome(event.status),
            refunded_at,
        )
    except AlreadyFinalized as exc:
        logger.info(
            "duplicate refund callback ignored event_id=%s: %s",
            event.id,
            exc,
            extra={"event_id": event.id, "deposit_id": event.order_id},
        )


def run_payment_consumer(
    stop_flag: list[bool],
    ledger: DepositLedgerService,
    contracts: ContractService,
) -> None:
    """결제 콜백 이벤트를 소비하는 구독 루프를 실행한다."""
    logger.info("payment-consumer starting up")

    brokers = get_brokers()
    group_id = get_group_id() + "-payment"

    bus = KafkaEventBus(brokers)

    try:
        logger.info("subscribing to topic=%s group_id=%s", TOPIC_PAYMENT.base, group_id)
        bus.subscribe(
            group_id=group_id,
            topic=TOPIC_PAYMENT,
            handler=lambda evt: _handle_payment_event(evt, ledger=ledger, contracts=contracts),
            poll_timeout=get_poll_timeout(),
            stop_flag=stop_flag,
        )
    finally:
        bus.close()
        logger.info("payment-consumer stopped")
