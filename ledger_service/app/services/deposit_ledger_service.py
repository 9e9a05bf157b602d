"""보증금 장부 서비스.

보증금 레코드 생성, 결제 확정, 사용(벌금/환불/이전) 기록, 환불 요청/완료, 집계를 처리한다.
잔액에 영향을 주는 모든 연산은 레코드 단위 락 안에서 읽기-수정-저장을 끝내고,
결제사/알림 호출은 락 밖에서 한다.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from common.locks import KeyedLock
from common.types.datetime import utcnow
from common.types.money import ZERO

from ..exceptions import (
    AlreadyFinalized,
    DepositNotFound,
    ExceedsAvailable,
    InsufficientBalance,
    InvalidAmount,
    NotRefundable,
)
from ..models.deposit import (
    Currency,
    DepositRecord,
    DepositStats,
    DepositStatus,
    PaymentMethod,
    PaymentOutcome,
    PaymentStatus,
    RefundInfo,
    RefundOutcome,
    RefundStatus,
    UsageEntry,
    UsageReason,
)
from ..repositories.interfaces import DepositRepositoryInterface
from .notifier import NotificationType, NotifierInterface, safe_notify
from .payment_gateway import PaymentGatewayInterface


logger = logging.getLogger(__name__)


DEFAULT_EXPIRY_MINUTES = 30
QR_PAYMENT_METHODS = frozenset({PaymentMethod.WECHAT, PaymentMethod.ALIPAY})
PAID_STATUSES = frozenset({PaymentStatus.SUCCESS, PaymentStatus.REFUNDED})

CSV_HEADER = ["记录ID", "金额", "货币", "支付方式", "状态", "交易ID", "描述", "创建时间", "支付时间"]


def as_amount(value: Decimal | int | str) -> Decimal:
    """금액 입력을 Decimal 로 정규화한다. float 는 받지 않는다."""

    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"amount must be Decimal, int or str, got {type(value).__name__}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidAmount(f"invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidAmount(f"invalid amount: {value!r}")
    return amount


class DepositLedgerService:
    """보증금 레코드의 유일한 변경 주체."""

    def __init__(
        self,
        deposit_repo: DepositRepositoryInterface,
        payment_gateway: PaymentGatewayInterface,
        notifier: NotifierInterface,
        *,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utcnow,
        expiry_minutes: int = DEFAULT_EXPIRY_MINUTES,
    ) -> None:
        self._repo = deposit_repo
        self._gateway = payment_gateway
        self._notifier = notifier
        self._locks = locks or KeyedLock()
        self._clock = clock
        self._expiry = timedelta(minutes=expiry_minutes)

    # 생성 / 조회 ------------------------------------------------------------

    def create(
        self,
        user_id: str,
        amount: Decimal | int | str,
        currency: Currency | str = Currency.CNY,
        payment_method: PaymentMethod | str = PaymentMethod.WECHAT,
        contract_id: str | None = None,
        description: str | None = None,
    ) -> DepositRecord:
        """결제 대기(pending) 상태의 보증금 레코드를 만든다.

        위챗/알리페이는 생성 후 결제 QR 을 발급받아 붙인다. 발급 실패는 생성 자체를
        실패시키지 않는다.
        """

        value = as_amount(amount)
        if value <= 0:
            raise InvalidAmount(f"deposit amount must be positive, got {value}")

        now = self._clock()
        record = DepositRecord(
            user_id=user_id,
            contract_id=contract_id,
            amount=value,
            currency=Currency(currency),
            payment_method=PaymentMethod(payment_method),
            expiry_date=now + self._expiry,
            created_at=now,
            updated_at=now,
            **({"description": description} if description else {}),
        )
        record = self._repo.insert(record)
        logger.info(
            "deposit created id=%s user_id=%s amount=%s",
            record.id,
            user_id,
            value,
            extra={"deposit_id": record.id, "user_id": user_id, "amount": value},
        )

        if record.payment_method in QR_PAYMENT_METHODS:
            record = self._attach_payment_intent(record)
        return record

    def get(self, deposit_id: str) -> DepositRecord:
        with self._hold(deposit_id):
            return self._load_fresh(deposit_id)

    def list_records(
        self,
        user_id: str,
        *,
        payment_status: PaymentStatus | str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DepositRecord], int]:
        status = PaymentStatus(payment_status) if payment_status else None
        records, total = self._repo.list_by_user(
            user_id,
            payment_status=status,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        return self._refresh_expired(records), total

    # 결제 ------------------------------------------------------------------

    def confirm_payment(
        self,
        deposit_id: str,
        transaction_id: str,
        paid_at: datetime,
        outcome: PaymentOutcome | str,
    ) -> DepositRecord:
        """결제 결과를 반영한다. pending 이 아닌 레코드는 AlreadyFinalized."""

        result = PaymentOutcome(outcome)
        with self._hold(deposit_id):
            record = self._load_fresh(deposit_id)
            if record.payment_status != PaymentStatus.PENDING:
                raise AlreadyFinalized(
                    f"deposit {deposit_id} payment already finalized "
                    f"(payment_status={record.payment_status})"
                )

            succeeded = result == PaymentOutcome.SUCCESS
            now = self._clock()
            payment = record.payment.model_copy(
                update={
                    "payment_status": (
                        PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED
                    ),
                    "transaction_id": transaction_id,
                    "payment_time": paid_at,
                }
            )
            saved = self._repo.save(
                record.model_copy(
                    update={
                        "payment": payment,
                        "status": DepositStatus.ACTIVE if succeeded else DepositStatus.EXPIRED,
                        "expiry_date": None,
                        "updated_at": now,
                    }
                )
            )

        logger.info(
            "deposit payment confirmed id=%s outcome=%s transaction_id=%s",
            deposit_id,
            result,
            transaction_id,
            extra={"deposit_id": deposit_id, "outcome": str(result)},
        )
        safe_notify(
            self._notifier,
            saved.user_id,
            NotificationType.PAYMENT_SUCCESS if succeeded else NotificationType.PAYMENT_FAILED,
            {"record_id": deposit_id, "amount": saved.amount},
        )
        return saved

    # 사용 기록 ---------------------------------------------------------------

    def record_usage(
        self,
        deposit_id: str,
        amount: Decimal | int | str,
        contract_id: str | None,
        reason: UsageReason | str,
        description: str = "",
        *,
        usage_key: str | None = None,
    ) -> DepositRecord:
        """사용 이력을 추가한다. 가용 금액을 넘으면 InsufficientBalance.

        usage_key 가 이미 기록된 키면 아무것도 바꾸지 않고 현재 레코드를 돌려준다.
        호출한 쪽은 record.find_usage(usage_key) 로 실제 기록된 금액을 확인한다.
        """

        value = as_amount(amount)
        if value <= 0:
            raise InvalidAmount(f"usage amount must be positive, got {value}")
        usage_reason = UsageReason(reason)

        with self._hold(deposit_id):
            record = self._load_fresh(deposit_id)
            if usage_key is not None and record.find_usage(usage_key) is not None:
                logger.info(
                    "deposit usage already recorded id=%s key=%s",
                    deposit_id,
                    usage_key,
                    extra={"deposit_id": deposit_id, "contract_id": contract_id},
                )
                return record
            if not record.is_spendable:
                raise InsufficientBalance(
                    f"deposit {deposit_id} has no spendable balance "
                    f"(status={record.status}, payment_status={record.payment_status})"
                )
            if value > record.available_amount:
                raise InsufficientBalance(
                    f"deposit {deposit_id} available {record.available_amount} < requested {value}"
                )

            saved = self._repo.save(
                self._append_usage(
                    record,
                    UsageEntry(
                        contract_id=contract_id,
                        used_amount=value,
                        used_time=self._clock(),
                        reason=usage_reason,
                        description=description,
                        usage_key=usage_key,
                    ),
                    exhausted_status=DepositStatus.USED,
                )
            )

        logger.info(
            "deposit usage recorded id=%s reason=%s amount=%s available=%s",
            deposit_id,
            usage_reason,
            value,
            saved.available_amount,
            extra={"deposit_id": deposit_id, "contract_id": contract_id, "amount": value},
        )
        return saved

    # 환불 ------------------------------------------------------------------

    def request_refund(
        self,
        deposit_id: str,
        refund_amount: Decimal | int | str | None = None,
        reason: str = "",
        *,
        dispatch: bool = True,
    ) -> DepositRecord:
        """환불 요청을 기록한다.

        실제 송금은 결제사가 하며, dispatch=True 면 락 해제 후 바로 결제사에 제출하고
        알림을 보낸다. 호출자가 다른 락을 쥐고 있다면 dispatch=False 로 기록만 하고
        나중에 dispatch_refund 를 부른다.
        """

        with self._hold(deposit_id):
            record = self._load_fresh(deposit_id)
            if not record.is_spendable:
                raise NotRefundable(
                    f"deposit {deposit_id} is not refundable "
                    f"(status={record.status}, payment_status={record.payment_status})"
                )
            if record.refund_info is not None and record.refund_info.in_flight:
                raise NotRefundable(
                    f"deposit {deposit_id} already has refund {record.refund_info.refund_id} in progress"
                )

            available = record.available_amount
            value = available if refund_amount is None else as_amount(refund_amount)
            if value <= 0:
                raise InvalidAmount(f"refund amount must be positive, got {value}")
            if value > available:
                raise ExceedsAvailable(
                    f"refund {value} exceeds available amount {available} of deposit {deposit_id}"
                )

            refund_info = RefundInfo(
                refund_id=f"refund_{uuid.uuid4().hex}",
                refund_amount=value,
                refund_reason=reason,
                refund_status=RefundStatus.PENDING,
            )
            saved = self._repo.save(
                record.model_copy(
                    update={
                        "payment": record.payment.model_copy(update={"refund_info": refund_info}),
                        "updated_at": self._clock(),
                    }
                )
            )

        logger.info(
            "deposit refund requested id=%s refund_id=%s amount=%s",
            deposit_id,
            refund_info.refund_id,
            value,
            extra={"deposit_id": deposit_id, "amount": value},
        )
        if dispatch:
            saved = self.dispatch_refund(deposit_id)
        return saved

    def dispatch_refund(self, deposit_id: str) -> DepositRecord:
        """pending 환불을 결제사에 제출하고 알림을 보낸다.

        제출 실패는 로그만 남기고 pending 으로 둔다(재제출 가능).
        """

        record = self.get(deposit_id)
        info = record.refund_info
        if info is None or info.refund_status != RefundStatus.PENDING:
            return record

        try:
            external_id = self._gateway.request_external_refund(
                order_id=deposit_id,
                transaction_id=record.payment.transaction_id,
                amount=info.refund_amount,
                reason=info.refund_reason,
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to submit refund %s for deposit %s",
                info.refund_id,
                deposit_id,
                extra={"deposit_id": deposit_id},
            )
        else:
            logger.info(
                "refund %s submitted for deposit %s external_id=%s",
                info.refund_id,
                deposit_id,
                external_id,
            )
            record = self._mark_refund_processing(deposit_id, info.refund_id)

        safe_notify(
            self._notifier,
            record.user_id,
            NotificationType.REFUND_REQUEST,
            {"record_id": deposit_id, "amount": info.refund_amount},
        )
        return record

    def complete_refund(
        self,
        deposit_id: str,
        refund_id: str,
        outcome: RefundOutcome | str,
        refunded_at: datetime | None = None,
    ) -> DepositRecord:
        """결제사 환불 결과 콜백을 반영한다.

        completed 면 환불액을 refund 사용 이력으로 남기고, failed 면 상태만 바꾼다.
        """

        result = RefundOutcome(outcome)
        with self._hold(deposit_id):
            record = self._load_fresh(deposit_id)
            info = record.refund_info
            if info is None or info.refund_id != refund_id:
                raise NotRefundable(f"deposit {deposit_id} has no refund {refund_id}")
            if not info.in_flight:
                raise AlreadyFinalized(
                    f"refund {refund_id} already finalized (refund_status={info.refund_status})"
                )

            now = self._clock()
            finished_at = refunded_at or now
            if result == RefundOutcome.FAILED:
                failed_info = info.model_copy(
                    update={"refund_status": RefundStatus.FAILED, "refund_time": finished_at}
                )
                updated = record.model_copy(
                    update={
                        "payment": record.payment.model_copy(update={"refund_info": failed_info}),
                        "updated_at": now,
                    }
                )
            else:
                if info.refund_amount > record.available_amount:
                    logger.error(
                        "refund %s amount %s exceeds available %s on deposit %s",
                        refund_id,
                        info.refund_amount,
                        record.available_amount,
                        deposit_id,
                        extra={"deposit_id": deposit_id},
                    )
                    raise ExceedsAvailable(
                        f"refund {refund_id} amount {info.refund_amount} exceeds available "
                        f"{record.available_amount}"
                    )
                done_info = info.model_copy(
                    update={"refund_status": RefundStatus.COMPLETED, "refund_time": finished_at}
                )
                with_payment = record.model_copy(
                    update={
                        "payment": record.payment.model_copy(
                            update={
                                "refund_info": done_info,
                                "payment_status": PaymentStatus.REFUNDED,
                            }
                        )
                    }
                )
                updated = self._append_usage(
                    with_payment,
                    UsageEntry(
                        contract_id=record.contract_id,
                        used_amount=info.refund_amount,
                        used_time=now,
                        reason=UsageReason.REFUND,
                        description=f"{refund_id}: {info.refund_reason}".rstrip(": "),
                    ),
                    exhausted_status=DepositStatus.REFUNDED,
                )
            saved = self._repo.save(updated)

        logger.info(
            "deposit refund finalized id=%s refund_id=%s outcome=%s",
            deposit_id,
            refund_id,
            result,
            extra={"deposit_id": deposit_id, "outcome": str(result)},
        )
        safe_notify(
            self._notifier,
            saved.user_id,
            NotificationType.REFUND_SUCCESS
            if result == RefundOutcome.COMPLETED
            else NotificationType.REFUND_FAILED,
            {"record_id": deposit_id, "amount": info.refund_amount},
        )
        return saved

    # 집계 / 내보내기 -----------------------------------------------------------

    def get_stats(self, user_id: str) -> DepositStats:
        """유저의 모든 보증금 레코드를 집계한다.

        - total_deposit: 결제가 완료된 레코드 금액 합
        - total_refunded: 완료된 환불 금액 합
        - available_deposit: active 레코드의 가용 금액 합
        - frozen_deposit: 사용(벌금/이전)으로 묶였지만 환불되지 않은 몫
        """

        records = self._refresh_expired(self._repo.list_all_by_user(user_id))
        paid = [r for r in records if r.payment_status in PAID_STATUSES]

        total_deposit = sum((r.amount for r in paid), ZERO)
        total_refunded = sum((r.refunded_amount for r in records), ZERO)
        available_deposit = sum(
            (r.available_amount for r in paid if r.status == DepositStatus.ACTIVE), ZERO
        )
        last_deposit_at = max((r.created_at for r in records), default=None)

        return DepositStats(
            user_id=user_id,
            total_deposit=total_deposit,
            record_count=len(records),
            total_refunded=total_refunded,
            available_deposit=available_deposit,
            frozen_deposit=max(ZERO, total_deposit - available_deposit - total_refunded),
            last_deposit_at=last_deposit_at,
            currency=records[0].currency if records else Currency.CNY,
        )

    def export_records(
        self,
        user_id: str,
        fmt: str = "csv",
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> str:
        """보증금 기록을 CSV(BOM 포함) 또는 JSON 문자열로 내보낸다."""

        records = [
            r
            for r in self._refresh_expired(self._repo.list_all_by_user(user_id))
            if (start is None or r.created_at >= start) and (end is None or r.created_at <= end)
        ]

        if fmt == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            writer.writerow(CSV_HEADER)
            for r in records:
                writer.writerow(
                    [
                        r.id,
                        format(r.amount, "f"),
                        r.currency,
                        r.payment_method,
                        r.payment_status,
                        r.payment.transaction_id or "",
                        r.description,
                        r.created_at.isoformat(),
                        r.payment.payment_time.isoformat() if r.payment.payment_time else "",
                    ]
                )
            return "\ufeff" + buf.getvalue()

        if fmt == "json":
            return json.dumps(
                {
                    "records": [_export_row(r) for r in records],
                    "export_time": self._clock().isoformat(),
                },
                ensure_ascii=False,
            )

        raise ValueError(f"unsupported export format: {fmt!r}")

    # 내부 util -------------------------------------------------------------

    @contextmanager
    def _hold(self, deposit_id: str) -> Iterator[None]:
        with self._locks.hold(f"deposit:{deposit_id}"):
            yield

    def _load_fresh(self, deposit_id: str) -> DepositRecord:
        """락 안에서 호출한다. 레코드를 읽고 결제 대기 만료를 반영한다."""

        record = self._repo.find_by_id(deposit_id)
        if record is None:
            raise DepositNotFound(deposit_id)

        now = self._clock()
        if not record.is_expired_at(now):
            return record

        logger.warning(
            "deposit %s payment window expired at %s",
            deposit_id,
            record.expiry_date,
            extra={"deposit_id": deposit_id, "user_id": record.user_id},
        )
        return self._repo.save(
            record.model_copy(
                update={
                    "payment": record.payment.model_copy(
                        update={"payment_status": PaymentStatus.FAILED}
                    ),
                    "status": DepositStatus.EXPIRED,
                    "expiry_date": None,
                    "updated_at": now,
                }
            )
        )

    def _refresh_expired(self, records: list[DepositRecord]) -> list[DepositRecord]:
        now = self._clock()
        refreshed: list[DepositRecord] = []
        for record in records:
            if record.id is not None and record.is_expired_at(now):
                with self._hold(record.id):
                    record = self._load_fresh(record.id)
            refreshed.append(record)
        return refreshed

    def _append_usage(
        self,
        record: DepositRecord,
        entry: UsageEntry,
        *,
        exhausted_status: DepositStatus,
    ) -> DepositRecord:
        updated = record.model_copy(
            update={
                "usage_history": [*record.usage_history, entry],
                "updated_at": self._clock(),
            }
        )
        if updated.available_amount == 0:
            updated = updated.model_copy(update={"status": exhausted_status})
        return updated

    def _attach_payment_intent(self, record: DepositRecord) -> DepositRecord:
        assert record.id is not None
        try:
            intent = self._gateway.create_payment_intent(
                order_id=record.id,
                amount=record.amount,
                method=record.payment_method,
                description=record.description,
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to create payment intent for deposit %s",
                record.id,
                extra={"deposit_id": record.id},
            )
            return record

        with self._hold(record.id):
            current = self._load_fresh(record.id)
            return self._repo.save(
                current.model_copy(
                    update={
                        "payment": current.payment.model_copy(
                            update={"payment_url": intent.payment_url, "qr_code": intent.qr_code}
                        ),
                        "updated_at": self._clock(),
                    }
                )
            )

    def _mark_refund_processing(self, deposit_id: str, refund_id: str) -> DepositRecord:
        with self._hold(deposit_id):
            record = self._load_fresh(deposit_id)
            info = record.refund_info
            # 제출 사이에 결과 콜백이 먼저 도착했을 수 있다.
            if info is None or info.refund_id != refund_id or info.refund_status != RefundStatus.PENDING:
                return record
            return self._repo.save(
                record.model_copy(
                    update={
                        "payment": record.payment.model_copy(
                            update={
                                "refund_info": info.model_copy(
                                    update={"refund_status": RefundStatus.PROCESSING}
                                )
                            }
                        ),
                        "updated_at": self._clock(),
                    }
                )
            )


def _export_row(record: DepositRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "amount": format(record.amount, "f"),
        "currency": str(record.currency),
        "payment_method": str(record.payment_method),
        "status": str(record.payment_status),
        "transaction_id": record.payment.transaction_id,
        "description": record.description,
        "created_at": record.created_at.isoformat(),
        "completed_at": record.payment.payment_time.isoformat()
        if record.payment.payment_time
        else None,
    }
