"""보증금 도메인 모델.

보증금 레코드 하나는 결제 상태, 사용 이력(append-only), 환불 정보를 가진다.
사용 금액/가용 금액은 저장하지 않고 usage_history 에서 매번 다시 계산한다.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from common.types.datetime import UtcDateTime
from common.types.money import ZERO, Money


DEFAULT_DEPOSIT_DESCRIPTION = "健身契约保证金"


class Currency(StrEnum):
    CNY = "CNY"
    USD = "USD"


class PaymentMethod(StrEnum):
    WECHAT = "wechat"
    ALIPAY = "alipay"
    BANK_CARD = "bank_card"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentOutcome(StrEnum):
    """결제 콜백이 전달하는 결과."""

    SUCCESS = "success"
    FAILED = "failed"


class DepositStatus(StrEnum):
    ACTIVE = "active"
    USED = "used"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class UsageReason(StrEnum):
    PENALTY = "penalty"
    REFUND = "refund"
    TRANSFER = "transfer"


class RefundStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"


class UsageEntry(BaseModel):
    """보증금 사용 이력 한 줄. 기록된 뒤에는 바뀌지 않는다."""

    model_config = ConfigDict(frozen=True)

    contract_id: str | None = None
    used_amount: Money
    used_time: UtcDateTime
    reason: UsageReason
    description: str = ""
    # 같은 키의 사용 이력은 한 번만 기록된다 (예: "<contract_id>:<date>")
    usage_key: str | None = None


class RefundInfo(BaseModel):
    refund_id: str
    refund_amount: Money
    refund_reason: str
    refund_status: RefundStatus
    refund_time: UtcDateTime | None = None

    @property
    def in_flight(self) -> bool:
        return self.refund_status in (RefundStatus.PENDING, RefundStatus.PROCESSING)


class PaymentInfo(BaseModel):
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: str | None = None
    payment_time: UtcDateTime | None = None
    payment_url: str | None = None
    qr_code: str | None = None
    refund_info: RefundInfo | None = None


class DepositRecord(BaseModel):
    """보증금 레코드 도메인 모델."""

    id: str | None = None
    user_id: str
    contract_id: str | None = None
    amount: Money
    currency: Currency = Currency.CNY
    payment_method: PaymentMethod
    payment: PaymentInfo = Field(default_factory=PaymentInfo)
    usage_history: list[UsageEntry] = Field(default_factory=list)
    status: DepositStatus = DepositStatus.ACTIVE
    description: str = DEFAULT_DEPOSIT_DESCRIPTION
    expiry_date: UtcDateTime | None = None
    version: int = 0
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @property
    def payment_status(self) -> PaymentStatus:
        return self.payment.payment_status

    @property
    def refund_info(self) -> RefundInfo | None:
        return self.payment.refund_info

    @property
    def used_amount(self) -> Decimal:
        return sum((entry.used_amount for entry in self.usage_history), ZERO)

    @property
    def available_amount(self) -> Decimal:
        return max(ZERO, self.amount - self.used_amount)

    @property
    def refunded_amount(self) -> Decimal:
        return sum(
            (
                entry.used_amount
                for entry in self.usage_history
                if entry.reason == UsageReason.REFUND
            ),
            ZERO,
        )

    @property
    def is_spendable(self) -> bool:
        """결제가 끝났고 active 인 레코드만 사용/환불 대상이다."""
        return self.status == DepositStatus.ACTIVE and self.payment_status in (
            PaymentStatus.SUCCESS,
            PaymentStatus.REFUNDED,
        )

    def find_usage(self, usage_key: str) -> UsageEntry | None:
        return next((e for e in self.usage_history if e.usage_key == usage_key), None)

    def is_expired_at(self, now: datetime) -> bool:
        """결제 대기 중이고 만료 시각이 지났는지 (lazy expiry 판정)."""
        return (
            self.payment_status == PaymentStatus.PENDING
            and self.expiry_date is not None
            and now > self.expiry_date
        )


class DepositStats(BaseModel):
    """유저 보증금 집계 결과."""

    user_id: str
    total_deposit: Money
    record_count: int
    total_refunded: Money
    available_deposit: Money
    frozen_deposit: Money
    last_deposit_at: UtcDateTime | None = None
    currency: Currency = Currency.CNY


class PaymentIntent(BaseModel):
    """결제사가 돌려주는 결제 요청 정보."""

    payment_url: str
    qr_code: str | None = None
