"""계약 도메인 모델.

violation_penalty / remainder_amount 는 생성 시 한 번만 계산되어 고정된다.
counted_dates / penalized_dates 는 같은 날짜가 두 번 반영되지 않게 하는 기록이다.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime
from common.types.money import ZERO, Money


class ContractType(StrEnum):
    NORMAL = "normal"
    BRAVE = "brave"
    CUSTOM = "custom"


class ContractStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_CONTRACT_STATUSES = frozenset(
    {ContractStatus.COMPLETED, ContractStatus.FAILED, ContractStatus.CANCELLED}
)


class DayOutcome(StrEnum):
    COMPLETED = "completed"
    VIOLATED = "violated"
    PENDING = "pending"
    NEUTRAL = "neutral"


class Contract(BaseModel):
    id: str | None = None
    user_id: str
    contract_type: ContractType = ContractType.CUSTOM
    plan_id: str = "default-plan"
    amount: Money
    start_date: UtcDateTime
    end_date: UtcDateTime
    status: ContractStatus = ContractStatus.PENDING
    completed_days: int = 0
    violation_days: int = 0
    violation_penalty: Money
    accumulated_penalty: Money = ZERO
    remainder_amount: Money
    remaining_amount: Money
    deposit_id: str | None = None
    display_deposit_id: str | None = None
    counted_dates: list[date] = Field(default_factory=list)
    penalized_dates: list[date] = Field(default_factory=list)
    settled_at: UtcDateTime | None = None
    refund_requested_amount: Money | None = None
    version: int = 0
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CONTRACT_STATUSES

    @property
    def duration_days(self) -> int:
        return max(0, (self.end_date - self.start_date).days)

    @property
    def accounted_days(self) -> int:
        return self.completed_days + self.violation_days

    @property
    def forfeitable_budget(self) -> Decimal:
        """일일 벌금으로 아직 떼어갈 수 있는 금액. 나머지(remainder)는 포함하지 않는다."""
        return max(ZERO, self.amount - self.remainder_amount - self.accumulated_penalty)

    def recorded_outcome(self, day: date) -> DayOutcome | None:
        if day in self.counted_dates:
            return DayOutcome.COMPLETED
        if day in self.penalized_dates:
            return DayOutcome.VIOLATED
        return None


def split_into_thirds(amount: Decimal) -> tuple[Decimal, Decimal]:
    """보증금을 (1회 벌금, 나머지) 로 나눈다. 1회 벌금 * 3 + 나머지 == amount."""

    return amount // 3, amount % 3


class ViolationResult(BaseModel):
    contract_id: str
    penalty_amount: Money
    remaining_amount: Money
    partial: bool = False
    exhausted: bool = False


class SettlementResult(BaseModel):
    contract_id: str
    status: ContractStatus
    refund_amount: Money = ZERO
    refund_id: str | None = None
    changed: bool = True
