"""계약 MongoDB 도큐먼트.

BSON 은 date 타입이 없으므로 counted_dates / penalized_dates 는 ISO 날짜 문자열로 저장한다.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from common.mongo.types import BaseDocument, MongoDateTime, from_object_id

from ...models.contract import Contract


class ContractDocument(BaseDocument):
    """MongoDB contracts 컬렉션 도큐먼트 모델."""

    user_id: str
    contract_type: str
    plan_id: str
    amount: Decimal
    start_date: MongoDateTime
    end_date: MongoDateTime
    status: str
    completed_days: int = 0
    violation_days: int = 0
    violation_penalty: Decimal
    accumulated_penalty: Decimal
    remainder_amount: Decimal
    remaining_amount: Decimal
    deposit_id: str | None = None
    display_deposit_id: str | None = None
    counted_dates: list[str] = []
    penalized_dates: list[str] = []
    settled_at: MongoDateTime | None = None
    refund_requested_amount: Decimal | None = None

    @classmethod
    def from_domain(cls, contract: Contract) -> "ContractDocument":
        data = contract.model_dump()
        data["_id"] = data.pop("id", None)
        data["counted_dates"] = [d.isoformat() for d in contract.counted_dates]
        data["penalized_dates"] = [d.isoformat() for d in contract.penalized_dates]
        return cls.model_validate(data)

    def to_domain(self) -> Contract:
        return Contract(
            id=from_object_id(self.id),
            user_id=self.user_id,
            contract_type=self.contract_type,
            plan_id=self.plan_id,
            amount=self.amount,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.status,
            completed_days=self.completed_days,
            violation_days=self.violation_days,
            violation_penalty=self.violation_penalty,
            accumulated_penalty=self.accumulated_penalty,
            remainder_amount=self.remainder_amount,
            remaining_amount=self.remaining_amount,
            deposit_id=self.deposit_id,
            display_deposit_id=self.display_deposit_id,
            counted_dates=[date.fromisoformat(d) for d in self.counted_dates],
            penalized_dates=[date.fromisoformat(d) for d in self.penalized_dates],
            settled_at=self.settled_at,
            refund_requested_amount=self.refund_requested_amount,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
