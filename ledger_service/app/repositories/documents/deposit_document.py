"""보증금 MongoDB 도큐먼트.

결제 정보(payment)와 사용 이력(usage_history)은 하위 도큐먼트로 함께 저장한다.
"""

from __future__ import annotations

from decimal import Decimal

from common.mongo.types import BaseDocument, MongoDateTime, from_object_id

from ...models.deposit import (
    DEFAULT_DEPOSIT_DESCRIPTION,
    DepositRecord,
    PaymentInfo,
    UsageEntry,
)


class DepositDocument(BaseDocument):
    """MongoDB deposits 컬렉션 도큐먼트 모델."""

    user_id: str
    contract_id: str | None = None
    amount: Decimal
    currency: str
    payment_method: str
    payment: PaymentInfo
    usage_history: list[UsageEntry] = []
    status: str
    description: str = DEFAULT_DEPOSIT_DESCRIPTION
    expiry_date: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, record: DepositRecord) -> "DepositDocument":
        data = record.model_dump()
        data["_id"] = data.pop("id", None)
        return cls.model_validate(data)

    def to_domain(self) -> DepositRecord:
        return DepositRecord(
            id=from_object_id(self.id),
            user_id=self.user_id,
            contract_id=self.contract_id,
            amount=self.amount,
            currency=self.currency,
            payment_method=self.payment_method,
            payment=self.payment,
            usage_history=list(self.usage_history),
            status=self.status,
            description=self.description,
            expiry_date=self.expiry_date,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
