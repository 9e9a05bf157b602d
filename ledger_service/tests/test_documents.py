from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from bson import ObjectId
from bson.decimal128 import Decimal128

from ledger_service.app.models.contract import Contract, ContractStatus
from ledger_service.app.models.deposit import (
    DepositRecord,
    PaymentInfo,
    PaymentMethod,
    PaymentStatus,
    RefundInfo,
    RefundStatus,
    UsageEntry,
    UsageReason,
)
from ledger_service.app.repositories.documents.contract_document import ContractDocument
from ledger_service.app.repositories.documents.deposit_document import DepositDocument


NOW = datetime(2026, 3, 2, 4, 0, tzinfo=timezone.utc)


def _deposit(record_id: str | None = None) -> DepositRecord:
    return DepositRecord(
        id=record_id,
        user_id="user-1",
        contract_id="con-1",
        amount=Decimal("100.50"),
        payment_method=PaymentMethod.WECHAT,
        payment=PaymentInfo(
            payment_status=PaymentStatus.SUCCESS,
            transaction_id="wx-1",
            payment_time=NOW,
            refund_info=RefundInfo(
                refund_id="refund_1",
                refund_amount=Decimal("10.25"),
                refund_reason="partial",
                refund_status=RefundStatus.PENDING,
            ),
        ),
        usage_history=[
            UsageEntry(
                contract_id="con-1",
                used_amount=Decimal("33.5"),
                used_time=NOW,
                reason=UsageReason.PENALTY,
            )
        ],
        version=3,
        created_at=NOW,
        updated_at=NOW,
    )


def test_deposit_document_stores_money_as_decimal128() -> None:
    record = DepositDocument.from_domain(_deposit()).to_mongo_record()

    assert "_id" not in record
    assert record["amount"] == Decimal128("100.50")
    assert record["usage_history"][0]["used_amount"] == Decimal128("33.5")
    assert record["payment"]["refund_info"]["refund_amount"] == Decimal128("10.25")
    assert record["version"] == 3


def test_deposit_document_restores_domain_from_mongo() -> None:
    oid = ObjectId()
    raw = DepositDocument.from_domain(_deposit(str(oid))).to_mongo_record()

    restored = DepositDocument.model_validate(raw).to_domain()

    assert restored.id == str(oid)
    assert restored.amount == Decimal("100.50")
    assert restored.used_amount == Decimal("33.5")
    assert restored.available_amount == Decimal("67.00")
    assert restored.refund_info.refund_amount == Decimal("10.25")
    assert restored.payment_status == PaymentStatus.SUCCESS
    assert restored.version == 3


def test_naive_datetimes_from_mongo_are_treated_as_utc() -> None:
    raw = DepositDocument.from_domain(_deposit(str(ObjectId()))).to_mongo_record()
    raw["created_at"] = datetime(2026, 3, 2, 4, 0)

    restored = DepositDocument.model_validate(raw).to_domain()

    assert restored.created_at == NOW


def test_contract_document_stores_dates_as_iso_strings() -> None:
    oid = ObjectId()
    contract = Contract(
        id=str(oid),
        user_id="user-1",
        amount=Decimal("100"),
        start_date=NOW,
        end_date=NOW + timedelta(days=7),
        status=ContractStatus.ACTIVE,
        violation_penalty=Decimal("33"),
        remainder_amount=Decimal("1"),
        remaining_amount=Decimal("67"),
        accumulated_penalty=Decimal("33"),
        counted_dates=[date(2026, 3, 2)],
        penalized_dates=[date(2026, 3, 3)],
        created_at=NOW,
        updated_at=NOW,
    )

    raw = ContractDocument.from_domain(contract).to_mongo_record()
    assert raw["counted_dates"] == ["2026-03-02"]
    assert raw["violation_penalty"] == Decimal128("33")

    restored = ContractDocument.model_validate(raw).to_domain()
    assert restored.model_dump() == contract.model_dump()
