from __future__ import annotations

from decimal import Decimal

import pytest

from fakes import active_contract, build_fixture

from ledger_service.app.models.contract import ContractStatus
from ledger_service.app.models.deposit import RefundStatus
from ledger_service.app.services.notifier import NotificationType


def test_completed_settlement_refunds_available_including_remainder() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.penalties.apply_violation(contract.id)

    result = fx.settlement.settle(contract.id, ContractStatus.COMPLETED)

    assert result.changed is True
    assert result.status == ContractStatus.COMPLETED
    assert result.refund_amount == Decimal("67")
    assert result.refund_id is not None

    deposit = fx.ledger.get(contract.deposit_id)
    assert deposit.refund_info.refund_id == result.refund_id
    assert deposit.refund_info.refund_status == RefundStatus.PROCESSING
    assert fx.gateway.refund_calls[-1][2] == Decimal("67")

    stored = fx.contracts.get(contract.id)
    assert stored.settled_at == fx.clock()
    assert stored.refund_requested_amount == Decimal("67")

    completed = [c for c in fx.notifier.calls if c[1] == NotificationType.CONTRACT_COMPLETED]
    assert completed[0][2]["refund_amount"] == Decimal("67")


def test_settle_twice_has_no_extra_side_effects() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.settlement.settle(contract.id, ContractStatus.COMPLETED)
    refund_calls = list(fx.gateway.refund_calls)
    notifications = list(fx.notifier.calls)
    saves = fx.contracts_repo.save_calls

    again = fx.settlement.settle(contract.id, ContractStatus.COMPLETED)

    assert again.changed is False
    assert again.status == ContractStatus.COMPLETED
    assert again.refund_amount == Decimal("100")
    assert fx.gateway.refund_calls == refund_calls
    assert fx.notifier.calls == notifications
    assert fx.contracts_repo.save_calls == saves


def test_failed_settlement_does_not_refund() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)

    result = fx.settlement.settle(contract.id, "failed")

    assert result.refund_amount == Decimal("0")
    assert fx.ledger.get(contract.deposit_id).refund_info is None
    assert fx.gateway.refund_calls == []
    assert NotificationType.CONTRACT_FAILED in fx.notifier.types()


def test_cancelled_contract_cannot_be_settled_again_as_completed() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.settlement.settle(contract.id, ContractStatus.CANCELLED)

    again = fx.settlement.settle(contract.id, ContractStatus.COMPLETED)

    assert again.changed is False
    assert again.status == ContractStatus.CANCELLED
    assert fx.gateway.refund_calls == []


def test_completed_settlement_with_refund_in_flight_still_finalizes() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.ledger.request_refund(contract.deposit_id, 10)

    result = fx.settlement.settle(contract.id, ContractStatus.COMPLETED)

    assert result.refund_amount == Decimal("0")
    assert result.refund_id is None
    assert fx.contracts.get(contract.id).status == ContractStatus.COMPLETED


def test_settle_rejects_non_terminal_status() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)

    with pytest.raises(ValueError):
        fx.settlement.settle(contract.id, ContractStatus.ACTIVE)
