from __future__ import annotations

from decimal import Decimal

import pytest

from fakes import active_contract, build_fixture

from ledger_service.app.exceptions import (
    ConcurrentModificationError,
    ContractNotActive,
    InvalidAmount,
    NoDaysRemaining,
)
from ledger_service.app.models.contract import ContractStatus, split_into_thirds
from ledger_service.app.models.deposit import DepositStatus, UsageReason
from ledger_service.app.services.notifier import NotificationType


@pytest.mark.parametrize("amount", [1, 2, 3, 10, 99, 100, 101, 150, 299, 1000])
def test_thirds_split_recombines_to_amount(amount: int) -> None:
    penalty, remainder = split_into_thirds(Decimal(amount))

    assert penalty * 3 + remainder == Decimal(amount)
    assert Decimal("0") <= remainder < Decimal("3")


def test_contract_create_fixes_penalty_and_remainder() -> None:
    fx = build_fixture()

    contract = fx.contracts.create("user-1", 100, 30)

    assert contract.violation_penalty == Decimal("33")
    assert contract.remainder_amount == Decimal("1")
    assert contract.remaining_amount == Decimal("100")
    assert contract.status == ContractStatus.PENDING
    assert (contract.end_date - contract.start_date).days == 30
    assert fx.notifier.types() == [NotificationType.CONTRACT_CREATED]


def test_contract_create_validates_input() -> None:
    fx = build_fixture()

    with pytest.raises(InvalidAmount):
        fx.contracts.create("user-1", 0, 30)
    with pytest.raises(ValueError):
        fx.contracts.create("user-1", 100, 0)


def test_three_violations_leave_the_remainder() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)

    results = [fx.penalties.apply_violation(contract.id) for _ in range(3)]

    assert [r.penalty_amount for r in results] == [Decimal("33")] * 3
    assert [r.remaining_amount for r in results] == [
        Decimal("67"),
        Decimal("34"),
        Decimal("1"),
    ]
    assert not any(r.partial for r in results)
    assert [r.exhausted for r in results] == [False, False, True]

    stored = fx.contracts.get(contract.id)
    assert stored.violation_days == 3
    assert stored.accumulated_penalty == Decimal("99")

    deposit = fx.ledger.get(contract.deposit_id)
    assert deposit.available_amount == Decimal("1")
    assert [e.reason for e in deposit.usage_history] == [UsageReason.PENALTY] * 3
    assert all(e.contract_id == contract.id for e in deposit.usage_history)

    violation_calls = [c for c in fx.notifier.calls if c[1] == NotificationType.CONTRACT_VIOLATION]
    assert violation_calls[-1][2]["penalty"] == Decimal("33")
    assert violation_calls[-1][2]["remaining"] == Decimal("1")


def test_fourth_violation_never_forfeits_the_remainder() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    for _ in range(3):
        fx.penalties.apply_violation(contract.id)

    fourth = fx.penalties.apply_violation(contract.id)

    assert fourth.penalty_amount == Decimal("0")
    assert fourth.partial is True
    assert fourth.remaining_amount == Decimal("1")
    assert fx.ledger.get(contract.deposit_id).available_amount == Decimal("1")
    assert fx.contracts.get(contract.id).violation_days == 4


def test_penalty_is_capped_at_deposit_balance() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.ledger.record_usage(contract.deposit_id, 80, None, UsageReason.TRANSFER)

    result = fx.penalties.apply_violation(contract.id)

    assert result.penalty_amount == Decimal("20")
    assert result.partial is True
    deposit = fx.ledger.get(contract.deposit_id)
    assert deposit.available_amount == Decimal("0")
    assert deposit.status == DepositStatus.USED
    assert fx.contracts.get(contract.id).accumulated_penalty == Decimal("20")


def test_violation_without_linked_deposit_records_zero_penalty() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100, with_deposit=False)

    result = fx.penalties.apply_violation(contract.id)

    assert result.penalty_amount == Decimal("0")
    assert result.partial is True
    assert fx.contracts.get(contract.id).violation_days == 1


def test_small_contract_has_zero_penalty() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 2)

    result = fx.penalties.apply_violation(contract.id)

    assert result.penalty_amount == Decimal("0")
    assert result.exhausted is False
    assert fx.ledger.get(contract.deposit_id).usage_history == []


def test_violation_on_pending_contract_is_rejected() -> None:
    fx = build_fixture()
    contract = fx.contracts.create("user-1", 100, 7)

    with pytest.raises(ContractNotActive):
        fx.penalties.apply_violation(contract.id)


def test_same_day_is_penalized_once() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    day = fx.clock().date()

    first = fx.penalties.apply_violation(contract.id, day=day)
    second = fx.penalties.apply_violation(contract.id, day=day)

    assert first.penalty_amount == Decimal("33")
    assert second.penalty_amount == Decimal("0")
    stored = fx.contracts.get(contract.id)
    assert stored.violation_days == 1
    assert stored.penalized_dates == [day]


def test_retry_after_failed_contract_save_charges_the_day_once() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    day = fx.clock().date()
    real_save = fx.contracts_repo.save
    saves: list[str] = []

    def _save_fails_once(updated):  # type: ignore[no-untyped-def]
        saves.append(updated.id)
        if len(saves) == 1:
            raise ConcurrentModificationError(f"contract {updated.id} was modified concurrently")
        return real_save(updated)

    fx.contracts_repo.save = _save_fails_once  # type: ignore[method-assign]

    with pytest.raises(ConcurrentModificationError):
        fx.penalties.apply_violation(contract.id, day=day)
    retried = fx.penalties.apply_violation(contract.id, day=day)

    assert retried.penalty_amount == Decimal("33")
    deposit = fx.ledger.get(contract.deposit_id)
    assert deposit.used_amount == Decimal("33")
    assert [e.usage_key for e in deposit.usage_history] == [f"{contract.id}:{day.isoformat()}"]
    stored = fx.contracts.get(contract.id)
    assert stored.violation_days == 1
    assert stored.accumulated_penalty == Decimal("33")
    assert stored.penalized_dates == [day]


def test_violation_beyond_contract_days_is_rejected() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 300, days=2)
    fx.penalties.apply_violation(contract.id)
    fx.penalties.apply_violation(contract.id)

    with pytest.raises(NoDaysRemaining):
        fx.penalties.apply_violation(contract.id)

    assert fx.contracts.get(contract.id).violation_days == 2
    assert fx.ledger.get(contract.deposit_id).used_amount == Decimal("200")


def test_activate_is_idempotent_and_rejects_terminal() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)

    assert fx.contracts.activate(contract.id).status == ContractStatus.ACTIVE

    fx.settlement.settle(contract.id, ContractStatus.CANCELLED)
    with pytest.raises(ContractNotActive):
        fx.contracts.activate(contract.id)


def test_link_deposit_updates_contract() -> None:
    fx = build_fixture()
    contract = fx.contracts.create("user-1", 100, 7)

    linked = fx.contracts.link_deposit(contract.id, "dep-9")

    assert linked.deposit_id == "dep-9"
    assert fx.contracts.get(contract.id).deposit_id == "dep-9"
