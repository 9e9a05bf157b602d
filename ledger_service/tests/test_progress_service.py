from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from fakes import MONDAY, SHANGHAI, active_contract, approve, build_fixture

from ledger_service.app.models.checkin import CheckInStatus, CheckInType
from ledger_service.app.models.contract import ContractStatus, DayOutcome
from ledger_service.app.models.deposit import RefundStatus
from ledger_service.app.services.notifier import NotificationType
from ledger_service.app.services.progress_service import total_contract_days


# 로컬(상하이) 월요일 오전 10시
MONDAY_MORNING_UTC = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)

TUESDAY = MONDAY + timedelta(days=1)
SATURDAY = MONDAY + timedelta(days=5)


def _day_at(offset_days: int) -> datetime:
    return MONDAY_MORNING_UTC + timedelta(days=offset_days)


def test_workout_day_with_only_gym_is_violated_once() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    approve(fx, contract, CheckInType.GYM, MONDAY_MORNING_UTC)
    fx.clock.advance(days=1)

    first = fx.tracker.evaluate_day(contract.id, MONDAY)
    second = fx.tracker.evaluate_day(contract.id, MONDAY)

    assert first == DayOutcome.VIOLATED
    assert second == DayOutcome.VIOLATED
    stored = fx.contracts.get(contract.id)
    assert stored.violation_days == 1
    assert stored.accumulated_penalty == Decimal("33")
    assert len(fx.ledger.get(contract.deposit_id).usage_history) == 1


def test_workout_day_with_all_required_check_ins_is_completed_once() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    approve(fx, contract, CheckInType.GYM, MONDAY_MORNING_UTC)
    approve(fx, contract, CheckInType.PROTEIN, MONDAY_MORNING_UTC + timedelta(hours=1))

    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.COMPLETED
    fx.clock.advance(days=1)
    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.COMPLETED

    stored = fx.contracts.get(contract.id)
    assert stored.completed_days == 1
    assert stored.counted_dates == [MONDAY]
    assert stored.violation_days == 0


def test_rejected_check_ins_do_not_count() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    approve(fx, contract, CheckInType.GYM, MONDAY_MORNING_UTC)
    fx.check_ins.record(
        contract.user_id,
        contract.id,
        CheckInType.PROTEIN,
        timestamp=MONDAY_MORNING_UTC,
        status=CheckInStatus.REJECTED,
    )
    fx.clock.advance(days=1)

    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.VIOLATED


def test_violation_is_notified_after_the_contract_lock_is_released() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    held_keys: list[int] = []
    record_call = fx.notifier.notify

    def _notify(user_id, notification_type, data):  # type: ignore[no-untyped-def]
        held_keys.append(fx.locks.active_keys())
        record_call(user_id, notification_type, data)

    fx.notifier.notify = _notify  # type: ignore[method-assign]
    fx.clock.advance(days=1)

    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.VIOLATED
    assert fx.notifier.types()[-1] == NotificationType.CONTRACT_VIOLATION
    assert held_keys == [0]


def test_today_incomplete_is_pending() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    approve(fx, contract, CheckInType.GYM, MONDAY_MORNING_UTC)

    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.PENDING
    assert fx.contracts.get(contract.id).violation_days == 0


def test_rest_day_is_neutral() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.clock.advance(days=6)

    assert fx.tracker.evaluate_day(contract.id, SATURDAY) == DayOutcome.NEUTRAL
    stored = fx.contracts.get(contract.id)
    assert stored.completed_days == 0
    assert stored.violation_days == 0


def test_active_recovery_day_needs_only_protein() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    approve(fx, contract, CheckInType.PROTEIN, _day_at(2))

    assert fx.tracker.evaluate_day(contract.id, MONDAY + timedelta(days=2)) == DayOutcome.COMPLETED


def test_weekend_plan_uses_its_own_schedule() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100, plan_id="weekend-plan")
    approve(fx, contract, CheckInType.PROTEIN, MONDAY_MORNING_UTC)

    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.COMPLETED


def test_days_outside_the_window_are_neutral() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.clock.advance(days=10)

    assert fx.tracker.evaluate_day(contract.id, MONDAY - timedelta(days=1)) == DayOutcome.NEUTRAL
    assert fx.tracker.evaluate_day(contract.id, MONDAY + timedelta(days=7)) == DayOutcome.NEUTRAL


def test_non_active_contract_is_neutral() -> None:
    fx = build_fixture()
    contract = fx.contracts.create("user-1", 100, 7, start_date=fx.clock())
    fx.clock.advance(days=1)

    assert fx.tracker.evaluate_day(contract.id, MONDAY) == DayOutcome.NEUTRAL


def test_total_contract_days_counts_local_dates() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100, days=30)

    assert total_contract_days(contract, SHANGHAI) == 30


def test_reconcile_catches_up_and_fails_exhausted_contract() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    fx.clock.advance(days=3)

    outcomes = fx.tracker.reconcile(contract.id)

    assert outcomes == [
        (MONDAY, DayOutcome.VIOLATED),
        (TUESDAY, DayOutcome.VIOLATED),
        (MONDAY + timedelta(days=2), DayOutcome.VIOLATED),
    ]
    stored = fx.contracts.get(contract.id)
    assert stored.status == ContractStatus.FAILED
    assert stored.remaining_amount == Decimal("1")
    assert NotificationType.CONTRACT_FAILED in fx.notifier.types()
    assert fx.ledger.get(contract.deposit_id).refund_info is None

    assert fx.tracker.reconcile(contract.id) == []


def test_reconcile_is_idempotent_for_recorded_days() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    approve(fx, contract, CheckInType.GYM, MONDAY_MORNING_UTC)
    approve(fx, contract, CheckInType.PROTEIN, MONDAY_MORNING_UTC)
    fx.clock.advance(days=1)

    first = fx.tracker.reconcile(contract.id)
    second = fx.tracker.reconcile(contract.id)

    assert first == [(MONDAY, DayOutcome.COMPLETED), (TUESDAY, DayOutcome.PENDING)]
    assert second == [(TUESDAY, DayOutcome.PENDING)]
    assert fx.contracts.get(contract.id).completed_days == 1


def test_reconcile_after_end_date_settles_completed_and_refunds() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    for offset in (0, 1, 3, 4):
        approve(fx, contract, CheckInType.GYM, _day_at(offset))
        approve(fx, contract, CheckInType.PROTEIN, _day_at(offset))
    approve(fx, contract, CheckInType.PROTEIN, _day_at(2))
    fx.clock.advance(days=7)

    outcomes = fx.tracker.reconcile(contract.id)

    assert [o for _, o in outcomes].count(DayOutcome.COMPLETED) == 5
    assert [o for _, o in outcomes].count(DayOutcome.NEUTRAL) == 2
    stored = fx.contracts.get(contract.id)
    assert stored.status == ContractStatus.COMPLETED
    assert stored.completed_days == 5
    assert stored.refund_requested_amount == Decimal("100")

    deposit = fx.ledger.get(contract.deposit_id)
    assert deposit.refund_info.refund_amount == Decimal("100")
    assert deposit.refund_info.refund_status == RefundStatus.PROCESSING


def test_check_in_review_triggers_evaluation() -> None:
    fx = build_fixture()
    contract = active_contract(fx, 100)
    gym = fx.check_ins.record(contract.user_id, contract.id, "gym", timestamp=MONDAY_MORNING_UTC)
    protein = fx.check_ins.record(
        contract.user_id, contract.id, "protein", timestamp=MONDAY_MORNING_UTC
    )

    fx.check_ins.review(gym.id, "approved")
    assert fx.contracts.get(contract.id).completed_days == 0

    fx.check_ins.review(protein.id, "approved")
    assert fx.contracts.get(contract.id).completed_days == 1
