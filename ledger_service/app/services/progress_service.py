"""계약 진행 추적.

하루 단위로 필요한 체크인(운동 계획 기준)과 승인된 체크인을 비교해
completed / violated / pending / neutral 을 판정한다. 날짜는 설정된 로컬 타임존 기준이다.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, tzinfo

from common.locks import KeyedLock
from common.types.datetime import local_day_bounds, to_local_date, utcnow

from ..exceptions import ContractNotFound
from ..models.checkin import CheckInStatus, CheckInType
from ..models.contract import Contract, ContractStatus, DayOutcome
from ..repositories.interfaces import (
    CheckInRepositoryInterface,
    ContractRepositoryInterface,
)
from .contract_service import contract_lock_key
from .penalty_service import PenaltyService
from .settlement_service import SettlementService
from .workout_plan import WorkoutPlanProviderInterface


logger = logging.getLogger(__name__)


def contract_window(contract: Contract, tz: tzinfo) -> tuple[date, date]:
    """계약이 다루는 로컬 날짜 구간 [first, end). end 는 포함하지 않는다."""

    return to_local_date(contract.start_date, tz), to_local_date(contract.end_date, tz)


def total_contract_days(contract: Contract, tz: tzinfo) -> int:
    first, end = contract_window(contract, tz)
    return max(0, (end - first).days)


class ProgressTrackerService:
    def __init__(
        self,
        contract_repo: ContractRepositoryInterface,
        check_in_repo: CheckInRepositoryInterface,
        plan_provider: WorkoutPlanProviderInterface,
        penalty_service: PenaltyService,
        settlement_service: SettlementService,
        local_tz: tzinfo,
        *,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._contracts = contract_repo
        self._check_ins = check_in_repo
        self._plans = plan_provider
        self._penalties = penalty_service
        self._settlement = settlement_service
        self._tz = local_tz
        self._locks = locks or KeyedLock()
        self._clock = clock

    def evaluate_day(
        self, contract_id: str, day: date, now: datetime | None = None
    ) -> DayOutcome:
        """하루를 판정한다.

        이미 반영된 날짜(counted / penalized)는 기록된 결과를 그대로 돌려주고 아무것도
        바꾸지 않는다. active 가 아닌 계약과 계약 기간 밖의 날짜는 neutral 이다.
        """

        now = now or self._clock()
        with self._locks.hold(contract_lock_key(contract_id)):
            contract = self._load(contract_id)
            if contract.status != ContractStatus.ACTIVE:
                return DayOutcome.NEUTRAL

            recorded = contract.recorded_outcome(day)
            if recorded is not None:
                return recorded

            first, end = contract_window(contract, self._tz)
            if not first <= day < end:
                return DayOutcome.NEUTRAL

            required = self._plans.get_required_check_in_types(contract_id, day)
            if not required:
                return DayOutcome.NEUTRAL

            if required <= self._approved_types(contract_id, day):
                self._contracts.save(
                    contract.model_copy(
                        update={
                            "completed_days": contract.completed_days + 1,
                            "counted_dates": [*contract.counted_dates, day],
                            "updated_at": now,
                        }
                    )
                )
                logger.info(
                    "contract %s day %s completed",
                    contract_id,
                    day,
                    extra={"contract_id": contract_id, "outcome": str(DayOutcome.COMPLETED)},
                )
                return DayOutcome.COMPLETED

            if day >= to_local_date(now, self._tz):
                return DayOutcome.PENDING

            result = self._penalties.apply_violation(contract_id, day=day, notify=False)

        self._penalties.notify_violation(contract.user_id, result)
        if result.exhausted:
            logger.warning(
                "contract %s forfeitable deposit exhausted, settling as failed",
                contract_id,
                extra={"contract_id": contract_id},
            )
            self._settlement.settle(contract_id, ContractStatus.FAILED)
        return DayOutcome.VIOLATED

    def reconcile(
        self, contract_id: str, now: datetime | None = None
    ) -> list[tuple[date, DayOutcome]]:
        """시작일부터 오늘까지 아직 반영되지 않은 날짜를 차례로 판정한다.

        재시작이나 다음 로그인 때의 따라잡기 용도다. 계약 종료일이 지났고 아직
        active 라면 completed 로 정산한다.
        """

        now = now or self._clock()
        contract = self._load(contract_id)
        if contract.status != ContractStatus.ACTIVE:
            return []

        today = to_local_date(now, self._tz)
        first, end = contract_window(contract, self._tz)
        last = min(today, end - timedelta(days=1))

        outcomes: list[tuple[date, DayOutcome]] = []
        day = first
        while day <= last:
            if contract.recorded_outcome(day) is None:
                outcome = self.evaluate_day(contract_id, day, now)
                outcomes.append((day, outcome))
                if outcome == DayOutcome.VIOLATED:
                    contract = self._load(contract_id)
                    if contract.status != ContractStatus.ACTIVE:
                        return outcomes
            day += timedelta(days=1)

        if today >= end and self._load(contract_id).status == ContractStatus.ACTIVE:
            self._settlement.settle(contract_id, ContractStatus.COMPLETED)
        return outcomes

    def _load(self, contract_id: str) -> Contract:
        contract = self._contracts.find_by_id(contract_id)
        if contract is None:
            raise ContractNotFound(contract_id)
        return contract

    def _approved_types(self, contract_id: str, day: date) -> set[CheckInType]:
        start, end = local_day_bounds(day, self._tz)
        return {
            check_in.type
            for check_in in self._check_ins.list_for_contract_between(contract_id, start, end)
            if check_in.status == CheckInStatus.APPROVED
        }
