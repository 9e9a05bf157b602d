"""운동 계획 협력자.

계약의 plan_id 와 요일로 그날의 유형(workout / active_recovery / rest)을 정하고,
유형별로 필요한 체크인 종류를 돌려준다.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import StrEnum
from typing import Protocol

from ..exceptions import ContractNotFound
from ..models.checkin import CheckInType
from ..repositories.interfaces import ContractRepositoryInterface


logger = logging.getLogger(__name__)


class DayType(StrEnum):
    WORKOUT = "workout"
    ACTIVE_RECOVERY = "active_recovery"
    REST = "rest"


REQUIRED_CHECK_IN_TYPES: dict[DayType, frozenset[CheckInType]] = {
    DayType.WORKOUT: frozenset({CheckInType.GYM, CheckInType.PROTEIN}),
    DayType.ACTIVE_RECOVERY: frozenset({CheckInType.PROTEIN}),
    DayType.REST: frozenset(),
}

DEFAULT_PLAN_ID = "default-plan"

# 월요일(0) ~ 일요일(6). 가벼운 스트레칭 루틴이 있는 휴식일은 active_recovery 로 본다.
WEEKLY_PLANS: dict[str, tuple[DayType, ...]] = {
    "default-plan": (
        DayType.WORKOUT,
        DayType.WORKOUT,
        DayType.ACTIVE_RECOVERY,
        DayType.WORKOUT,
        DayType.WORKOUT,
        DayType.REST,
        DayType.REST,
    ),
    "weekend-plan": (
        DayType.ACTIVE_RECOVERY,
        DayType.ACTIVE_RECOVERY,
        DayType.REST,
        DayType.ACTIVE_RECOVERY,
        DayType.ACTIVE_RECOVERY,
        DayType.WORKOUT,
        DayType.WORKOUT,
    ),
}


class WorkoutPlanProviderInterface(Protocol):
    def get_required_check_in_types(
        self, contract_id: str, day: date
    ) -> frozenset[CheckInType]:  # pragma: no cover - Protocol
        ...


def day_type_for(plan_id: str, day: date) -> DayType:
    plan = WEEKLY_PLANS.get(plan_id)
    if plan is None:
        logger.warning("unknown workout plan %s, falling back to %s", plan_id, DEFAULT_PLAN_ID)
        plan = WEEKLY_PLANS[DEFAULT_PLAN_ID]
    return plan[day.weekday()]


class WeeklyWorkoutPlanProvider(WorkoutPlanProviderInterface):
    """요일 고정 주간 계획 기반 구현체."""

    def __init__(self, contract_repo: ContractRepositoryInterface) -> None:
        self._contract_repo = contract_repo

    def get_required_check_in_types(
        self, contract_id: str, day: date
    ) -> frozenset[CheckInType]:
        contract = self._contract_repo.find_by_id(contract_id)
        if contract is None:
            raise ContractNotFound(contract_id)
        return REQUIRED_CHECK_IN_TYPES[day_type_for(contract.plan_id, day)]
