"""위약(미달성) 1회에 대한 벌금 처리.

벌금 = 계약 금액 // 3 (생성 시 고정). 나머지(remainder)는 벌금으로 떼어가지 않는다.
계약 락 안에서 보증금 장부에 사용 이력을 남기고 계약 집계를 갱신한다.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

from common.locks import KeyedLock
from common.types.datetime import utcnow
from common.types.money import ZERO

from ..exceptions import (
    ContractNotActive,
    ContractNotFound,
    InsufficientBalance,
    NoDaysRemaining,
)
from ..models.contract import Contract, ContractStatus, ViolationResult
from ..models.deposit import UsageReason
from ..repositories.interfaces import ContractRepositoryInterface
from .contract_service import contract_lock_key
from .deposit_ledger_service import DepositLedgerService
from .notifier import NotificationType, NotifierInterface, safe_notify


logger = logging.getLogger(__name__)

# 장부 캡 재시도 횟수. 동시에 다른 사용 이력이 들어와 가용액이 다시 줄어든 경우에만 반복된다.
MAX_CAP_ATTEMPTS = 3


class PenaltyService:
    def __init__(
        self,
        contract_repo: ContractRepositoryInterface,
        ledger: DepositLedgerService,
        notifier: NotifierInterface,
        *,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = contract_repo
        self._ledger = ledger
        self._notifier = notifier
        self._locks = locks or KeyedLock()
        self._clock = clock

    def apply_violation(
        self, contract_id: str, day: date | None = None, *, notify: bool = True
    ) -> ViolationResult:
        """위약 1회를 반영한다.

        day 가 주어지면 penalized_dates 에 같은 저장으로 기록한다. 이미 기록된 날짜는
        아무것도 바꾸지 않고 벌금 0 으로 돌려준다. 장부 차감은 (계약, 날짜) 키로
        한 번만 기록되므로 계약 저장이 실패한 뒤 재시도해도 두 번 떼어가지 않는다.

        계약 락을 쥔 채로 호출하는 쪽은 notify=False 로 부르고 락을 놓은 뒤
        notify_violation 을 호출한다.
        """

        with self._locks.hold(contract_lock_key(contract_id)):
            contract = self._repo.find_by_id(contract_id)
            if contract is None:
                raise ContractNotFound(contract_id)
            if contract.status != ContractStatus.ACTIVE:
                raise ContractNotActive(
                    f"contract {contract_id} is {contract.status}, cannot apply a violation"
                )
            if day is not None and day in contract.penalized_dates:
                return ViolationResult(
                    contract_id=contract_id,
                    penalty_amount=ZERO,
                    remaining_amount=contract.remaining_amount,
                    exhausted=self._is_exhausted(contract),
                )
            if contract.accounted_days >= contract.duration_days:
                raise NoDaysRemaining(
                    f"contract {contract_id} already accounted all "
                    f"{contract.duration_days} days"
                )

            penalty = min(contract.violation_penalty, contract.forfeitable_budget)
            applied = self._withdraw(contract, penalty, day)
            partial = applied < contract.violation_penalty
            if partial:
                logger.warning(
                    "partial penalty on contract %s: applied %s of %s",
                    contract_id,
                    applied,
                    contract.violation_penalty,
                    extra={"contract_id": contract_id, "amount": applied},
                )

            accumulated = contract.accumulated_penalty + applied
            update: dict = {
                "violation_days": contract.violation_days + 1,
                "accumulated_penalty": accumulated,
                "remaining_amount": max(ZERO, contract.amount - accumulated),
                "updated_at": self._clock(),
            }
            if day is not None:
                update["penalized_dates"] = [*contract.penalized_dates, day]
            saved = self._repo.save(contract.model_copy(update=update))

        result = ViolationResult(
            contract_id=contract_id,
            penalty_amount=applied,
            remaining_amount=saved.remaining_amount,
            partial=partial,
            exhausted=self._is_exhausted(saved),
        )
        logger.info(
            "violation applied contract=%s day=%s penalty=%s remaining=%s",
            contract_id,
            day,
            applied,
            saved.remaining_amount,
            extra={"contract_id": contract_id, "user_id": saved.user_id, "amount": applied},
        )
        if notify:
            self.notify_violation(saved.user_id, result)
        return result

    def notify_violation(self, user_id: str, result: ViolationResult) -> None:
        safe_notify(
            self._notifier,
            user_id,
            NotificationType.CONTRACT_VIOLATION,
            {
                "contract_id": result.contract_id,
                "penalty": result.penalty_amount,
                "remaining": result.remaining_amount,
            },
        )

    def _withdraw(self, contract: Contract, penalty: Decimal, day: date | None) -> Decimal:
        """장부에 벌금을 기록하고 실제로 떼어간 금액을 돌려준다."""

        if penalty <= 0:
            return ZERO
        if contract.deposit_id is None:
            logger.warning(
                "contract %s has no linked deposit, violation recorded without penalty",
                contract.id,
                extra={"contract_id": contract.id},
            )
            return ZERO

        description = f"契约违约扣款 {day.isoformat()}" if day else "契约违约扣款"
        usage_key = f"{contract.id}:{day.isoformat()}" if day else None
        amount = penalty
        for _ in range(MAX_CAP_ATTEMPTS):
            try:
                record = self._ledger.record_usage(
                    contract.deposit_id,
                    amount,
                    contract.id,
                    UsageReason.PENALTY,
                    description,
                    usage_key=usage_key,
                )
            except InsufficientBalance:
                deposit = self._ledger.get(contract.deposit_id)
                available = deposit.available_amount if deposit.is_spendable else ZERO
                amount = min(amount, available)
                if amount <= 0:
                    return ZERO
                continue
            if usage_key is not None:
                entry = record.find_usage(usage_key)
                if entry is not None:
                    return entry.used_amount
            return amount
        logger.error(
            "could not apply penalty to deposit %s after %d attempts",
            contract.deposit_id,
            MAX_CAP_ATTEMPTS,
            extra={"contract_id": contract.id, "deposit_id": contract.deposit_id},
        )
        return ZERO

    @staticmethod
    def _is_exhausted(contract: Contract) -> bool:
        return contract.violation_penalty > 0 and contract.forfeitable_budget == 0
