from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from common.locks import KeyedLock
from common.types.datetime import ensure_utc, utcnow

from ..exceptions import ContractNotActive, ContractNotFound, InvalidAmount
from ..models.contract import (
    Contract,
    ContractStatus,
    ContractType,
    split_into_thirds,
)
from ..repositories.interfaces import ContractRepositoryInterface
from .deposit_ledger_service import as_amount
from .notifier import NotificationType, NotifierInterface, safe_notify
from .workout_plan import DEFAULT_PLAN_ID


logger = logging.getLogger(__name__)


def contract_lock_key(contract_id: str) -> str:
    return f"contract:{contract_id}"


class ContractService:
    """계약 생성/활성화/조회.

    벌금 단위(violation_penalty)와 나머지(remainder_amount)는 생성 시점에만 계산한다.
    """

    def __init__(
        self,
        contract_repo: ContractRepositoryInterface,
        notifier: NotifierInterface,
        *,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = contract_repo
        self._notifier = notifier
        self._locks = locks or KeyedLock()
        self._clock = clock

    def create(
        self,
        user_id: str,
        amount: Decimal | int | str,
        days: int,
        contract_type: ContractType | str = ContractType.CUSTOM,
        plan_id: str = DEFAULT_PLAN_ID,
        start_date: datetime | None = None,
        deposit_id: str | None = None,
        display_deposit_id: str | None = None,
    ) -> Contract:
        value = as_amount(amount)
        if value <= 0:
            raise InvalidAmount(f"contract amount must be positive, got {value}")
        if days <= 0:
            raise ValueError(f"contract days must be positive, got {days}")

        now = self._clock()
        start = ensure_utc(start_date) if start_date else now
        penalty, remainder = split_into_thirds(value)
        contract = self._repo.insert(
            Contract(
                user_id=user_id,
                contract_type=ContractType(contract_type),
                plan_id=plan_id,
                amount=value,
                start_date=start,
                end_date=start + timedelta(days=days),
                violation_penalty=penalty,
                remainder_amount=remainder,
                remaining_amount=value,
                deposit_id=deposit_id,
                display_deposit_id=display_deposit_id,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "contract created id=%s user_id=%s amount=%s penalty=%s remainder=%s",
            contract.id,
            user_id,
            value,
            penalty,
            remainder,
            extra={"contract_id": contract.id, "user_id": user_id, "amount": value},
        )
        safe_notify(
            self._notifier,
            user_id,
            NotificationType.CONTRACT_CREATED,
            {"contract_id": contract.id, "amount": value},
        )
        return contract

    def get(self, contract_id: str) -> Contract:
        contract = self._repo.find_by_id(contract_id)
        if contract is None:
            raise ContractNotFound(contract_id)
        return contract

    def list_active(self) -> list[Contract]:
        return self._repo.list_by_status(ContractStatus.ACTIVE)

    def link_deposit(self, contract_id: str, deposit_id: str) -> Contract:
        with self._locks.hold(contract_lock_key(contract_id)):
            contract = self.get(contract_id)
            if contract.deposit_id == deposit_id:
                return contract
            if contract.is_terminal:
                raise ContractNotActive(
                    f"contract {contract_id} is {contract.status}, cannot link a deposit"
                )
            saved = self._repo.save(
                contract.model_copy(
                    update={"deposit_id": deposit_id, "updated_at": self._clock()}
                )
            )
        logger.info(
            "deposit %s linked to contract %s",
            deposit_id,
            contract_id,
            extra={"contract_id": contract_id, "deposit_id": deposit_id},
        )
        return saved

    def activate(self, contract_id: str) -> Contract:
        """pending -> active. 이미 active 면 그대로 돌려준다."""

        with self._locks.hold(contract_lock_key(contract_id)):
            contract = self.get(contract_id)
            if contract.status == ContractStatus.ACTIVE:
                return contract
            if contract.status != ContractStatus.PENDING:
                raise ContractNotActive(
                    f"contract {contract_id} is {contract.status}, cannot activate"
                )
            saved = self._repo.save(
                contract.model_copy(
                    update={"status": ContractStatus.ACTIVE, "updated_at": self._clock()}
                )
            )
        logger.info("contract activated id=%s", contract_id, extra={"contract_id": contract_id})
        return saved
