from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from common.locks import KeyedLock
from common.types.datetime import utcnow
from common.types.money import ZERO

from ..exceptions import (
    ContractNotFound,
    DepositNotFound,
    ExceedsAvailable,
    InvalidAmount,
    NotRefundable,
)
from ..models.contract import (
    TERMINAL_CONTRACT_STATUSES,
    Contract,
    ContractStatus,
    SettlementResult,
)
from ..repositories.interfaces import ContractRepositoryInterface
from .contract_service import contract_lock_key
from .deposit_ledger_service import DepositLedgerService
from .notifier import NotificationType, NotifierInterface, safe_notify


logger = logging.getLogger(__name__)

REFUND_REASON = "契约完成退还保证金"

_NOTIFICATION_BY_STATUS = {
    ContractStatus.COMPLETED: NotificationType.CONTRACT_COMPLETED,
    ContractStatus.FAILED: NotificationType.CONTRACT_FAILED,
    ContractStatus.CANCELLED: NotificationType.CONTRACT_CANCELLED,
}


class SettlementService:
    """계약 종료 처리.

    completed 로 끝나면 연결된 보증금의 가용 금액 전부(나머지 포함)를 환불 요청한다.
    failed / cancelled 는 상태만 바꾸고, 남은 금액은 사용자가 직접 환불을 요청한다.
    """

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

    def settle(
        self, contract_id: str, final_status: ContractStatus | str
    ) -> SettlementResult:
        status = ContractStatus(final_status)
        if status not in TERMINAL_CONTRACT_STATUSES:
            raise ValueError(f"{status} is not a terminal contract status")

        refund_id: str | None = None
        with self._locks.hold(contract_lock_key(contract_id)):
            contract = self._repo.find_by_id(contract_id)
            if contract is None:
                raise ContractNotFound(contract_id)
            if contract.is_terminal:
                logger.info(
                    "contract %s already settled as %s",
                    contract_id,
                    contract.status,
                    extra={"contract_id": contract_id},
                )
                return _stored_result(contract)

            refund_amount = ZERO
            if status == ContractStatus.COMPLETED:
                refund_amount, refund_id = self._request_refund(contract)

            now = self._clock()
            saved = self._repo.save(
                contract.model_copy(
                    update={
                        "status": status,
                        "settled_at": now,
                        "refund_requested_amount": refund_amount,
                        "updated_at": now,
                    }
                )
            )

        # 환불 제출/알림은 계약 락 밖에서 한다.
        if refund_id is not None and saved.deposit_id is not None:
            self._ledger.dispatch_refund(saved.deposit_id)

        logger.info(
            "contract settled id=%s status=%s refund=%s",
            contract_id,
            status,
            refund_amount,
            extra={"contract_id": contract_id, "user_id": saved.user_id, "amount": refund_amount},
        )
        safe_notify(
            self._notifier,
            saved.user_id,
            _NOTIFICATION_BY_STATUS[status],
            {
                "contract_id": contract_id,
                "refund_amount": refund_amount,
                "remaining": saved.remaining_amount,
            },
        )
        return SettlementResult(
            contract_id=contract_id,
            status=status,
            refund_amount=refund_amount,
            refund_id=refund_id,
        )

    def _request_refund(self, contract: Contract) -> tuple[Decimal, str | None]:
        """(환불 요청 금액, refund_id). 환불할 수 없으면 (0, None) 이고 계약은 그대로 종료된다."""

        if contract.deposit_id is None:
            logger.warning(
                "contract %s completed without a linked deposit",
                contract.id,
                extra={"contract_id": contract.id},
            )
            return ZERO, None

        try:
            deposit = self._ledger.request_refund(
                contract.deposit_id, reason=REFUND_REASON, dispatch=False
            )
        except (NotRefundable, ExceedsAvailable, InvalidAmount, DepositNotFound) as exc:
            logger.warning(
                "contract %s completed but deposit %s was not refunded: %s",
                contract.id,
                contract.deposit_id,
                exc,
                extra={"contract_id": contract.id, "deposit_id": contract.deposit_id},
            )
            return ZERO, None

        info = deposit.refund_info
        assert info is not None
        if info.refund_amount < contract.remainder_amount:
            logger.warning(
                "refund %s for contract %s is below its remainder %s",
                info.refund_amount,
                contract.id,
                contract.remainder_amount,
                extra={"contract_id": contract.id},
            )
        return info.refund_amount, info.refund_id


def _stored_result(contract: Contract) -> SettlementResult:
    return SettlementResult(
        contract_id=contract.id or "",
        status=contract.status,
        refund_amount=contract.refund_requested_amount or ZERO,
        changed=False,
    )
