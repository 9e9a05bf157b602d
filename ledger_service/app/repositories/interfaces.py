from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.checkin import CheckIn, CheckInStatus
from ..models.contract import Contract, ContractStatus
from ..models.deposit import DepositRecord, PaymentStatus


class DepositRepositoryInterface(Protocol):
    """DepositRepository가 따라야 할 최소한의 계약.

    - save 는 record.version 이 저장소의 값과 같을 때만 덮어쓰고(compare-and-swap),
      저장된 레코드를 version + 1 로 돌려준다. 다르면 ConcurrentModificationError.
    """

    def insert(
        self, record: DepositRecord
    ) -> DepositRecord:  # pragma: no cover - Protocol
        ...

    def find_by_id(
        self, deposit_id: str
    ) -> DepositRecord | None:  # pragma: no cover - Protocol
        ...

    def save(
        self, record: DepositRecord
    ) -> DepositRecord:  # pragma: no cover - Protocol
        ...

    def list_by_user(
        self,
        user_id: str,
        *,
        payment_status: PaymentStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DepositRecord], int]:  # pragma: no cover - Protocol
        """created_at 내림차순 페이지와 전체 건수를 반환한다."""
        ...

    def list_all_by_user(
        self, user_id: str
    ) -> list[DepositRecord]:  # pragma: no cover - Protocol
        ...


class ContractRepositoryInterface(Protocol):
    """ContractRepository가 따라야 할 최소한의 계약. save 의미는 DepositRepository 와 같다."""

    def insert(self, contract: Contract) -> Contract:  # pragma: no cover - Protocol
        ...

    def find_by_id(
        self, contract_id: str
    ) -> Contract | None:  # pragma: no cover - Protocol
        ...

    def save(self, contract: Contract) -> Contract:  # pragma: no cover - Protocol
        ...

    def list_by_status(
        self, status: ContractStatus
    ) -> list[Contract]:  # pragma: no cover - Protocol
        ...


class CheckInRepositoryInterface(Protocol):
    def insert(self, check_in: CheckIn) -> CheckIn:  # pragma: no cover - Protocol
        ...

    def find_by_id(
        self, check_in_id: str
    ) -> CheckIn | None:  # pragma: no cover - Protocol
        ...

    def update_status(
        self, check_in_id: str, status: CheckInStatus
    ) -> CheckIn | None:  # pragma: no cover - Protocol
        ...

    def list_for_contract_between(
        self, contract_id: str, start: datetime, end: datetime
    ) -> list[CheckIn]:  # pragma: no cover - Protocol
        """timestamp 가 [start, end) 에 속하는 체크인 목록."""
        ...
