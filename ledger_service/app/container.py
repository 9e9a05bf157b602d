"""서비스 조립.

모든 서비스가 같은 KeyedLock 을 공유해야 deposit:/contract: 키 단위 배제가 성립한다.
"""

from __future__ import annotations

from dataclasses import dataclass

from pymongo.database import Database

from common.eventbus.kafka import KafkaEventBus
from common.locks import KeyedLock
from common.types.datetime import resolve_timezone

from .config import AppConfig
from .repositories.checkin_repository import CheckInRepository
from .repositories.contract_repository import ContractRepository
from .repositories.deposit_repository import DepositRepository
from .services.checkin_service import CheckInService
from .services.contract_service import ContractService
from .services.deposit_ledger_service import DepositLedgerService
from .services.notifier import EventBusNotifier
from .services.payment_gateway import HttpPaymentGateway
from .services.penalty_service import PenaltyService
from .services.progress_service import ProgressTrackerService
from .services.settlement_service import SettlementService
from .services.workout_plan import WeeklyWorkoutPlanProvider


@dataclass(slots=True)
class LedgerServices:
    ledger: DepositLedgerService
    contracts: ContractService
    penalties: PenaltyService
    settlement: SettlementService
    tracker: ProgressTrackerService
    check_ins: CheckInService
    gateway: HttpPaymentGateway

    def close(self) -> None:
        self.gateway.close()


def build_services(database: Database, bus: KafkaEventBus, config: AppConfig) -> LedgerServices:
    locks = KeyedLock()
    local_tz = resolve_timezone(config.ledger.local_timezone)

    deposit_repo = DepositRepository(database)
    contract_repo = ContractRepository(database)
    check_in_repo = CheckInRepository(database)

    notifier = EventBusNotifier(bus)
    gateway = HttpPaymentGateway(config.payment_gateway)

    ledger = DepositLedgerService(
        deposit_repo,
        gateway,
        notifier,
        locks=locks,
        expiry_minutes=config.ledger.deposit_expiry_minutes,
    )
    contracts = ContractService(contract_repo, notifier, locks=locks)
    penalties = PenaltyService(contract_repo, ledger, notifier, locks=locks)
    settlement = SettlementService(contract_repo, ledger, notifier, locks=locks)
    tracker = ProgressTrackerService(
        contract_repo,
        check_in_repo,
        WeeklyWorkoutPlanProvider(contract_repo),
        penalties,
        settlement,
        local_tz,
        locks=locks,
    )
    check_ins = CheckInService(check_in_repo, tracker, local_tz)

    return LedgerServices(
        ledger=ledger,
        contracts=contracts,
        penalties=penalties,
        settlement=settlement,
        tracker=tracker,
        check_ins=check_ins,
        gateway=gateway,
    )
