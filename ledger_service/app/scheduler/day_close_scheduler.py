from __future__ import annotations

import logging
import threading

from ..services.contract_service import ContractService
from ..services.progress_service import ProgressTrackerService


logger = logging.getLogger(__name__)


_DAY_CLOSE_THREAD: threading.Thread | None = None
_DAY_CLOSE_STOP_EVENT: threading.Event | None = None


def run_day_close(contracts: ContractService, tracker: ProgressTrackerService) -> int:
    """active 계약 전부를 한 번씩 따라잡아 판정한다. 처리한 날짜 수를 반환한다."""

    evaluated = 0
    for contract in contracts.list_active():
        assert contract.id is not None
        try:
            evaluated += len(tracker.reconcile(contract.id))
        except Exception:  # noqa: BLE001
            logger.exception(
                "day close failed for contract %s",
                contract.id,
                extra={"contract_id": contract.id},
            )
    return evaluated


def _run_scheduler_loop(
    stop_event: threading.Event,
    contracts: ContractService,
    tracker: ProgressTrackerService,
    interval: float,
) -> None:
    logger.info("day-close scheduler thread started (interval=%.0f seconds)", interval)

    try:
        # 최초 실행 후 주기적 실행
        while True:
            logger.info("day close starting")
            try:
                evaluated = run_day_close(contracts, tracker)
                logger.info("day close completed (evaluated_days=%d)", evaluated)
            except Exception:  # noqa: BLE001
                logger.exception("day close failed")
            if stop_event.wait(interval):
                break
    finally:
        logger.info("day-close scheduler thread stopped")


def start_day_close_scheduler(
    contracts: ContractService,
    tracker: ProgressTrackerService,
    interval: float,
) -> None:
    """일 마감(위약 판정/만기 정산) 스케줄러 스레드를 시작한다."""

    global _DAY_CLOSE_THREAD, _DAY_CLOSE_STOP_EVENT

    if _DAY_CLOSE_THREAD and _DAY_CLOSE_THREAD.is_alive():
        return

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, contracts, tracker, interval),
        name="day-close-scheduler",
        daemon=True,
    )

    _DAY_CLOSE_STOP_EVENT = stop_event
    _DAY_CLOSE_THREAD = thread

    thread.start()
    logger.info("day-close scheduler thread launched")


def stop_day_close_scheduler() -> None:
    global _DAY_CLOSE_THREAD, _DAY_CLOSE_STOP_EVENT

    if _DAY_CLOSE_THREAD is None or _DAY_CLOSE_STOP_EVENT is None:
        return

    _DAY_CLOSE_STOP_EVENT.set()
    _DAY_CLOSE_THREAD.join(timeout=10.0)

    _DAY_CLOSE_THREAD = None
    _DAY_CLOSE_STOP_EVENT = None

    logger.info("day-close scheduler thread stopped by shutdown")
