from __future__ import annotations

import logging
import signal

from common.eventbus.config import get_brokers
from common.eventbus.kafka import get_kafka_event_bus
from common.logger import setup_logger
from common.mongo.client import get_database

from .config import load_config
from .container import build_services
from .event_handlers import run_payment_consumer
from .scheduler.day_close_scheduler import (
    start_day_close_scheduler,
    stop_day_close_scheduler,
)


logger = logging.getLogger(__name__)


def main() -> None:
    setup_logger("ledger-service")
    logger.info("ledger-service starting up")

    app_cfg = load_config()
    db = get_database()
    bus = get_kafka_event_bus(get_brokers())
    services = build_services(db, bus, app_cfg)

    stop_flag = [False]

    def _signal_handler(signum, frame) -> None:  # type: ignore[unused-argument]
        logger.info("received signal %s, shutting down ledger-service...", signum)
        stop_flag[0] = True

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    start_day_close_scheduler(
        services.contracts,
        services.tracker,
        app_cfg.ledger.day_close_interval_seconds,
    )
    try:
        run_payment_consumer(stop_flag, services.ledger, services.contracts)
    finally:
        stop_day_close_scheduler()
        services.close()
        bus.close()
        logger.info("ledger-service stopped")


if __name__ == "__main__":  # pragma: no cover
    main()
