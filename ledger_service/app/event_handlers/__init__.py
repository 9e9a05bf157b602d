"""이벤트 핸들러 패키지."""

from .payment_handler import run_payment_consumer

__all__ = ["run_payment_consumer"]
