from __future__ import annotations

import os
from dataclasses import dataclass


PAYMENT_GATEWAY_BASE_URL = "PAYMENT_GATEWAY_BASE_URL"
PAYMENT_GATEWAY_TIMEOUT_SECONDS = "PAYMENT_GATEWAY_TIMEOUT_SECONDS"
LEDGER_LOCAL_TIMEZONE = "LEDGER_LOCAL_TIMEZONE"
LEDGER_DEPOSIT_EXPIRY_MINUTES = "LEDGER_DEPOSIT_EXPIRY_MINUTES"
LEDGER_DAY_CLOSE_INTERVAL_SECONDS = "LEDGER_DAY_CLOSE_INTERVAL_SECONDS"


@dataclass(slots=True)
class PaymentGatewayConfig:
    """결제 게이트웨이 HTTP 클라이언트 설정."""

    base_url: str
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class LedgerConfig:
    """장부 동작 설정."""

    local_timezone: str = "Asia/Shanghai"
    deposit_expiry_minutes: int = 30
    day_close_interval_seconds: float = 15.0 * 60.0


@dataclass(slots=True)
class AppConfig:
    """ledger-service 전체 설정."""

    payment_gateway: PaymentGatewayConfig
    ledger: LedgerConfig


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer if set, got: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got: {value}")
    return value


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number if set, got: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got: {value}")
    return value


def load_payment_gateway_config() -> PaymentGatewayConfig:
    base_url = os.getenv(PAYMENT_GATEWAY_BASE_URL)
    if not base_url:
        raise RuntimeError(
            f"{PAYMENT_GATEWAY_BASE_URL} environment variable is required for ledger-service",
        )
    return PaymentGatewayConfig(
        base_url=base_url.rstrip("/"),
        timeout_seconds=_read_float(PAYMENT_GATEWAY_TIMEOUT_SECONDS, 10.0),
    )


def load_ledger_config() -> LedgerConfig:
    return LedgerConfig(
        local_timezone=os.getenv(LEDGER_LOCAL_TIMEZONE) or "Asia/Shanghai",
        deposit_expiry_minutes=_read_int(LEDGER_DEPOSIT_EXPIRY_MINUTES, 30),
        day_close_interval_seconds=_read_float(
            LEDGER_DAY_CLOSE_INTERVAL_SECONDS, 15.0 * 60.0
        ),
    )


def load_config() -> AppConfig:
    """ledger-service 설정을 로드하여 AppConfig로 반환한다."""

    return AppConfig(
        payment_gateway=load_payment_gateway_config(),
        ledger=load_ledger_config(),
    )
