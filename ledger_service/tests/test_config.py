from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from common.types.datetime import local_day_bounds, resolve_timezone, to_local_date
from ledger_service.app.config import load_config, load_ledger_config


def test_load_config_requires_gateway_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PAYMENT_GATEWAY_BASE_URL", raising=False)

    with pytest.raises(RuntimeError):
        load_config()


def test_load_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAYMENT_GATEWAY_BASE_URL", "http://payments.internal/")
    monkeypatch.setenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "3.5")
    monkeypatch.setenv("LEDGER_LOCAL_TIMEZONE", "UTC")
    monkeypatch.setenv("LEDGER_DEPOSIT_EXPIRY_MINUTES", "15")

    cfg = load_config()

    assert cfg.payment_gateway.base_url == "http://payments.internal"
    assert cfg.payment_gateway.timeout_seconds == 3.5
    assert cfg.ledger.local_timezone == "UTC"
    assert cfg.ledger.deposit_expiry_minutes == 15


def test_ledger_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LEDGER_LOCAL_TIMEZONE",
        "LEDGER_DEPOSIT_EXPIRY_MINUTES",
        "LEDGER_DAY_CLOSE_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = load_ledger_config()

    assert cfg.local_timezone == "Asia/Shanghai"
    assert cfg.deposit_expiry_minutes == 30
    assert cfg.day_close_interval_seconds == 900.0


def test_malformed_integer_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_DEPOSIT_EXPIRY_MINUTES", "soon")

    with pytest.raises(RuntimeError):
        load_ledger_config()


def test_local_day_follows_configured_timezone() -> None:
    tz = resolve_timezone("Asia/Shanghai")
    late_utc = datetime(2026, 3, 1, 17, 0, tzinfo=timezone.utc)

    assert to_local_date(late_utc, tz) == date(2026, 3, 2)
    assert to_local_date(late_utc, resolve_timezone("UTC")) == date(2026, 3, 1)

    start, end = local_day_bounds(date(2026, 3, 2), tz)
    assert start == datetime(2026, 3, 1, 16, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc)
