from __future__ import annotations


class LedgerError(Exception):
    """Base exception for all ledger-service errors.

    error_code 는 컨트롤러 레이어가 응답 바디에 그대로 싣는 값이고,
    http_status 는 400(검증) / 404(없음) / 409(충돌) 매핑 힌트다.
    """

    error_code = "ledger_error"
    http_status = 400


class InvalidAmount(LedgerError):
    """Amount is zero, negative or otherwise unusable."""

    error_code = "invalid_amount"
    http_status = 400


class InsufficientBalance(LedgerError):
    """Usage would exceed the deposit's available amount."""

    error_code = "insufficient_balance"
    http_status = 409


class AlreadyFinalized(LedgerError):
    """Payment or refund result was already applied (duplicate callback)."""

    error_code = "already_finalized"
    http_status = 409


class NotRefundable(LedgerError):
    """Deposit is not in a state that allows a refund request."""

    error_code = "not_refundable"
    http_status = 400


class ExceedsAvailable(LedgerError):
    """Requested refund is larger than the available amount."""

    error_code = "exceeds_available"
    http_status = 400


class ContractNotActive(LedgerError):
    """Contract is not active, so no penalty can be assessed."""

    error_code = "contract_not_active"
    http_status = 409


class DepositNotFound(LedgerError):
    error_code = "deposit_not_found"
    http_status = 404


class ContractNotFound(LedgerError):
    error_code = "contract_not_found"
    http_status = 404


class CheckInNotFound(LedgerError):
    error_code = "check_in_not_found"
    http_status = 404


class ConcurrentModificationError(LedgerError):
    """Another writer saved the record first (optimistic version check failed)."""

    error_code = "concurrent_modification"
    http_status = 409


class NoDaysRemaining(LedgerError):
    """Every contract day is already counted as completed or violated."""

    error_code = "no_days_remaining"
    http_status = 409
