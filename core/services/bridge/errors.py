"""
Bridge errors

Validation and quote-time errors are raised synchronously to callers.
Once a ledger row exists, outcomes are only reported through the row
(GetStatus), never raised.
"""
from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge orchestrator errors"""

    code = "bridge_error"

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidAddress(BridgeError):
    """Recipient or refund address failed format validation"""

    code = "invalid_address"

    def __init__(self, message: str, *, address: Optional[str] = None, role: str = "recipient"):
        super().__init__(message, details={"role": role})
        self.address = address
        self.role = role


class InvalidAmount(BridgeError):
    code = "invalid_amount"


class QuoteUnavailable(BridgeError):
    """Settlement network could not price the request (down, rate-limited, out of bounds)"""

    code = "quote_unavailable"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message, details={"status_code": status_code} if status_code else None)
        self.status_code = status_code


class QuoteExpired(BridgeError):
    code = "quote_expired"


class IdempotencyConflict(BridgeError):
    """Idempotency key reused with different request parameters"""

    code = "idempotency_conflict"


class LedgerWriteFailed(BridgeError):
    """
    Persisting the ledger row failed after the remote intent was created

    The caller must retry execute with the same idempotency key.
    """

    code = "ledger_write_failed"

    def __init__(self, message: str, *, deposit_address: Optional[str] = None):
        super().__init__(message, details={"deposit_address": deposit_address} if deposit_address else None)
        self.deposit_address = deposit_address


class BridgeNotFound(BridgeError):
    code = "bridge_not_found"


class SettlementAPIError(BridgeError):
    """Transport-level failure talking to the settlement network (retried by pollers)"""

    code = "settlement_api_error"


class SourceChainError(BridgeError):
    """Transport-level failure talking to the source chain RPC (retried by pollers)"""

    code = "source_chain_error"
