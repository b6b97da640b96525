"""
Bridge Models
Status enum and request/response models for the bridge orchestrator
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Inclusive upper bound for uint64 amounts on the wire
MAX_UINT64 = 2 ** 64 - 1


class BridgeStatus(str, Enum):
    """Ledger status of a bridge attempt"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({BridgeStatus.SUCCESS, BridgeStatus.FAILED, BridgeStatus.REFUNDED})
ACTIVE_STATUSES = frozenset({BridgeStatus.PENDING, BridgeStatus.PROCESSING})

# Allowed forward moves; terminal states have none
ALLOWED_TRANSITIONS = {
    BridgeStatus.PENDING: frozenset({BridgeStatus.PROCESSING, BridgeStatus.FAILED}),
    BridgeStatus.PROCESSING: frozenset({BridgeStatus.SUCCESS, BridgeStatus.FAILED, BridgeStatus.REFUNDED}),
    BridgeStatus.SUCCESS: frozenset(),
    BridgeStatus.FAILED: frozenset(),
    BridgeStatus.REFUNDED: frozenset(),
}


def can_transition(current: BridgeStatus, target: BridgeStatus) -> bool:
    """Check whether current -> target is a legal ledger transition"""
    return target in ALLOWED_TRANSITIONS[BridgeStatus(current)]


class AttentionReason(str, Enum):
    """Why a row was flagged for an operator"""
    RECONCILE_BUDGET_EXHAUSTED = "reconcile budget exhausted"
    REFUND_FAILED = "refund failed"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Quote(BaseModel):
    """Indicative quote returned by the QuoteEngine"""
    amount_in_units: int
    amount_out_estimate_units: int
    deposit_address: str  # one-time and provisional; execute allocates a fresh one
    time_estimate_minutes: int
    deadline: Optional[datetime] = None


class QuoteRequest(BaseModel):
    amount_in_units: int  # range checked by the service (InvalidAmount)
    recipient_address: str
    refund_address: Optional[str] = None


class ExecuteRequest(BaseModel):
    amount_in_units: int
    recipient_address: str
    refund_address: str
    user_id: str = Field(..., min_length=1, max_length=64)
    idempotency_key: Optional[str] = Field(None, max_length=128)


class ExecuteResponse(BaseModel):
    bridge_id: str
    deposit_address: str
    status: BridgeStatus
    expected_destination_units: Optional[int] = None


class StatusRequest(BaseModel):
    deposit_address: str


class BridgeStatusView(BaseModel):
    """
    Client-facing snapshot of a ledger row

    Mirrors the committed row; the only derived fields are
    `monitoring_timeout` and `needs_attention`.
    """
    model_config = ConfigDict(from_attributes=True)

    bridge_id: str
    user_id: str
    deposit_address: str
    status: BridgeStatus
    amount_source_units: int
    expected_destination_units: Optional[int] = None
    source_tx_signature: Optional[str] = None
    destination_tx_hash: Optional[str] = None
    actual_destination_units: Optional[int] = None
    error_message: Optional[str] = None
    settlement_intent_hashes: List[str] = Field(default_factory=list)
    settlement_tx_hashes: List[str] = Field(default_factory=list)
    refund_address: str
    recipient_address: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    monitoring_timeout: bool = False
    needs_attention: bool = False
    attention_reason: Optional[str] = None

    @classmethod
    def from_row(cls, row, detection_window: timedelta, now: Optional[datetime] = None) -> "BridgeStatusView":
        """Build a view from a BridgeTransaction row"""
        now = now or datetime.now(timezone.utc)
        created_at = as_utc(row.created_at)
        status = BridgeStatus(row.status)
        monitoring_timeout = (
            status == BridgeStatus.PENDING
            and created_at is not None
            and now - created_at > detection_window
        )
        return cls(
            bridge_id=row.id,
            user_id=row.user_id,
            deposit_address=row.deposit_address,
            status=status,
            amount_source_units=row.amount_source_units,
            expected_destination_units=row.expected_destination_units,
            source_tx_signature=row.source_tx_signature,
            destination_tx_hash=row.destination_tx_hash,
            actual_destination_units=row.actual_destination_units,
            error_message=row.error_message,
            settlement_intent_hashes=list(row.settlement_intent_hashes or []),
            settlement_tx_hashes=list(row.settlement_tx_hashes or []),
            refund_address=row.refund_address,
            recipient_address=row.recipient_address,
            created_at=created_at,
            updated_at=as_utc(row.updated_at),
            completed_at=as_utc(row.completed_at),
            monitoring_timeout=monitoring_timeout,
            needs_attention=row.attention_reason is not None,
            attention_reason=row.attention_reason,
        )
