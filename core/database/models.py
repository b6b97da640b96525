"""
SQLAlchemy models for the Shieldbridge ledger
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base

from core.models.bridge_models import BridgeStatus

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_bridge_id() -> str:
    return str(uuid.uuid4())


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in BridgeStatus)
_TERMINAL_VALUES = "'SUCCESS', 'FAILED', 'REFUNDED'"


class BridgeTransaction(Base):
    """
    One row per bridge attempt (SOL -> ZEC via the settlement network)

    Rows are never deleted: they are the audit record of the attempt.
    Amounts are integer minor units (lamports in, zatoshis out).
    """
    __tablename__ = "bridge_transactions"

    id = Column(String(36), primary_key=True, default=new_bridge_id)
    user_id = Column(String(64), nullable=False, index=True)
    idempotency_key = Column(String(128), unique=True, nullable=True)

    # Source chain
    source_tx_signature = Column(String(128))
    deposit_address = Column(String(128), unique=True, nullable=False)
    amount_source_units = Column(BigInteger, nullable=False)

    # Quote
    expected_destination_units = Column(BigInteger)
    quote_deadline = Column(DateTime(timezone=True))

    # Status tracking
    status = Column(String(20), nullable=False, default=BridgeStatus.PENDING.value, index=True)
    error_message = Column(Text)
    settlement_status = Column(String(50))  # last raw status from the settlement network

    # Settlement network data (append-only)
    settlement_intent_hashes = Column(JSON, nullable=False, default=list)
    settlement_tx_hashes = Column(JSON, nullable=False, default=list)

    # Destination transaction
    destination_tx_hash = Column(String(128))
    actual_destination_units = Column(BigInteger)

    # Addresses (immutable after creation)
    refund_address = Column(String(128), nullable=False)
    recipient_address = Column(Text, nullable=False)

    # Operator flag
    attention_reason = Column(String(100))
    attention_at = Column(DateTime(timezone=True))

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="valid_bridge_status"),
        CheckConstraint("amount_source_units >= 0", name="non_negative_amount_source"),
        CheckConstraint(
            "expected_destination_units IS NULL OR expected_destination_units >= 0",
            name="non_negative_expected_destination",
        ),
        CheckConstraint(
            "actual_destination_units IS NULL OR actual_destination_units >= 0",
            name="non_negative_actual_destination",
        ),
        CheckConstraint(
            f"(completed_at IS NULL) = (status NOT IN ({_TERMINAL_VALUES}))",
            name="completed_at_iff_terminal",
        ),
        Index('idx_bridge_transactions_created_at', text('created_at DESC')),
    )

    @property
    def bridge_status(self) -> BridgeStatus:
        return BridgeStatus(self.status)

    def __repr__(self) -> str:
        return f"<BridgeTransaction {self.id} {self.status} deposit={self.deposit_address}>"
