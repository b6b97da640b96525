"""
Bridge Ledger - durable store for bridge attempts
Single source of truth for every bridge transaction

Every write is its own short transaction. Status changes are
compare-and-set (UPDATE ... WHERE status = expected) so concurrent
writers can never move a row backwards or out of a terminal state.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select, update

from core.database.connection import get_db
from core.database.models import BridgeTransaction, utcnow
from core.models.bridge_models import ACTIVE_STATUSES, AttentionReason, BridgeStatus
from core.services.bridge.outcomes import (
    Failed,
    Fulfilled,
    Pending,
    Refunded,
    RefundFailed,
    SettlementOutcome,
)
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def merge_hashes(existing: Optional[Sequence[str]], new: Iterable[str]) -> List[str]:
    """Append-only merge that keeps order and drops duplicates"""
    merged = list(existing or [])
    for value in new:
        if value and value not in merged:
            merged.append(value)
    return merged


class BridgeLedger:
    """
    Ledger repository for BridgeTransaction rows
    - Creation of PENDING rows (IntentSubmitter)
    - Guarded status transitions (DepositWatcher, StatusReconciler)
    - Read access (StatusAPI, Orchestrator)
    """

    # ---- Reads ----

    async def get_by_id(self, bridge_id: str) -> Optional[BridgeTransaction]:
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction).where(BridgeTransaction.id == bridge_id)
            )
            return result.scalar_one_or_none()

    async def get_by_deposit_address(self, deposit_address: str) -> Optional[BridgeTransaction]:
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction).where(BridgeTransaction.deposit_address == deposit_address)
            )
            return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[BridgeTransaction]:
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction).where(BridgeTransaction.idempotency_key == idempotency_key)
            )
            return result.scalar_one_or_none()

    async def list_active(self) -> List[BridgeTransaction]:
        """All non-terminal rows, oldest first (used to resume work after restart)"""
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction)
                .where(BridgeTransaction.status.in_([s.value for s in ACTIVE_STATUSES]))
                .order_by(BridgeTransaction.created_at)
            )
            return list(result.scalars().all())

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[BridgeTransaction]:
        """Most recent rows for a user"""
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction)
                .where(BridgeTransaction.user_id == user_id)
                .order_by(BridgeTransaction.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_attention(self) -> List[BridgeTransaction]:
        """Rows flagged for an operator"""
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction)
                .where(BridgeTransaction.attention_reason.is_not(None))
                .order_by(BridgeTransaction.attention_at)
            )
            return list(result.scalars().all())

    # ---- Writes ----

    async def create(
        self,
        *,
        user_id: str,
        deposit_address: str,
        amount_source_units: int,
        refund_address: str,
        recipient_address: str,
        expected_destination_units: Optional[int] = None,
        quote_deadline: Optional[datetime] = None,
        idempotency_key: Optional[str] = None,
    ) -> BridgeTransaction:
        """
        Insert a new PENDING row

        Raises:
            sqlalchemy.exc.IntegrityError: duplicate deposit address or idempotency key
        """
        now = utcnow()
        row = BridgeTransaction(
            user_id=user_id,
            deposit_address=deposit_address,
            amount_source_units=amount_source_units,
            expected_destination_units=expected_destination_units,
            quote_deadline=quote_deadline,
            refund_address=refund_address,
            recipient_address=recipient_address,
            idempotency_key=idempotency_key,
            status=BridgeStatus.PENDING.value,
            settlement_intent_hashes=[],
            settlement_tx_hashes=[],
            created_at=now,
            updated_at=now,
        )
        async with get_db() as db:
            db.add(row)
            await db.flush()
        logger.info(f"📝 Ledger row {row.id} created (deposit={deposit_address}, amount={amount_source_units})")
        return row

    async def _transition(self, bridge_id: str, expected: BridgeStatus, **values) -> bool:
        values.setdefault("updated_at", utcnow())
        async with get_db() as db:
            result = await db.execute(
                update(BridgeTransaction)
                .where(BridgeTransaction.id == bridge_id)
                .where(BridgeTransaction.status == expected.value)
                .values(**values)
            )
            return result.rowcount == 1

    async def mark_deposit_observed(self, bridge_id: str, source_tx_signature: str) -> bool:
        """
        PENDING -> PROCESSING with the observed deposit signature

        Returns:
            True if this call performed the transition, False if the row
            had already left PENDING (re-observation is a no-op)
        """
        moved = await self._transition(
            bridge_id,
            BridgeStatus.PENDING,
            status=BridgeStatus.PROCESSING.value,
            source_tx_signature=source_tx_signature,
        )
        if moved:
            logger.info(f"💰 Deposit observed for {bridge_id}: {source_tx_signature}")
        return moved

    async def mark_expired(self, bridge_id: str, error_message: str) -> bool:
        """PENDING -> FAILED when the quote expired before any deposit"""
        now = utcnow()
        moved = await self._transition(
            bridge_id,
            BridgeStatus.PENDING,
            status=BridgeStatus.FAILED.value,
            error_message=error_message,
            completed_at=now,
            updated_at=now,
        )
        if moved:
            logger.warning(f"⌛ Bridge {bridge_id} failed: {error_message}")
        return moved

    async def apply_outcome(
        self,
        bridge_id: str,
        outcome: SettlementOutcome,
        raw_status: Optional[str] = None,
    ) -> Optional[BridgeTransaction]:
        """
        Apply a settlement outcome to a PROCESSING row

        Idempotent: terminal rows are returned untouched, so applying the
        same outcome twice is the same as applying it once. Rows that are
        not PROCESSING are never modified.

        Returns:
            The row as committed after the call, or None if it does not exist
        """
        async with get_db() as db:
            result = await db.execute(
                select(BridgeTransaction).where(BridgeTransaction.id == bridge_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            if row.status != BridgeStatus.PROCESSING.value:
                return row

            intent_hashes = merge_hashes(row.settlement_intent_hashes, outcome.intent_hashes)
            tx_hashes = merge_hashes(row.settlement_tx_hashes, outcome.settlement_tx_hashes)
            now = utcnow()
            values = {}

            if isinstance(outcome, Fulfilled):
                tx_hashes = merge_hashes(tx_hashes, outcome.destination_tx_hashes)
                values.update(
                    status=BridgeStatus.SUCCESS.value,
                    destination_tx_hash=outcome.destination_tx_hashes[0] if outcome.destination_tx_hashes else None,
                    actual_destination_units=outcome.amount_out_units,
                    completed_at=now,
                )
            elif isinstance(outcome, Failed):
                values.update(
                    status=BridgeStatus.FAILED.value,
                    error_message=outcome.reason,
                    completed_at=now,
                )
            elif isinstance(outcome, Refunded):
                values.update(status=BridgeStatus.REFUNDED.value, completed_at=now)
            elif isinstance(outcome, RefundFailed):
                # Replaces a budget-exhausted flag
                if row.attention_reason != AttentionReason.REFUND_FAILED.value:
                    values.update(
                        attention_reason=AttentionReason.REFUND_FAILED.value,
                        attention_at=now,
                    )
            elif not isinstance(outcome, Pending):
                raise TypeError(f"Unknown settlement outcome: {outcome!r}")

            if intent_hashes != list(row.settlement_intent_hashes or []):
                values["settlement_intent_hashes"] = intent_hashes
            if tx_hashes != list(row.settlement_tx_hashes or []):
                values["settlement_tx_hashes"] = tx_hashes
            if raw_status and raw_status != row.settlement_status:
                values["settlement_status"] = raw_status

            if not values:
                return row

            values["updated_at"] = now
            update_result = await db.execute(
                update(BridgeTransaction)
                .where(BridgeTransaction.id == bridge_id)
                .where(BridgeTransaction.status == BridgeStatus.PROCESSING.value)
                .values(**values)
            )
            if update_result.rowcount != 1:
                logger.warning(f"⚠️ Bridge {bridge_id} changed concurrently, outcome not applied")
            await db.flush()

            refreshed = await db.execute(
                select(BridgeTransaction)
                .where(BridgeTransaction.id == bridge_id)
                .execution_options(populate_existing=True)
            )
            row = refreshed.scalar_one()

        if row.status != BridgeStatus.PROCESSING.value:
            logger.info(f"🏁 Bridge {bridge_id} reached {row.status}")
        return row

    async def flag_for_operator(self, bridge_id: str, reason: AttentionReason) -> bool:
        """
        Set the operator flag on an active row (status is left unchanged)

        Returns:
            True if the flag was set by this call
        """
        now = utcnow()
        async with get_db() as db:
            result = await db.execute(
                update(BridgeTransaction)
                .where(BridgeTransaction.id == bridge_id)
                .where(BridgeTransaction.status.in_([s.value for s in ACTIVE_STATUSES]))
                .where(BridgeTransaction.attention_reason.is_(None))
                .values(attention_reason=reason.value, attention_at=now, updated_at=now)
            )
            return result.rowcount == 1

    async def clear_attention(self, bridge_id: str) -> bool:
        """Clear the operator flag (operator resumed the row)"""
        async with get_db() as db:
            result = await db.execute(
                update(BridgeTransaction)
                .where(BridgeTransaction.id == bridge_id)
                .where(BridgeTransaction.attention_reason.is_not(None))
                .values(attention_reason=None, attention_at=None, updated_at=utcnow())
            )
            return result.rowcount == 1


# Global instance
_bridge_ledger: Optional[BridgeLedger] = None


def get_bridge_ledger() -> BridgeLedger:
    """Get or create BridgeLedger instance"""
    global _bridge_ledger
    if _bridge_ledger is None:
        _bridge_ledger = BridgeLedger()
    return _bridge_ledger
