"""
Status Reconciler
Drives PROCESSING bridges to a terminal state from settlement network reports
"""
import asyncio
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.database.ledger import BridgeLedger, get_bridge_ledger
from core.database.models import BridgeTransaction
from core.models.bridge_models import AttentionReason, BridgeStatus
from .config import BridgeConfig
from .errors import BridgeError
from .intents_client import IntentsClient, get_intents_client
from .outcomes import RefundFailed
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class ReconcileResult(str, Enum):
    """Why a reconcile run stopped"""
    COMPLETED = "completed"
    REFUND_FAILED = "refund_failed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    NOT_PROCESSING = "not_processing"
    NOT_FOUND = "not_found"


class StatusReconciler:
    """
    Status Reconciler - polls the settlement network for PROCESSING rows
    - Fixed interval, bounded attempt budget
    - Budget exhaustion flags the row for an operator, never fails it
    - Refund failures flag the row and stop polling
    """

    def __init__(
        self,
        intents_client: Optional[IntentsClient] = None,
        ledger: Optional[BridgeLedger] = None,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self._intents_client = intents_client
        self.ledger = ledger or get_bridge_ledger()
        self.interval = BridgeConfig.RECONCILE_INTERVAL if interval is None else interval
        self.max_attempts = max_attempts or BridgeConfig.RECONCILE_MAX_ATTEMPTS

    @property
    def intents_client(self) -> IntentsClient:
        if self._intents_client is None:
            self._intents_client = get_intents_client()
        return self._intents_client

    async def reconcile_once(self, row: BridgeTransaction) -> BridgeTransaction:
        """
        Fetch the settlement status once and apply it to the row

        Raises:
            SettlementAPIError: status endpoint unavailable
        """
        if row.status != BridgeStatus.PROCESSING.value:
            return row

        previous_reason = row.attention_reason
        snapshot = await self.intents_client.get_status(row.deposit_address)
        updated = await self.ledger.apply_outcome(row.id, snapshot.outcome, snapshot.raw_status)

        if isinstance(snapshot.outcome, RefundFailed) and previous_reason != AttentionReason.REFUND_FAILED.value:
            logger.critical(
                f"🚨 Refund failed for bridge {row.id} (deposit={row.deposit_address}): "
                f"{snapshot.outcome.reason}. Operator action required."
            )
        return updated or row

    async def run(self, bridge_id: str) -> ReconcileResult:
        """Poll until terminal, refund failure or budget exhaustion"""
        for attempt in range(1, self.max_attempts + 1):
            row = await self.ledger.get_by_id(bridge_id)
            if row is None:
                return ReconcileResult.NOT_FOUND
            if row.bridge_status.is_terminal:
                return ReconcileResult.COMPLETED
            if row.status != BridgeStatus.PROCESSING.value:
                return ReconcileResult.NOT_PROCESSING
            if row.attention_reason == AttentionReason.REFUND_FAILED.value:
                return ReconcileResult.REFUND_FAILED

            try:
                row = await self.reconcile_once(row)
            except (BridgeError, SQLAlchemyError) as e:
                logger.warning(f"⚠️ Reconcile attempt {attempt}/{self.max_attempts} for {bridge_id} failed: {e}")
            else:
                if row.bridge_status.is_terminal:
                    if row.attention_reason is not None:
                        await self.ledger.clear_attention(bridge_id)
                    logger.info(f"✅ Bridge {bridge_id} settled as {row.status}")
                    return ReconcileResult.COMPLETED
                if row.attention_reason == AttentionReason.REFUND_FAILED.value:
                    return ReconcileResult.REFUND_FAILED

            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval)

        await self.ledger.flag_for_operator(bridge_id, AttentionReason.RECONCILE_BUDGET_EXHAUSTED)
        logger.critical(
            f"🚨 Bridge {bridge_id} still PROCESSING after {self.max_attempts} status checks. "
            f"Flagged for operator review."
        )
        return ReconcileResult.BUDGET_EXHAUSTED


# Global instance
_status_reconciler: Optional[StatusReconciler] = None


def get_status_reconciler() -> StatusReconciler:
    """Get or create StatusReconciler instance"""
    global _status_reconciler
    if _status_reconciler is None:
        _status_reconciler = StatusReconciler()
    return _status_reconciler
