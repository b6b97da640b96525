"""
Deposit Watcher
Moves PENDING bridges to PROCESSING once the deposit lands on Solana
"""
import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.database.ledger import BridgeLedger, get_bridge_ledger
from core.database.models import BridgeTransaction
from core.models.bridge_models import BridgeStatus, as_utc
from .config import BridgeConfig
from .errors import BridgeError
from .solana_client import SolanaRPCClient, get_solana_rpc_client
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class DepositCheck(str, Enum):
    """Result of a single deposit poll"""
    DEPOSITED = "deposited"
    EXPIRED = "expired"
    WAITING = "waiting"
    NOT_PENDING = "not_pending"


class DepositWatcher:
    """
    Deposit Watcher - one logical watcher per PENDING row
    - Polls the source chain at the configured commitment
    - First confirmed deposit wins; re-observation never re-triggers
    - Past the detection window the row stays PENDING and is polled slower
    """

    def __init__(
        self,
        solana_client: Optional[SolanaRPCClient] = None,
        ledger: Optional[BridgeLedger] = None,
        poll_interval: Optional[float] = None,
        slow_poll_interval: Optional[float] = None,
        detection_window: Optional[timedelta] = None,
        expiry_grace: Optional[timedelta] = None,
    ):
        self._solana_client = solana_client
        self.ledger = ledger or get_bridge_ledger()
        self.poll_interval = BridgeConfig.DEPOSIT_POLL_INTERVAL if poll_interval is None else poll_interval
        self.slow_poll_interval = (
            BridgeConfig.DEPOSIT_SLOW_POLL_INTERVAL if slow_poll_interval is None else slow_poll_interval
        )
        self.detection_window = detection_window or BridgeConfig.DETECTION_WINDOW
        self.expiry_grace = BridgeConfig.QUOTE_EXPIRY_GRACE if expiry_grace is None else expiry_grace

    @property
    def solana_client(self) -> SolanaRPCClient:
        if self._solana_client is None:
            self._solana_client = get_solana_rpc_client()
        return self._solana_client

    def is_quote_expired(self, row: BridgeTransaction, now: datetime) -> bool:
        deadline = as_utc(row.quote_deadline)
        return deadline is not None and now > deadline + self.expiry_grace

    def is_past_detection_window(self, row: BridgeTransaction, now: datetime) -> bool:
        return now - as_utc(row.created_at) > self.detection_window

    async def check(self, row: BridgeTransaction, now: Optional[datetime] = None) -> DepositCheck:
        """
        Poll the source chain once for a PENDING row

        Raises:
            SourceChainError: RPC unavailable (caller retries on the next poll)
        """
        if row.status != BridgeStatus.PENDING.value:
            return DepositCheck.NOT_PENDING

        deposit = await self.solana_client.find_deposit(row.deposit_address)
        if deposit is not None:
            if deposit.lamports != row.amount_source_units:
                logger.warning(
                    f"⚠️ Bridge {row.id}: deposit of {deposit.lamports} lamports "
                    f"differs from requested {row.amount_source_units}"
                )
            await self.ledger.mark_deposit_observed(row.id, deposit.signature)
            return DepositCheck.DEPOSITED

        now = now or datetime.now(timezone.utc)
        if self.is_quote_expired(row, now):
            if await self.ledger.mark_expired(row.id, BridgeConfig.QUOTE_EXPIRED_MESSAGE):
                return DepositCheck.EXPIRED
            return DepositCheck.NOT_PENDING

        return DepositCheck.WAITING

    async def watch(self, bridge_id: str) -> Optional[BridgeTransaction]:
        """
        Poll until the row leaves PENDING

        Returns:
            The row after it left PENDING, or None if it does not exist
        """
        timeout_logged = False

        while True:
            row = await self.ledger.get_by_id(bridge_id)
            if row is None:
                logger.warning(f"⚠️ Bridge {bridge_id} not found, deposit watcher stopping")
                return None
            if row.status != BridgeStatus.PENDING.value:
                return row

            try:
                result = await self.check(row)
            except (BridgeError, SQLAlchemyError) as e:
                logger.warning(f"⚠️ Deposit check for {bridge_id} failed, will retry: {e}")
                result = DepositCheck.WAITING

            if result != DepositCheck.WAITING:
                continue

            past_window = self.is_past_detection_window(row, datetime.now(timezone.utc))
            if past_window and not timeout_logged:
                logger.warning(
                    f"⏰ No deposit for bridge {bridge_id} within {self.detection_window}, "
                    f"still watching every {self.slow_poll_interval}s"
                )
                timeout_logged = True

            await asyncio.sleep(self.slow_poll_interval if past_window else self.poll_interval)


# Global instance
_deposit_watcher: Optional[DepositWatcher] = None


def get_deposit_watcher() -> DepositWatcher:
    """Get or create DepositWatcher instance"""
    global _deposit_watcher
    if _deposit_watcher is None:
        _deposit_watcher = DepositWatcher()
    return _deposit_watcher
