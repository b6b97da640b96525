"""
Bridge Orchestrator - Background supervisor for in-flight bridges
Owns one task per active ledger row and resumes work after a restart
"""
import asyncio
from typing import Any, Dict, Optional, Set

from core.database.ledger import BridgeLedger, get_bridge_ledger
from core.models.bridge_models import BridgeStatus
from .config import BridgeConfig
from .deposit_watcher import DepositWatcher, get_deposit_watcher
from .errors import BridgeNotFound
from .status_reconciler import ReconcileResult, StatusReconciler, get_status_reconciler
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class BridgeOrchestrator:
    """
    Background task that drives every non-terminal bridge
    - Periodic scan of the ledger (the ledger is the only state that matters)
    - Exactly one task per active row: PENDING -> watcher, PROCESSING -> reconciler
    - Rows flagged for an operator are parked until resume() or restart
    - Tasks are server-owned; a client going away never cancels one
    """

    def __init__(
        self,
        ledger: Optional[BridgeLedger] = None,
        deposit_watcher: Optional[DepositWatcher] = None,
        status_reconciler: Optional[StatusReconciler] = None,
        scan_interval: Optional[float] = None,
    ):
        """
        Initialize Bridge Orchestrator

        Args:
            scan_interval: Seconds between ledger scans (default from settings)
        """
        self.ledger = ledger or get_bridge_ledger()
        self.deposit_watcher = deposit_watcher or get_deposit_watcher()
        self.status_reconciler = status_reconciler or get_status_reconciler()
        self.scan_interval = BridgeConfig.SCAN_INTERVAL if scan_interval is None else scan_interval
        self.running = False
        self.monitor_task: Optional[asyncio.Task] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._parked: Set[str] = set()

    async def start(self) -> None:
        """Start the supervisor loop"""
        if self.running:
            logger.warning("⚠️ Bridge Orchestrator already running")
            return

        self.running = True
        self.monitor_task = asyncio.create_task(self._monitor_loop())
        logger.info(f"🚀 Bridge Orchestrator started (scan interval: {self.scan_interval}s)")

    async def stop(self) -> None:
        """Stop the supervisor and all row tasks; ledger status is left as is"""
        if not self.running:
            return

        self.running = False
        if self.monitor_task and not self.monitor_task.done():
            self.monitor_task.cancel()
            try:
                await self.monitor_task
            except asyncio.CancelledError:
                pass

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        logger.info("🛑 Bridge Orchestrator stopped")

    async def _monitor_loop(self) -> None:
        """Main supervisor loop"""
        logger.info("🔄 Bridge Orchestrator loop started")

        while self.running:
            try:
                await self.scan()
                await asyncio.sleep(self.scan_interval)

            except asyncio.CancelledError:
                logger.info("🛑 Bridge Orchestrator loop cancelled")
                break
            except Exception as e:
                logger.error(f"❌ Bridge Orchestrator loop error: {e}")
                await asyncio.sleep(self.scan_interval)

    async def scan(self) -> int:
        """
        Ensure every active ledger row has a running task

        Returns:
            Number of tasks started by this scan
        """
        rows = await self.ledger.list_active()
        # Rows that settled or expired elsewhere leave the parked set
        self._parked &= {row.id for row in rows}
        started = 0
        for row in rows:
            if row.id in self._parked and row.attention_reason is None:
                # Flag cleared through the ledger (resume from another process)
                self._parked.discard(row.id)
            if row.id in self._parked or self.is_tracking(row.id):
                continue
            self._spawn(row.id)
            started += 1

        if started:
            logger.info(f"🔍 Bridge Orchestrator: {started} task(s) started, {len(self._tasks)} active")
        return started

    def is_tracking(self, bridge_id: str) -> bool:
        task = self._tasks.get(bridge_id)
        return task is not None and not task.done()

    def track(self, bridge_id: str) -> bool:
        """
        Start driving a freshly created bridge without waiting for the next scan

        Returns:
            True if a task was started
        """
        if not self.running or bridge_id in self._parked or self.is_tracking(bridge_id):
            return False
        self._spawn(bridge_id)
        return True

    async def resume(self, bridge_id: str) -> bool:
        """
        Operator action: clear the flag on a parked row and drive it again

        Returns:
            True if the row is active and is being driven (or will be at the next scan)

        Raises:
            BridgeNotFound: unknown bridge id
        """
        row = await self.ledger.get_by_id(bridge_id)
        if row is None:
            raise BridgeNotFound(f"Bridge {bridge_id} not found")

        self._parked.discard(bridge_id)
        await self.ledger.clear_attention(bridge_id)
        if row.bridge_status.is_terminal:
            return False

        logger.info(f"▶️ Bridge {bridge_id} resumed by operator")
        self.track(bridge_id)
        return True

    def _spawn(self, bridge_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._drive(bridge_id), name=f"bridge-{bridge_id}")
        self._tasks[bridge_id] = task
        task.add_done_callback(lambda t, bid=bridge_id: self._on_task_done(bid, t))
        return task

    def _on_task_done(self, bridge_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(bridge_id) is task:
            del self._tasks[bridge_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Task for bridge {bridge_id} crashed, will restart on next scan: {error}")

    async def _drive(self, bridge_id: str) -> None:
        """Run a single row through watcher and reconciler until it stops needing work"""
        while True:
            row = await self.ledger.get_by_id(bridge_id)
            if row is None or row.bridge_status.is_terminal:
                return

            if row.status == BridgeStatus.PENDING.value:
                await self.deposit_watcher.watch(bridge_id)
                continue

            result = await self.status_reconciler.run(bridge_id)
            if result in (ReconcileResult.BUDGET_EXHAUSTED, ReconcileResult.REFUND_FAILED):
                self._parked.add(bridge_id)
                logger.warning(f"🅿️ Bridge {bridge_id} parked ({result.value}) until operator resume")
                return
            if result != ReconcileResult.NOT_PROCESSING:
                return

    def get_status(self) -> Dict[str, Any]:
        """Runtime snapshot for health checks"""
        return {
            "running": self.running,
            "active_tasks": len(self._tasks),
            "parked": sorted(self._parked),
        }


# Global instance
_bridge_orchestrator: Optional[BridgeOrchestrator] = None


def get_bridge_orchestrator() -> BridgeOrchestrator:
    """Get or create BridgeOrchestrator instance"""
    global _bridge_orchestrator
    if _bridge_orchestrator is None:
        _bridge_orchestrator = BridgeOrchestrator()
    return _bridge_orchestrator
