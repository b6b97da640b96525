"""
Bridge Status Service
Read-only status resolution for clients and operators
"""
from datetime import timedelta
from typing import List, Optional

from core.database.ledger import BridgeLedger, get_bridge_ledger
from core.models.bridge_models import BridgeStatusView
from .config import BridgeConfig
from .errors import BridgeNotFound


class BridgeStatusService:
    """Reads committed ledger rows; never writes"""

    def __init__(self, ledger: Optional[BridgeLedger] = None, detection_window: Optional[timedelta] = None):
        self.ledger = ledger or get_bridge_ledger()
        self.detection_window = detection_window or BridgeConfig.DETECTION_WINDOW

    async def get_status(self, deposit_address: str) -> BridgeStatusView:
        """
        Resolve a bridge by its deposit address

        Raises:
            BridgeNotFound: no row uses this deposit address
        """
        row = await self.ledger.get_by_deposit_address(deposit_address)
        if row is None:
            raise BridgeNotFound(f"No bridge for deposit address {deposit_address}")
        return BridgeStatusView.from_row(row, self.detection_window)

    async def get_by_id(self, bridge_id: str) -> BridgeStatusView:
        row = await self.ledger.get_by_id(bridge_id)
        if row is None:
            raise BridgeNotFound(f"Bridge {bridge_id} not found")
        return BridgeStatusView.from_row(row, self.detection_window)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[BridgeStatusView]:
        rows = await self.ledger.list_for_user(user_id, limit=limit)
        return [BridgeStatusView.from_row(row, self.detection_window) for row in rows]

    async def list_attention(self) -> List[BridgeStatusView]:
        """Rows an operator has to look at (refund failures, exhausted reconcile budget)"""
        rows = await self.ledger.list_attention()
        return [BridgeStatusView.from_row(row, self.detection_window) for row in rows]


# Global instance
_status_service: Optional[BridgeStatusService] = None


def get_bridge_status_service() -> BridgeStatusService:
    """Get or create BridgeStatusService instance"""
    global _status_service
    if _status_service is None:
        _status_service = BridgeStatusService()
    return _status_service
