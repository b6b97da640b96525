"""
Bridge Configuration
Centralized configuration for bridge operations
Uses settings.py for environment variables
"""
from datetime import timedelta

from infrastructure.config.settings import settings
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class BridgeConfig:
    """Bridge configuration using centralized settings"""

    # Settlement network (NEAR Intents 1Click)
    SETTLEMENT_API_URL = settings.settlement.api_url.rstrip("/")
    SETTLEMENT_JWT = settings.settlement.jwt or ""
    QUOTE_PATH = "/v0/quote"
    STATUS_PATH = "/v0/status"

    # Asset identifiers on the settlement network
    ORIGIN_ASSET = settings.settlement.origin_asset  # SOL
    DESTINATION_ASSET = settings.settlement.destination_asset  # ZEC

    # Quote request constants
    SWAP_TYPE = "EXACT_INPUT"
    DEPOSIT_TYPE = "ORIGIN_CHAIN"
    REFUND_TYPE = "ORIGIN_CHAIN"
    RECIPIENT_TYPE = "DESTINATION_CHAIN"
    SLIPPAGE_TOLERANCE_BPS = settings.settlement.slippage_tolerance_bps
    QUOTE_DEADLINE = timedelta(hours=settings.settlement.quote_deadline_hours)
    DEFAULT_TIME_ESTIMATE_SECONDS = settings.settlement.default_time_estimate_seconds

    # Solana
    SOLANA_RPC_URL = settings.solana.rpc_url
    SOLANA_COMMITMENT = settings.solana.commitment

    # Zcash
    ZCASH_NETWORK = settings.zcash.network

    # Orchestration timings
    DEPOSIT_POLL_INTERVAL = settings.orchestrator.deposit_poll_interval_seconds
    DEPOSIT_SLOW_POLL_INTERVAL = settings.orchestrator.deposit_slow_poll_interval_seconds
    DETECTION_WINDOW = timedelta(minutes=settings.orchestrator.deposit_detection_window_minutes)
    QUOTE_EXPIRY_GRACE = timedelta(minutes=settings.orchestrator.quote_expiry_grace_minutes)
    RECONCILE_INTERVAL = settings.orchestrator.reconcile_interval_seconds
    RECONCILE_MAX_ATTEMPTS = settings.orchestrator.reconcile_max_attempts
    SCAN_INTERVAL = settings.orchestrator.scan_interval_seconds

    QUOTE_EXPIRED_MESSAGE = "quote expired before deposit"

    @classmethod
    def get_settlement_headers(cls) -> dict:
        """Get headers for settlement API requests"""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if cls.SETTLEMENT_JWT:
            headers["Authorization"] = f"Bearer {cls.SETTLEMENT_JWT}"
        return headers
