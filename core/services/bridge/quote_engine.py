"""
Quote Engine
Indicative SOL -> ZEC quotes from the settlement network
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.models.bridge_models import MAX_UINT64, Quote
from .address_validation import validate_recipient_address, validate_refund_address
from .config import BridgeConfig
from .errors import InvalidAmount, QuoteUnavailable, SettlementAPIError
from .intents_client import IntentsClient, get_intents_client, parse_deadline
from infrastructure.config.settings import settings
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def validate_amount(amount_in_units: Any) -> int:
    """Amounts are positive integers in lamports that fit in a uint64"""
    if isinstance(amount_in_units, bool) or not isinstance(amount_in_units, int):
        raise InvalidAmount(f"Amount must be an integer number of lamports, got {amount_in_units!r}")
    if amount_in_units <= 0:
        raise InvalidAmount("Amount must be greater than zero")
    if amount_in_units > MAX_UINT64:
        raise InvalidAmount("Amount exceeds the maximum supported value")
    return amount_in_units


def parse_quote_response(quote: Dict[str, Any], requested_amount: int, fallback_deadline: datetime) -> Quote:
    """
    Convert the settlement network's quote object into a Quote

    Raises:
        QuoteUnavailable: the response is missing amounts or the deposit address
    """
    try:
        amount_in = int(str(quote.get("amountIn", requested_amount)))
        amount_out = int(str(quote["amountOut"]))
    except (KeyError, TypeError, ValueError) as e:
        raise QuoteUnavailable(f"Settlement network returned an unusable quote: {e}") from e
    if amount_out < 0 or amount_in < 0:
        raise QuoteUnavailable("Settlement network returned a negative amount")

    deposit_address = quote.get("depositAddress")
    if not deposit_address:
        raise QuoteUnavailable("Settlement network returned no deposit address")

    try:
        time_estimate_seconds = int(quote.get("timeEstimate") or BridgeConfig.DEFAULT_TIME_ESTIMATE_SECONDS)
    except (TypeError, ValueError):
        time_estimate_seconds = BridgeConfig.DEFAULT_TIME_ESTIMATE_SECONDS

    return Quote(
        amount_in_units=amount_in,
        amount_out_estimate_units=amount_out,
        deposit_address=str(deposit_address),
        time_estimate_minutes=max(1, math.ceil(time_estimate_seconds / 60)),
        deadline=parse_deadline(quote.get("deadline")) or fallback_deadline,
    )


class QuoteEngine:
    """
    Quote Engine - prices a bridge without side effects
    - Validates amount and addresses before any network call
    - Never touches the ledger
    """

    def __init__(self, intents_client: Optional[IntentsClient] = None):
        self._intents_client = intents_client

    @property
    def intents_client(self) -> IntentsClient:
        if self._intents_client is None:
            self._intents_client = get_intents_client()
        return self._intents_client

    async def get_quote(
        self,
        amount_in_units: int,
        recipient_address: str,
        refund_address: Optional[str] = None,
    ) -> Quote:
        """
        Get an indicative quote

        The returned deposit address is one-time and provisional; execute
        always allocates a fresh one. A refund address is needed to obtain
        it: the caller's, or the configured default.

        Raises:
            InvalidAmount, InvalidAddress: bad input, no network call made
            QuoteUnavailable: no refund address available, or the settlement
                network could not price the request
        """
        amount_in_units = validate_amount(amount_in_units)
        recipient_address = validate_recipient_address(recipient_address, BridgeConfig.ZCASH_NETWORK)
        if refund_address:
            refund_address = validate_refund_address(refund_address)
        else:
            refund_address = settings.settlement.default_refund_address
        if not refund_address:
            raise QuoteUnavailable(
                "A refund address is required to quote (none given and SETTLEMENT_DEFAULT_REFUND_ADDRESS is not set)"
            )

        deadline = datetime.now(timezone.utc) + BridgeConfig.QUOTE_DEADLINE

        try:
            raw_quote = await self.intents_client.request_quote(
                amount_in_units,
                recipient_address,
                refund_address,
                deadline,
                dry=False,
            )
        except SettlementAPIError as e:
            logger.error(f"❌ Quote unavailable: {e}")
            raise QuoteUnavailable(
                f"Settlement network could not quote: {e.message}",
                status_code=e.details.get("status_code"),
            ) from e

        return parse_quote_response(raw_quote, amount_in_units, deadline)


# Global instance
_quote_engine: Optional[QuoteEngine] = None


def get_quote_engine() -> QuoteEngine:
    """Get or create QuoteEngine instance"""
    global _quote_engine
    if _quote_engine is None:
        _quote_engine = QuoteEngine()
    return _quote_engine
