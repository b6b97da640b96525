"""
Settlement API Client (NEAR Intents 1Click)
Handles quotes / deposit-address creation and status polling
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from .config import BridgeConfig
from .errors import SettlementAPIError
from .outcomes import StatusSnapshot, map_status_payload
from infrastructure.config.settings import settings
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

# Statuses worth retrying; everything else in 4xx is a definitive answer
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class IntentsAPIError(SettlementAPIError):
    """Non-2xx answer from the settlement API"""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message, details={"status_code": status_code} if status_code else None)
        self.status_code = status_code
        self.body = body


def format_deadline(deadline: datetime) -> str:
    """RFC 3339 with milliseconds and a Z suffix, as the API expects"""
    deadline = deadline.astimezone(timezone.utc)
    return deadline.strftime("%Y-%m-%dT%H:%M:%S.") + f"{deadline.microsecond // 1000:03d}Z"


def parse_deadline(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"⚠️ Unparseable quote deadline from settlement API: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class IntentsClient:
    """Async client for the 1Click settlement API"""

    def __init__(
        self,
        api_url: Optional[str] = None,
        jwt: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        """Initialize settlement client"""
        self.api_url = (api_url or BridgeConfig.SETTLEMENT_API_URL).rstrip("/")
        self.jwt = jwt if jwt is not None else BridgeConfig.SETTLEMENT_JWT
        self.timeout = timeout or settings.settlement.request_timeout
        self.max_retries = max_retries or settings.settlement.max_retries
        self.retry_delay = settings.settlement.retry_delay_seconds if retry_delay is None else retry_delay

        headers = BridgeConfig.get_settlement_headers()
        if self.jwt:
            headers["Authorization"] = f"Bearer {self.jwt}"
        else:
            headers.pop("Authorization", None)

        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Send a request with bounded retries on transport errors and retryable statuses"""
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                last_error = SettlementAPIError(f"Settlement API unreachable: {e}")
                if attempt < self.max_retries - 1:
                    logger.warning(f"⚠️ Settlement API error on attempt {attempt + 1}/{self.max_retries}: {e}")
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                    continue
                break

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise IntentsAPIError(
                        f"Malformed JSON from settlement API: {e}",
                        status_code=response.status_code,
                        body=response.text[:500],
                    ) from e

            error = IntentsAPIError(
                f"Settlement API {method} {path} returned {response.status_code}",
                status_code=response.status_code,
                body=response.text[:500],
            )
            if response.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries - 1:
                logger.warning(
                    f"⚠️ Settlement API {response.status_code} on attempt {attempt + 1}/{self.max_retries}, retrying"
                )
                last_error = error
                await asyncio.sleep(self.retry_delay * (attempt + 1))
                continue
            raise error

        logger.error(f"❌ Settlement API failed after {self.max_retries} attempts: {last_error}")
        raise last_error

    def build_quote_request(
        self,
        amount_in_units: int,
        recipient_address: str,
        refund_address: Optional[str],
        deadline: datetime,
        dry: bool,
    ) -> Dict[str, Any]:
        body = {
            "dry": dry,
            "swapType": BridgeConfig.SWAP_TYPE,
            "slippageTolerance": BridgeConfig.SLIPPAGE_TOLERANCE_BPS,
            "originAsset": BridgeConfig.ORIGIN_ASSET,
            "depositType": BridgeConfig.DEPOSIT_TYPE,
            "destinationAsset": BridgeConfig.DESTINATION_ASSET,
            "amount": str(amount_in_units),
            "refundType": BridgeConfig.REFUND_TYPE,
            "recipient": recipient_address,
            "recipientType": BridgeConfig.RECIPIENT_TYPE,
            "deadline": format_deadline(deadline),
        }
        if refund_address:
            body["refundTo"] = refund_address
        return body

    async def request_quote(
        self,
        amount_in_units: int,
        recipient_address: str,
        refund_address: Optional[str],
        deadline: datetime,
        dry: bool = False,
    ) -> Dict[str, Any]:
        """
        Request a quote from the settlement network

        A non-dry quote registers the intent and allocates a unique deposit
        address on the source chain.

        Args:
            amount_in_units: Amount in lamports
            recipient_address: Shielded Zcash address
            refund_address: Solana address for refunds (required when dry=False)
            deadline: Latest time the deposit may arrive
            dry: Price only, no deposit address

        Returns:
            The `quote` object of the response (amountIn, amountOut,
            depositAddress, timeEstimate, deadline, ...)
        """
        body = self.build_quote_request(amount_in_units, recipient_address, refund_address, deadline, dry)
        logger.info(f"📊 Requesting {'dry ' if dry else ''}quote for {amount_in_units} lamports")

        data = await self._request("POST", BridgeConfig.QUOTE_PATH, json=body)
        quote = data.get("quote") if isinstance(data, dict) else None
        if not isinstance(quote, dict):
            raise IntentsAPIError("Settlement API quote response has no 'quote' object")

        logger.info(
            f"✅ Quote received: in={quote.get('amountIn')} out={quote.get('amountOut')} "
            f"deposit={quote.get('depositAddress')}"
        )
        return quote

    async def get_status(self, deposit_address: str) -> StatusSnapshot:
        """
        Get the settlement status for a deposit address

        Returns:
            StatusSnapshot with the mapped outcome
        """
        data = await self._request(
            "GET",
            BridgeConfig.STATUS_PATH,
            params={"depositAddress": deposit_address},
        )
        if not isinstance(data, dict):
            raise IntentsAPIError("Settlement API status response is not an object")
        snapshot = map_status_payload(data)
        logger.debug(f"🔎 Settlement status for {deposit_address}: {snapshot.raw_status}")
        return snapshot


# Global instance
_intents_client: Optional[IntentsClient] = None


def get_intents_client() -> IntentsClient:
    """Get or create IntentsClient instance"""
    global _intents_client
    if _intents_client is None:
        _intents_client = IntentsClient()
    return _intents_client
