"""
Intent Submitter
Creates the settlement intent and records the PENDING ledger row
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.database.ledger import BridgeLedger, get_bridge_ledger
from core.database.models import BridgeTransaction
from .address_validation import validate_recipient_address, validate_refund_address
from .config import BridgeConfig
from .errors import (
    IdempotencyConflict,
    LedgerWriteFailed,
    QuoteExpired,
    QuoteUnavailable,
    SettlementAPIError,
)
from .intents_client import IntentsClient, get_intents_client
from .quote_engine import parse_quote_response, validate_amount
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def _same_request(
    row: BridgeTransaction,
    amount_in_units: int,
    recipient_address: str,
    refund_address: str,
    user_id: str,
) -> bool:
    return (
        row.amount_source_units == amount_in_units
        and row.recipient_address == recipient_address
        and row.refund_address == refund_address
        and row.user_id == user_id
    )


class IntentSubmitter:
    """
    Intent Submitter - turns a validated request into a PENDING bridge
    - Re-validates input exactly like the QuoteEngine
    - Obtains a fresh, unique deposit address (non-dry quote)
    - Persists the row; never moves funds
    """

    def __init__(
        self,
        intents_client: Optional[IntentsClient] = None,
        ledger: Optional[BridgeLedger] = None,
    ):
        self._intents_client = intents_client
        self.ledger = ledger or get_bridge_ledger()

    @property
    def intents_client(self) -> IntentsClient:
        if self._intents_client is None:
            self._intents_client = get_intents_client()
        return self._intents_client

    async def _replay(
        self,
        idempotency_key: str,
        amount_in_units: int,
        recipient_address: str,
        refund_address: str,
        user_id: str,
    ) -> Optional[BridgeTransaction]:
        existing = await self.ledger.get_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        if not _same_request(existing, amount_in_units, recipient_address, refund_address, user_id):
            raise IdempotencyConflict(
                "Idempotency key was already used with different parameters",
                details={"bridge_id": existing.id},
            )
        logger.info(f"🔁 Idempotent execute replay for key {idempotency_key} -> {existing.id}")
        return existing

    async def execute(
        self,
        amount_in_units: int,
        recipient_address: str,
        refund_address: str,
        user_id: str,
        idempotency_key: Optional[str] = None,
    ) -> BridgeTransaction:
        """
        Create a bridge attempt

        Args:
            amount_in_units: Amount in lamports
            recipient_address: Shielded Zcash address
            refund_address: Solana address refunds are sent to
            user_id: Owner reference
            idempotency_key: Optional caller token; retries with the same key
                return the same row

        Returns:
            The PENDING BridgeTransaction row

        Raises:
            InvalidAmount, InvalidAddress, QuoteUnavailable, QuoteExpired,
            IdempotencyConflict, LedgerWriteFailed
        """
        amount_in_units = validate_amount(amount_in_units)
        recipient_address = validate_recipient_address(recipient_address, BridgeConfig.ZCASH_NETWORK)
        refund_address = validate_refund_address(refund_address)

        if idempotency_key:
            existing = await self._replay(idempotency_key, amount_in_units, recipient_address, refund_address, user_id)
            if existing is not None:
                return existing

        now = datetime.now(timezone.utc)
        deadline = now + BridgeConfig.QUOTE_DEADLINE
        try:
            raw_quote = await self.intents_client.request_quote(
                amount_in_units,
                recipient_address,
                refund_address,
                deadline,
                dry=False,
            )
        except SettlementAPIError as e:
            logger.error(f"❌ Could not create settlement intent: {e}")
            raise QuoteUnavailable(
                f"Settlement network could not create the intent: {e.message}",
                status_code=e.details.get("status_code"),
            ) from e

        # Raises QuoteUnavailable when no deposit address was allocated
        quote = parse_quote_response(raw_quote, amount_in_units, deadline)
        if quote.deadline is not None and quote.deadline <= datetime.now(timezone.utc):
            raise QuoteExpired("Quote deadline passed before the intent was recorded")

        try:
            row = await self.ledger.create(
                user_id=user_id,
                deposit_address=quote.deposit_address,
                amount_source_units=amount_in_units,
                expected_destination_units=quote.amount_out_estimate_units,
                quote_deadline=quote.deadline,
                refund_address=refund_address,
                recipient_address=recipient_address,
                idempotency_key=idempotency_key,
            )
        except SQLAlchemyError as e:
            if idempotency_key:
                # A concurrent execute with the same key may have won the insert
                existing = await self._replay(
                    idempotency_key, amount_in_units, recipient_address, refund_address, user_id
                )
                if existing is not None:
                    return existing
            logger.critical(
                f"🚨 Ledger write failed, settlement intent orphaned "
                f"(deposit={quote.deposit_address}, user={user_id}, amount={amount_in_units}): {e}"
            )
            raise LedgerWriteFailed(
                "Could not record the bridge; retry with the same idempotency key",
                deposit_address=quote.deposit_address,
            ) from e

        logger.info(f"🌉 Bridge {row.id} created for user {user_id}, deposit to {row.deposit_address}")
        return row


# Global instance
_intent_submitter: Optional[IntentSubmitter] = None


def get_intent_submitter() -> IntentSubmitter:
    """Get or create IntentSubmitter instance"""
    global _intent_submitter
    if _intent_submitter is None:
        _intent_submitter = IntentSubmitter()
    return _intent_submitter
