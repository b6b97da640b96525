"""
Settlement outcomes

The settlement network reports free-form status strings. They are mapped
here, once, into a closed set of outcomes; nothing past this module looks
at raw status strings.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

# Raw statuses that mean "keep waiting"
IN_FLIGHT_STATUSES = frozenset({
    "PENDING_DEPOSIT",
    "KNOWN_DEPOSIT_TX",
    "INCOMPLETE_DEPOSIT",
    "PROCESSING",
})


@dataclass(frozen=True)
class Fulfilled:
    destination_tx_hashes: Tuple[str, ...]
    amount_out_units: Optional[int]
    intent_hashes: Tuple[str, ...] = ()
    settlement_tx_hashes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Failed:
    reason: str
    intent_hashes: Tuple[str, ...] = ()
    settlement_tx_hashes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Refunded:
    refunded_units: Optional[int] = None
    intent_hashes: Tuple[str, ...] = ()
    settlement_tx_hashes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RefundFailed:
    reason: str
    intent_hashes: Tuple[str, ...] = ()
    settlement_tx_hashes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Pending:
    raw_status: str
    intent_hashes: Tuple[str, ...] = ()
    settlement_tx_hashes: Tuple[str, ...] = ()


SettlementOutcome = Union[Fulfilled, Failed, Refunded, RefundFailed, Pending]


@dataclass(frozen=True)
class StatusSnapshot:
    """A settlement status response mapped to an outcome"""
    raw_status: str
    outcome: SettlementOutcome
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _to_units(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        units = int(str(value))
    except (TypeError, ValueError):
        logger.warning(f"⚠️ Ignoring non-integer amount from settlement network: {value!r}")
        return None
    return units if units >= 0 else None


def _hashes(items: Any) -> Tuple[str, ...]:
    """Normalize a list of hashes (plain strings or {hash, explorerUrl} objects)"""
    result: List[str] = []
    for item in items or []:
        value = item.get("hash") if isinstance(item, dict) else item
        if value and value not in result:
            result.append(str(value))
    return tuple(result)


def _refund_in_flight(details: Dict[str, Any]) -> bool:
    if _to_units(details.get("refundedAmount")):
        return True
    return bool(details.get("refundReason"))


def map_status_payload(payload: Dict[str, Any]) -> StatusSnapshot:
    """
    Map a `GET /v0/status` response body to a settlement outcome

    Args:
        payload: Decoded JSON body (`status` plus optional `swapDetails`)

    Returns:
        StatusSnapshot with the raw status and the mapped outcome
    """
    raw_status = str(payload.get("status") or "UNKNOWN").upper()
    details = payload.get("swapDetails") or {}
    intent_hashes = _hashes(details.get("intentHashes"))
    near_hashes = _hashes(details.get("nearTxHashes"))

    if raw_status == "SUCCESS":
        destination_hashes = _hashes(details.get("destinationChainTxHashes"))
        amount_out = _to_units(details.get("amountOut"))
        if destination_hashes and amount_out is not None:
            outcome = Fulfilled(
                destination_tx_hashes=destination_hashes,
                amount_out_units=amount_out,
                intent_hashes=intent_hashes,
                settlement_tx_hashes=near_hashes,
            )
        else:
            # A success is only recorded once the destination payout is visible
            logger.warning(
                f"⚠️ SUCCESS reported without destination hash or amountOut "
                f"(hashes={len(destination_hashes)}, amountOut={details.get('amountOut')!r}), treating as pending"
            )
            outcome = Pending(raw_status, intent_hashes, near_hashes)
    elif raw_status == "FAILED":
        if _refund_in_flight(details):
            # Refund still being processed; wait for REFUNDED / REFUND_FAILED
            outcome = Pending(raw_status, intent_hashes, near_hashes)
        else:
            reason = details.get("failureReason") or payload.get("error") or raw_status
            outcome = Failed(str(reason), intent_hashes, near_hashes)
    elif raw_status == "REFUNDED":
        outcome = Refunded(_to_units(details.get("refundedAmount")), intent_hashes, near_hashes)
    elif raw_status == "REFUND_FAILED":
        reason = details.get("refundReason") or "refund failed"
        outcome = RefundFailed(str(reason), intent_hashes, near_hashes)
    else:
        if raw_status not in IN_FLIGHT_STATUSES:
            logger.warning(f"⚠️ Unknown settlement status '{raw_status}', treating as pending")
        outcome = Pending(raw_status, intent_hashes, near_hashes)

    return StatusSnapshot(raw_status=raw_status, outcome=outcome, raw=payload)
