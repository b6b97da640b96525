"""
Bridge API Routes
Quote, execute and status endpoints plus operator actions
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from core.models.bridge_models import (
    BridgeStatusView,
    ExecuteRequest,
    ExecuteResponse,
    Quote,
    QuoteRequest,
    StatusRequest,
)
from core.services.bridge.errors import (
    BridgeError,
    BridgeNotFound,
    IdempotencyConflict,
    InvalidAddress,
    InvalidAmount,
    LedgerWriteFailed,
    QuoteExpired,
    QuoteUnavailable,
)
from core.services.bridge.intent_submitter import IntentSubmitter, get_intent_submitter
from core.services.bridge.orchestrator import BridgeOrchestrator, get_bridge_orchestrator
from core.services.bridge.quote_engine import QuoteEngine, get_quote_engine
from core.services.bridge.status_service import BridgeStatusService, get_bridge_status_service
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

ERROR_STATUS_CODES = {
    InvalidAddress: 400,
    InvalidAmount: 400,
    BridgeNotFound: 404,
    IdempotencyConflict: 409,
    QuoteExpired: 410,
    LedgerWriteFailed: 500,
    QuoteUnavailable: 503,
}


def to_http_exception(error: BridgeError) -> HTTPException:
    """Map a bridge error to an HTTP error with a stable error code"""
    status_code = 500
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            status_code = code
            break
    detail = {"code": error.code, "message": error.message}
    if error.details:
        detail["details"] = error.details
    return HTTPException(status_code=status_code, detail=detail)


@router.post("/quote", response_model=Quote)
async def get_quote(
    request: QuoteRequest,
    quote_engine: QuoteEngine = Depends(get_quote_engine),
):
    """
    Get an indicative SOL -> ZEC quote

    The deposit address in the response is provisional; use /execute to
    obtain the address to pay into. Without a refund address in the request
    the configured default is used; with neither the quote is unavailable (503).
    """
    try:
        return await quote_engine.get_quote(
            request.amount_in_units,
            request.recipient_address,
            request.refund_address,
        )
    except BridgeError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error getting bridge quote: {e}")
        raise HTTPException(status_code=500, detail=f"Error getting quote: {str(e)}")


@router.post("/execute", response_model=ExecuteResponse)
async def execute_bridge(
    request: ExecuteRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    submitter: IntentSubmitter = Depends(get_intent_submitter),
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
):
    """
    Create a bridge and return the deposit address to pay into

    Retrying with the same idempotency key (body field or Idempotency-Key
    header) returns the same bridge.
    """
    try:
        row = await submitter.execute(
            request.amount_in_units,
            request.recipient_address,
            request.refund_address,
            request.user_id,
            idempotency_key=request.idempotency_key or idempotency_key,
        )
        orchestrator.track(row.id)
        return ExecuteResponse(
            bridge_id=row.id,
            deposit_address=row.deposit_address,
            status=row.bridge_status,
            expected_destination_units=row.expected_destination_units,
        )
    except BridgeError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error executing bridge for user {request.user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error executing bridge: {str(e)}")


async def _status_by_deposit_address(deposit_address: str, status_service: BridgeStatusService) -> BridgeStatusView:
    try:
        return await status_service.get_status(deposit_address)
    except BridgeError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error getting bridge status for {deposit_address}: {e}")
        raise HTTPException(status_code=500, detail=f"Error getting status: {str(e)}")


@router.get("/status/{deposit_address}", response_model=BridgeStatusView)
async def get_bridge_status(
    deposit_address: str,
    status_service: BridgeStatusService = Depends(get_bridge_status_service),
):
    """Get the committed status of a bridge by deposit address"""
    return await _status_by_deposit_address(deposit_address, status_service)


@router.post("/status", response_model=BridgeStatusView)
async def post_bridge_status(
    request: StatusRequest,
    status_service: BridgeStatusService = Depends(get_bridge_status_service),
):
    return await _status_by_deposit_address(request.deposit_address, status_service)


@router.get("/transactions/{bridge_id}", response_model=BridgeStatusView)
async def get_bridge_transaction(
    bridge_id: str,
    status_service: BridgeStatusService = Depends(get_bridge_status_service),
):
    try:
        return await status_service.get_by_id(bridge_id)
    except BridgeError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error getting bridge {bridge_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error getting bridge: {str(e)}")


@router.get("/users/{user_id}/transactions", response_model=List[BridgeStatusView])
async def list_user_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    status_service: BridgeStatusService = Depends(get_bridge_status_service),
):
    """List a user's bridges, most recent first"""
    try:
        return await status_service.list_for_user(user_id, limit=limit)
    except Exception as e:
        logger.error(f"Error listing bridges for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error listing bridges: {str(e)}")


@router.get("/attention", response_model=List[BridgeStatusView])
async def list_attention(
    status_service: BridgeStatusService = Depends(get_bridge_status_service),
):
    """Operator view: bridges flagged for manual review"""
    try:
        return await status_service.list_attention()
    except Exception as e:
        logger.error(f"Error listing flagged bridges: {e}")
        raise HTTPException(status_code=500, detail=f"Error listing flagged bridges: {str(e)}")


@router.post("/transactions/{bridge_id}/resume")
async def resume_bridge(
    bridge_id: str,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
):
    """Operator action: clear the flag on a bridge and poll it again"""
    try:
        resumed = await orchestrator.resume(bridge_id)
        return {"bridge_id": bridge_id, "resumed": resumed}
    except BridgeError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error resuming bridge {bridge_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error resuming bridge: {str(e)}")
