"""
Bridge Service Module
Handles SOL -> ZEC bridging through the settlement network

Service modules (quote_engine, intent_submitter, deposit_watcher,
status_reconciler, status_service, orchestrator) are imported by path;
the ledger depends on this package's outcome types.
"""
from .config import BridgeConfig
from .errors import (
    BridgeError,
    BridgeNotFound,
    IdempotencyConflict,
    InvalidAddress,
    InvalidAmount,
    LedgerWriteFailed,
    QuoteExpired,
    QuoteUnavailable,
    SettlementAPIError,
    SourceChainError,
)
from .outcomes import Failed, Fulfilled, Pending, Refunded, RefundFailed, map_status_payload

__all__ = [
    'BridgeConfig',
    'BridgeError',
    'BridgeNotFound',
    'IdempotencyConflict',
    'InvalidAddress',
    'InvalidAmount',
    'LedgerWriteFailed',
    'QuoteExpired',
    'QuoteUnavailable',
    'SettlementAPIError',
    'SourceChainError',
    'Failed',
    'Fulfilled',
    'Pending',
    'Refunded',
    'RefundFailed',
    'map_status_payload',
    'close_clients',
]


async def close_clients() -> None:
    """Close the shared settlement and Solana HTTP clients if they were created"""
    from . import intents_client, solana_client

    if intents_client._intents_client is not None:
        await intents_client._intents_client.close()
        intents_client._intents_client = None
    if solana_client._solana_rpc_client is not None:
        await solana_client._solana_rpc_client.close()
        solana_client._solana_rpc_client = None
