"""
Solana RPC Client
Observes native SOL deposits into settlement deposit addresses
"""
import asyncio
import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .config import BridgeConfig
from .errors import SourceChainError
from infrastructure.config.settings import settings
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

# Upper bound on history walked per check (1000 signatures at the default page size)
MAX_SIGNATURE_PAGES = 40


@dataclass(frozen=True)
class ObservedDeposit:
    """A confirmed transfer into a deposit address"""
    signature: str
    lamports: int
    slot: Optional[int] = None
    block_time: Optional[datetime] = None


class SolanaRPCClient:
    """Minimal async JSON-RPC client for deposit detection"""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        commitment: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0,
        page_size: Optional[int] = None,
        max_pages: int = MAX_SIGNATURE_PAGES,
    ):
        self.rpc_url = rpc_url or BridgeConfig.SOLANA_RPC_URL
        self.commitment = commitment or BridgeConfig.SOLANA_COMMITMENT
        self.page_size = page_size or settings.solana.signature_page_size
        self.max_pages = max_pages
        self.max_retries = max_retries or settings.solana.max_retries
        self.retry_delay = retry_delay
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.solana.request_timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = await self._client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    logger.warning(f"⚠️ Solana RPC {method} failed on attempt {attempt + 1}/{self.max_retries}: {e}")
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                    continue
                break

            if data.get("error"):
                raise SourceChainError(f"Solana RPC {method} error: {data['error']}")
            return data.get("result")

        raise SourceChainError(f"Solana RPC {method} failed after {self.max_retries} attempts: {last_error}")

    async def get_signatures_for_address(
        self,
        address: str,
        before: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Signatures touching an address, newest first (one page)"""
        config: Dict[str, Any] = {"limit": self.page_size, "commitment": self.commitment}
        if before:
            config["before"] = before
        result = await self._rpc("getSignaturesForAddress", [address, config])
        return result or []

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        # getTransaction does not accept "processed"
        commitment = "confirmed" if self.commitment == "processed" else self.commitment
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    @staticmethod
    def credited_lamports(transaction: Dict[str, Any], address: str) -> int:
        """Lamports credited to `address` by a transaction (0 if none or failed)"""
        meta = transaction.get("meta") or {}
        if meta.get("err") is not None:
            return 0

        account_keys = (transaction.get("transaction") or {}).get("message", {}).get("accountKeys", [])
        keys = [k.get("pubkey") if isinstance(k, dict) else k for k in account_keys]
        try:
            index = keys.index(address)
        except ValueError:
            return 0

        pre = meta.get("preBalances") or []
        post = meta.get("postBalances") or []
        if index >= len(pre) or index >= len(post):
            return 0
        return max(post[index] - pre[index], 0)

    async def _signature_history(self, address: str) -> List[Dict[str, Any]]:
        """All signatures for an address, newest first, paging until exhausted"""
        signatures: List[Dict[str, Any]] = []
        before = None
        for _ in range(self.max_pages):
            page = await self.get_signatures_for_address(address, before=before)
            signatures.extend(page)
            if len(page) < self.page_size:
                return signatures
            before = page[-1]["signature"]

        logger.warning(
            f"⚠️ Signature history for {address} exceeds {self.max_pages} pages "
            f"({len(signatures)} signatures); older deposits may be missed"
        )
        return signatures

    async def find_deposit(self, deposit_address: str) -> Optional[ObservedDeposit]:
        """
        Find the first confirmed deposit into an address

        Walks successful signatures oldest first and returns the first one
        whose transaction increased the address balance.

        Returns:
            ObservedDeposit or None if nothing has landed yet
        """
        signatures = await self._signature_history(deposit_address)

        for entry in reversed(signatures):
            if entry.get("err") is not None:
                continue
            signature = entry["signature"]
            transaction = await self.get_transaction(signature)
            if not transaction:
                # Not yet visible at our commitment
                continue
            lamports = self.credited_lamports(transaction, deposit_address)
            if lamports <= 0:
                continue

            block_time = entry.get("blockTime") or transaction.get("blockTime")
            return ObservedDeposit(
                signature=signature,
                lamports=lamports,
                slot=entry.get("slot") or transaction.get("slot"),
                block_time=datetime.fromtimestamp(block_time, tz=timezone.utc) if block_time else None,
            )
        return None


# Global instance
_solana_rpc_client: Optional[SolanaRPCClient] = None


def get_solana_rpc_client() -> SolanaRPCClient:
    """Get or create SolanaRPCClient instance"""
    global _solana_rpc_client
    if _solana_rpc_client is None:
        _solana_rpc_client = SolanaRPCClient()
    return _solana_rpc_client
