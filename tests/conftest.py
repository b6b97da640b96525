"""
Pytest configuration and shared fixtures
"""
import os

# Keep local .env files out of the test run
os.environ.setdefault("SHIELDBRIDGE_NO_DOTENV", "1")

from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from core.database import connection
from core.database.ledger import BridgeLedger
from core.services.bridge.deposit_watcher import DepositWatcher
from core.services.bridge.intent_submitter import IntentSubmitter
from core.services.bridge.quote_engine import QuoteEngine
from core.services.bridge.status_reconciler import StatusReconciler
from core.services.bridge.status_service import BridgeStatusService

pytest_plugins = ["tests.fixtures.mocks"]

from tests.fixtures.mocks import REFUND_ADDRESS, UNIFIED_ADDRESS  # noqa: E402


@pytest_asyncio.fixture
async def ledger_db(tmp_path) -> AsyncGenerator[str, None]:
    """Fresh SQLite ledger per test."""
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    await connection.init_db(database_url)
    yield database_url
    await connection.close_db()


@pytest.fixture
def ledger(ledger_db) -> BridgeLedger:
    return BridgeLedger()


@pytest.fixture
def quote_engine(fake_intents_client) -> QuoteEngine:
    return QuoteEngine(intents_client=fake_intents_client)


@pytest.fixture
def submitter(fake_intents_client, ledger) -> IntentSubmitter:
    return IntentSubmitter(intents_client=fake_intents_client, ledger=ledger)


@pytest.fixture
def watcher(fake_solana_client, ledger) -> DepositWatcher:
    return DepositWatcher(
        solana_client=fake_solana_client,
        ledger=ledger,
        poll_interval=0,
        slow_poll_interval=0,
        detection_window=timedelta(minutes=30),
        expiry_grace=timedelta(minutes=10),
    )


@pytest.fixture
def reconciler(fake_intents_client, ledger) -> StatusReconciler:
    return StatusReconciler(
        intents_client=fake_intents_client,
        ledger=ledger,
        interval=0,
        max_attempts=5,
    )


@pytest.fixture
def status_service(ledger) -> BridgeStatusService:
    return BridgeStatusService(ledger=ledger, detection_window=timedelta(minutes=30))


@pytest.fixture
def bridge_request() -> dict:
    """Valid execute arguments"""
    return {
        "amount_in_units": 1_000_000_000,
        "recipient_address": UNIFIED_ADDRESS,
        "refund_address": REFUND_ADDRESS,
        "user_id": "user-1",
    }


@pytest_asyncio.fixture
async def pending_bridge(submitter, bridge_request):
    """A PENDING row created through the submitter."""
    return await submitter.execute(**bridge_request)


@pytest_asyncio.fixture
async def processing_bridge(pending_bridge, ledger):
    """A PROCESSING row (deposit already observed)."""
    await ledger.mark_deposit_observed(pending_bridge.id, "deposit-signature-1")
    return await ledger.get_by_id(pending_bridge.id)

