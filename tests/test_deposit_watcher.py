"""
Tests for DepositWatcher
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from core.database.connection import get_db
from core.database.models import BridgeTransaction
from core.models.bridge_models import BridgeStatus
from core.services.bridge.deposit_watcher import DepositCheck
from tests.fixtures.mocks import past


async def backdate(bridge_id: str, **values):
    async with get_db() as db:
        await db.execute(update(BridgeTransaction).where(BridgeTransaction.id == bridge_id).values(**values))


async def test_no_deposit_keeps_pending(watcher, ledger, pending_bridge):
    result = await watcher.check(pending_bridge)

    assert result == DepositCheck.WAITING
    assert (await ledger.get_by_id(pending_bridge.id)).status == BridgeStatus.PENDING.value


async def test_deposit_moves_to_processing(watcher, ledger, pending_bridge, fake_solana_client):
    fake_solana_client.land_deposit(pending_bridge.deposit_address, pending_bridge.amount_source_units, "sig-abc")

    result = await watcher.check(pending_bridge)

    stored = await ledger.get_by_id(pending_bridge.id)
    assert result == DepositCheck.DEPOSITED
    assert stored.status == BridgeStatus.PROCESSING.value
    assert stored.source_tx_signature == "sig-abc"


async def test_reobserving_deposit_is_a_no_op(watcher, ledger, pending_bridge, fake_solana_client):
    fake_solana_client.land_deposit(pending_bridge.deposit_address, pending_bridge.amount_source_units, "sig-abc")
    await watcher.check(pending_bridge)
    first = await ledger.get_by_id(pending_bridge.id)

    # Stale row object still says PENDING; the guarded update must not re-trigger
    fake_solana_client.land_deposit(pending_bridge.deposit_address, 1, "sig-other")
    await watcher.check(pending_bridge)

    second = await ledger.get_by_id(pending_bridge.id)
    assert second.source_tx_signature == "sig-abc"
    assert second.updated_at == first.updated_at


async def test_check_skips_rows_that_are_not_pending(watcher, processing_bridge, fake_solana_client):
    assert await watcher.check(processing_bridge) == DepositCheck.NOT_PENDING
    assert fake_solana_client.calls == []


async def test_rpc_outage_propagates_from_check(watcher, pending_bridge, fake_solana_client, rpc_unavailable):
    fake_solana_client.error = rpc_unavailable
    with pytest.raises(type(rpc_unavailable)):
        await watcher.check(pending_bridge)


async def test_quote_expiry_fails_pending_row(watcher, ledger, pending_bridge):
    await backdate(pending_bridge.id, quote_deadline=past(hours=1))
    row = await ledger.get_by_id(pending_bridge.id)

    result = await watcher.check(row)

    stored = await ledger.get_by_id(pending_bridge.id)
    assert result == DepositCheck.EXPIRED
    assert stored.status == BridgeStatus.FAILED.value
    assert stored.error_message == "quote expired before deposit"
    assert stored.completed_at is not None


async def test_expiry_waits_for_grace_period(watcher, ledger, pending_bridge):
    await backdate(pending_bridge.id, quote_deadline=past(minutes=5))
    row = await ledger.get_by_id(pending_bridge.id)

    assert await watcher.check(row) == DepositCheck.WAITING


async def test_deposit_wins_over_expiry(watcher, ledger, pending_bridge, fake_solana_client):
    await backdate(pending_bridge.id, quote_deadline=past(hours=1))
    fake_solana_client.land_deposit(pending_bridge.deposit_address, pending_bridge.amount_source_units)
    row = await ledger.get_by_id(pending_bridge.id)

    assert await watcher.check(row) == DepositCheck.DEPOSITED
    assert (await ledger.get_by_id(pending_bridge.id)).status == BridgeStatus.PROCESSING.value


async def test_watch_returns_once_deposit_lands(watcher, ledger, pending_bridge, fake_solana_client):
    async def land_later():
        while len(fake_solana_client.calls) < 3:
            await asyncio.sleep(0)
        fake_solana_client.land_deposit(pending_bridge.deposit_address, pending_bridge.amount_source_units)

    lander = asyncio.create_task(land_later())
    row = await asyncio.wait_for(watcher.watch(pending_bridge.id), timeout=5)
    await lander

    assert row.status == BridgeStatus.PROCESSING.value
    assert len(fake_solana_client.calls) >= 3


async def test_watch_survives_rpc_errors(watcher, pending_bridge, fake_solana_client, rpc_unavailable):
    fake_solana_client.error = rpc_unavailable

    async def recover():
        while len(fake_solana_client.calls) < 2:
            await asyncio.sleep(0)
        fake_solana_client.error = None
        fake_solana_client.land_deposit(pending_bridge.deposit_address, pending_bridge.amount_source_units)

    recovery = asyncio.create_task(recover())
    row = await asyncio.wait_for(watcher.watch(pending_bridge.id), timeout=5)
    await recovery

    assert row.status == BridgeStatus.PROCESSING.value


async def test_watch_keeps_polling_past_detection_window(watcher, ledger, pending_bridge, fake_solana_client, caplog):
    """Late deposit: the row stays PENDING past the window and is still picked up"""
    await backdate(pending_bridge.id, created_at=past(hours=2))

    async def land_late():
        while len(fake_solana_client.calls) < 4:
            await asyncio.sleep(0)
        fake_solana_client.land_deposit(pending_bridge.deposit_address, pending_bridge.amount_source_units)

    lander = asyncio.create_task(land_late())
    with caplog.at_level("WARNING"):
        row = await asyncio.wait_for(watcher.watch(pending_bridge.id), timeout=5)
    await lander

    assert row.status == BridgeStatus.PROCESSING.value
    timeout_warnings = [r for r in caplog.records if "No deposit for bridge" in r.getMessage()]
    assert len(timeout_warnings) == 1


async def test_watch_unknown_row(watcher):
    assert await watcher.watch("missing") is None


async def test_detection_window(watcher, pending_bridge):
    now = datetime.now(timezone.utc)
    assert not watcher.is_past_detection_window(pending_bridge, now)
    assert watcher.is_past_detection_window(pending_bridge, now + timedelta(minutes=31))
