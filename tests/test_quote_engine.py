"""
Tests for QuoteEngine
"""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from core.services.bridge.errors import InvalidAddress, InvalidAmount, QuoteUnavailable
from core.services.bridge.intents_client import IntentsAPIError
from core.services.bridge.quote_engine import parse_quote_response, validate_amount
from core.models.bridge_models import MAX_UINT64
from infrastructure.config.settings import SettlementSettings, SolanaSettings, settings
from tests.fixtures.mocks import REFUND_ADDRESS, SAPLING_ADDRESS, TRANSPARENT_ADDRESS, UNIFIED_ADDRESS


@pytest.fixture(autouse=True)
def no_default_refund_address(monkeypatch):
    monkeypatch.setattr(settings.settlement, "default_refund_address", None)


async def test_quote_with_refund_address_is_live(quote_engine, fake_intents_client):
    quote = await quote_engine.get_quote(1_000_000_000, UNIFIED_ADDRESS, REFUND_ADDRESS)

    assert quote.amount_in_units == 1_000_000_000
    assert quote.amount_out_estimate_units == fake_intents_client.amount_out
    assert quote.deposit_address == "DepositAddr0001"
    assert quote.time_estimate_minutes == 3
    assert quote.deadline > datetime.now(timezone.utc)
    assert fake_intents_client.quote_calls[0]["dry"] is False


async def test_quote_without_any_refund_address_is_unavailable(quote_engine, fake_intents_client):
    with pytest.raises(QuoteUnavailable):
        await quote_engine.get_quote(5_000_000, SAPLING_ADDRESS)
    assert fake_intents_client.quote_calls == []


async def test_configured_refund_address_enables_live_quote(quote_engine, fake_intents_client, monkeypatch):
    monkeypatch.setattr(settings.settlement, "default_refund_address", REFUND_ADDRESS)

    quote = await quote_engine.get_quote(5_000_000, SAPLING_ADDRESS)

    assert quote.deposit_address == "DepositAddr0001"
    assert fake_intents_client.quote_calls[0]["refund"] == REFUND_ADDRESS
    assert fake_intents_client.quote_calls[0]["dry"] is False


async def test_quote_without_deposit_address_is_unavailable(quote_engine, fake_intents_client):
    fake_intents_client.omit_deposit_address = True

    with pytest.raises(QuoteUnavailable):
        await quote_engine.get_quote(5_000_000, UNIFIED_ADDRESS, REFUND_ADDRESS)


async def test_invalid_recipient_makes_no_network_call(quote_engine, fake_intents_client):
    with pytest.raises(InvalidAddress):
        await quote_engine.get_quote(5_000_000, TRANSPARENT_ADDRESS)
    assert fake_intents_client.quote_calls == []


async def test_invalid_refund_address(quote_engine, fake_intents_client):
    with pytest.raises(InvalidAddress) as exc_info:
        await quote_engine.get_quote(5_000_000, UNIFIED_ADDRESS, "not-a-solana-address")
    assert exc_info.value.role == "refund"
    assert fake_intents_client.quote_calls == []


@pytest.mark.parametrize("amount", [0, -1, MAX_UINT64 + 1, 1.5, "100", True, None])
async def test_invalid_amount(quote_engine, fake_intents_client, amount):
    with pytest.raises(InvalidAmount):
        await quote_engine.get_quote(amount, UNIFIED_ADDRESS)
    assert fake_intents_client.quote_calls == []


def test_validate_amount_accepts_uint64_max():
    assert validate_amount(MAX_UINT64) == MAX_UINT64


async def test_settlement_error_becomes_quote_unavailable(quote_engine, fake_intents_client):
    fake_intents_client.quote_error = IntentsAPIError("rate limited", status_code=429)

    with pytest.raises(QuoteUnavailable) as exc_info:
        await quote_engine.get_quote(5_000_000, UNIFIED_ADDRESS, REFUND_ADDRESS)
    assert exc_info.value.status_code == 429


async def test_quote_has_no_ledger_side_effect(quote_engine, ledger):
    await quote_engine.get_quote(1_000_000_000, UNIFIED_ADDRESS, REFUND_ADDRESS)
    assert await ledger.list_active() == []


def test_parse_quote_rejects_missing_amount_out():
    with pytest.raises(QuoteUnavailable):
        parse_quote_response({"amountIn": "10"}, 10, datetime.now(timezone.utc))


def test_parse_quote_time_estimate_rounds_up():
    quote = parse_quote_response(
        {"amountIn": "10", "amountOut": "7", "timeEstimate": 61, "depositAddress": "Dep1"},
        10,
        datetime.now(timezone.utc),
    )
    assert quote.time_estimate_minutes == 2
    assert quote.deposit_address == "Dep1"


def test_parse_quote_rejects_missing_deposit_address():
    with pytest.raises(QuoteUnavailable):
        parse_quote_response({"amountIn": "10", "amountOut": "7"}, 10, datetime.now(timezone.utc))


def test_default_refund_address_is_validated_at_startup():
    assert SettlementSettings(default_refund_address=REFUND_ADDRESS).default_refund_address == REFUND_ADDRESS
    assert SettlementSettings(default_refund_address="  ").default_refund_address is None
    with pytest.raises(ValidationError):
        SettlementSettings(default_refund_address="0OIl-not-base58")
    with pytest.raises(ValidationError):
        SettlementSettings(default_refund_address="3yZe7d")


def test_retry_count_must_be_positive():
    with pytest.raises(ValidationError):
        SettlementSettings(max_retries=0)
    with pytest.raises(ValidationError):
        SolanaSettings(max_retries=0)
