"""
Tests for settlement status mapping
"""
import pytest

from core.services.bridge.outcomes import (
    Failed,
    Fulfilled,
    Pending,
    Refunded,
    RefundFailed,
    map_status_payload,
)
from tests.fixtures.mocks import success_payload


def test_success_maps_to_fulfilled():
    snapshot = map_status_payload(success_payload(dest_hash="zec-abc", amount_out=99_000))

    assert snapshot.raw_status == "SUCCESS"
    assert snapshot.outcome == Fulfilled(
        destination_tx_hashes=("zec-abc",),
        amount_out_units=99_000,
        intent_hashes=("intent-1",),
        settlement_tx_hashes=("near-tx-1",),
    )


def test_failed_without_refund_is_terminal_failure():
    snapshot = map_status_payload({
        "status": "FAILED",
        "swapDetails": {"failureReason": "slippage exceeded", "refundedAmount": "0"},
    })
    assert snapshot.outcome == Failed(reason="slippage exceeded")


def test_failed_reason_defaults_to_raw_status():
    assert map_status_payload({"status": "FAILED"}).outcome == Failed(reason="FAILED")


@pytest.mark.parametrize(
    "details",
    [
        {"refundedAmount": "1000"},
        {"refundReason": "deposit below minimum"},
    ],
)
def test_failed_with_refund_in_flight_keeps_waiting(details):
    snapshot = map_status_payload({"status": "FAILED", "swapDetails": details})
    assert isinstance(snapshot.outcome, Pending)
    assert snapshot.outcome.raw_status == "FAILED"


def test_refunded():
    snapshot = map_status_payload({"status": "REFUNDED", "swapDetails": {"refundedAmount": "999000"}})
    assert snapshot.outcome == Refunded(refunded_units=999_000)


def test_refund_failed():
    snapshot = map_status_payload({"status": "REFUND_FAILED", "swapDetails": {"refundReason": "rpc down"}})
    assert snapshot.outcome == RefundFailed(reason="rpc down")


@pytest.mark.parametrize(
    "status",
    ["PENDING_DEPOSIT", "KNOWN_DEPOSIT_TX", "INCOMPLETE_DEPOSIT", "PROCESSING", "SOMETHING_NEW", None],
)
def test_in_flight_and_unknown_statuses_are_pending(status):
    snapshot = map_status_payload({"status": status})
    assert isinstance(snapshot.outcome, Pending)


def test_lowercase_status_is_normalized():
    assert isinstance(map_status_payload(success_payload() | {"status": "success"}).outcome, Fulfilled)


def test_pending_collects_hashes_without_duplicates():
    snapshot = map_status_payload({
        "status": "PROCESSING",
        "swapDetails": {
            "intentHashes": ["i-1", "i-1", "i-2"],
            "nearTxHashes": ["n-1"],
        },
    })
    assert snapshot.outcome.intent_hashes == ("i-1", "i-2")
    assert snapshot.outcome.settlement_tx_hashes == ("n-1",)


@pytest.mark.parametrize(
    "details",
    [
        {"destinationChainTxHashes": []},
        {"destinationChainTxHashes": [{"hash": "", "explorerUrl": ""}]},
        {"amountOut": None},
        {"amountOut": "12.5"},
    ],
)
def test_incomplete_success_keeps_waiting(details):
    payload = success_payload()
    payload["swapDetails"].update(details)

    snapshot = map_status_payload(payload)

    assert snapshot.raw_status == "SUCCESS"
    assert snapshot.outcome == Pending(
        raw_status="SUCCESS",
        intent_hashes=("intent-1",),
        settlement_tx_hashes=("near-tx-1",),
    )
