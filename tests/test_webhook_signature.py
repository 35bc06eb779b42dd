"""Signature verification and envelope parsing"""
import json
import time

import pytest

from premium_sync.core.errors import AuthenticationError, EventParseError
from premium_sync.core.webhook_signature import parse_event, verify_webhook_signature

from stripe_helpers import WEBHOOK_SECRET, checkout_event, encode, sign_payload

NOW = 1_800_000_000


@pytest.fixture
def body():
    return encode(checkout_event())


def test_valid_signature_passes(body):
    header = sign_payload(body, timestamp=NOW)
    verify_webhook_signature(body, header, WEBHOOK_SECRET, now=NOW)


def test_valid_signature_against_real_clock(body):
    verify_webhook_signature(body, sign_payload(body), WEBHOOK_SECRET)


@pytest.mark.parametrize("header", [None, "", "   "])
def test_missing_header_rejected(body, header):
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(body, header, WEBHOOK_SECRET, now=NOW)


@pytest.mark.parametrize("header", ["garbage", "v1=abc", "t=notanumber,v1=abc", f"t={NOW}"])
def test_malformed_header_rejected(body, header):
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(body, header, WEBHOOK_SECRET, now=NOW)


def test_wrong_secret_rejected(body):
    header = sign_payload(body, secret="whsec_other", timestamp=NOW)
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(body, header, WEBHOOK_SECRET, now=NOW)


def test_single_byte_mutation_rejected(body):
    header = sign_payload(body, timestamp=NOW)
    tampered = bytearray(body)
    tampered[10] = (tampered[10] + 1) % 256
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(bytes(tampered), header, WEBHOOK_SECRET, now=NOW)


def test_reserialized_body_rejected(body):
    header = sign_payload(body, timestamp=NOW)
    reserialized = json.dumps(json.loads(body), indent=2).encode("utf-8")
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(reserialized, header, WEBHOOK_SECRET, now=NOW)


@pytest.mark.parametrize("skew", [-301, 301, -3600, 86400])
def test_timestamp_outside_tolerance_rejected_even_when_signed(body, skew):
    header = sign_payload(body, timestamp=NOW + skew)
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(body, header, WEBHOOK_SECRET, tolerance=300, now=NOW)


@pytest.mark.parametrize("skew", [-300, -10, 0, 120])
def test_timestamp_inside_tolerance_accepted(body, skew):
    header = sign_payload(body, timestamp=NOW + skew)
    verify_webhook_signature(body, header, WEBHOOK_SECRET, tolerance=300, now=NOW)


def test_any_matching_v1_signature_is_enough(body):
    good = sign_payload(body, timestamp=NOW)
    header = f"t={NOW},v1={'0' * 64},{good.split(',')[1]}"
    verify_webhook_signature(body, header, WEBHOOK_SECRET, now=NOW)


def test_non_utf8_body_rejected():
    body = b"\xff\xfe{}"
    header = sign_payload(body, timestamp=NOW)
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(body, header, WEBHOOK_SECRET, now=NOW)


def test_parse_event_reads_envelope(body):
    event = parse_event(body)
    assert event.event_id == "evt_checkout"
    assert event.event_type == "checkout.session.completed"
    assert event.payload["client_reference_id"] == "u1"
    assert event.occurred_at is not None
    assert event.raw["id"] == "evt_checkout"


@pytest.mark.parametrize("payload", [
    b"not json",
    b"[1, 2, 3]",
    json.dumps({"type": "checkout.session.completed", "data": {"object": {}}}).encode(),
    json.dumps({"id": "evt_1", "data": {"object": {}}}).encode(),
    json.dumps({"id": "evt_1", "type": "checkout.session.completed"}).encode(),
    json.dumps({"id": "evt_1", "type": "checkout.session.completed", "data": {"object": "cs_1"}}).encode(),
])
def test_parse_event_rejects_malformed_envelopes(payload):
    with pytest.raises(EventParseError):
        parse_event(payload)


def test_default_clock_uses_current_time(body):
    stale = sign_payload(body, timestamp=int(time.time()) - 1000)
    with pytest.raises(AuthenticationError):
        verify_webhook_signature(body, stale, WEBHOOK_SECRET)
