from __future__ import annotations

from datetime import datetime, timezone

import pytest

from designdesk.core.exceptions import ResourceNotFoundException, WebhookVerificationException
from designdesk.webhooks.infrastructure import SignatureVerifier, compute_signature

NOW = datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)
SECRET = "whsec_test"
BODY = b'{"id":"evt_1","type":"invoice.paid"}'


@pytest.fixture
def verifier() -> SignatureVerifier:
    return SignatureVerifier(
        {"billing": SECRET, "tracker": "other"},
        signature_headers={"tracker": "X-Tracker-Signature"},
        clock=lambda: NOW,
    )


def test_accepts_bare_hex(verifier) -> None:
    verifier.verify("billing", BODY, {"X-Signature": compute_signature(SECRET, BODY)})


def test_accepts_prefixed_hex_and_provider_case(verifier) -> None:
    verifier.verify("Billing", BODY, {"X-Signature": "sha256=" + compute_signature(SECRET, BODY)})


def test_accepts_timestamped_scheme(verifier) -> None:
    ts = str(int(NOW.timestamp()) - 30)
    header = f"t={ts},v1=deadbeef,v1={compute_signature(SECRET, BODY, ts)}"
    verifier.verify("billing", BODY, {"X-Signature": header})


def test_timestamp_header_is_part_of_signed_content(verifier) -> None:
    ts = str(int(NOW.timestamp()))
    headers = {"X-Signature": compute_signature(SECRET, BODY, ts), "X-Signature-Timestamp": ts}
    verifier.verify("billing", BODY, headers)

    headers["X-Signature"] = compute_signature(SECRET, BODY)
    with pytest.raises(WebhookVerificationException):
        verifier.verify("billing", BODY, headers)


def test_rejects_tampered_body(verifier) -> None:
    signature = compute_signature(SECRET, BODY)
    with pytest.raises(WebhookVerificationException, match="Invalid signature"):
        verifier.verify("billing", BODY + b" ", {"X-Signature": signature})


def test_rejects_wrong_secret(verifier) -> None:
    with pytest.raises(WebhookVerificationException):
        verifier.verify("billing", BODY, {"X-Signature": compute_signature("nope", BODY)})


@pytest.mark.parametrize(
    "header",
    ["café", "sha256=" + "é" * 64, f"t={int(NOW.timestamp())},v1=ünïcode"],
)
def test_rejects_non_ascii_signature(verifier, header) -> None:
    with pytest.raises(WebhookVerificationException, match="Invalid signature"):
        verifier.verify("billing", BODY, {"X-Signature": header})


def test_rejects_missing_header(verifier) -> None:
    with pytest.raises(WebhookVerificationException, match="Missing"):
        verifier.verify("billing", BODY, {})


def test_unknown_provider_is_not_found(verifier) -> None:
    with pytest.raises(ResourceNotFoundException):
        verifier.verify("paypal", BODY, {"X-Signature": compute_signature(SECRET, BODY)})


def test_rejects_stale_timestamp(verifier) -> None:
    ts = str(int(NOW.timestamp()) - 301)
    header = f"t={ts},v1={compute_signature(SECRET, BODY, ts)}"
    with pytest.raises(WebhookVerificationException, match="tolerance"):
        verifier.verify("billing", BODY, {"X-Signature": header})


def test_rejects_timestamped_header_without_signature(verifier) -> None:
    with pytest.raises(WebhookVerificationException, match="Malformed"):
        verifier.verify("billing", BODY, {"X-Signature": "t=1700000000"})


def test_per_provider_header_override(verifier) -> None:
    signature = compute_signature("other", BODY)
    assert verifier.header_for("tracker") == "X-Tracker-Signature"
    verifier.verify("tracker", BODY, {"X-Tracker-Signature": signature})
    with pytest.raises(WebhookVerificationException):
        verifier.verify("tracker", BODY, {"X-Signature": signature})


def test_providers_with_empty_secret_are_disabled() -> None:
    verifier = SignatureVerifier({"billing": SECRET, "tracker": ""})
    assert verifier.providers == ["billing"]
