"""
Webhook Signature Verification
===============================

HMAC-SHA256 verification of raw webhook bodies, one shared secret per
provider.

Accepted signature header formats:
- ``<hex>`` or ``sha256=<hex>``: HMAC of the raw body. When the request also
  carries the timestamp header, the signed content is ``"<timestamp>.<body>"``
  and the timestamp must be within the tolerance window.
- ``t=<unix>,v1=<hex>``: timestamped scheme, signed content ``"<t>.<body>"``.

All comparisons use ``hmac.compare_digest``.
"""

import hashlib
import hmac
from typing import Dict, List, Mapping, Optional, Tuple

from designdesk.core.clock import Clock, utc_now
from designdesk.core.exceptions import (
    ResourceNotFoundException,
    WebhookVerificationException,
)
from designdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def compute_signature(secret: str, body: bytes, timestamp: Optional[str] = None) -> str:
    """Hex HMAC-SHA256 of ``body`` (prefixed by ``"<timestamp>."`` when given)."""
    content = body if timestamp is None else timestamp.encode() + b"." + body
    return hmac.new(secret.encode(), content, hashlib.sha256).hexdigest()


def _parse_timestamped(header: str) -> Optional[Tuple[str, List[str]]]:
    """Parse ``t=...,v1=...``; None when the header is not in that format."""
    parts = [p.strip() for p in header.split(",") if "=" in p]
    if not parts or not any(p.startswith("t=") for p in parts):
        return None

    timestamp = None
    signatures = []
    for part in parts:
        key, _, value = part.partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


class SignatureVerifier:
    """Authenticates deliveries for the configured providers."""

    def __init__(
        self,
        secrets: Dict[str, str],
        signature_header: str = "X-Signature",
        signature_headers: Optional[Dict[str, str]] = None,
        timestamp_header: str = "X-Signature-Timestamp",
        tolerance_seconds: int = 300,
        clock: Clock = utc_now
    ):
        self._secrets = {name.lower(): secret for name, secret in secrets.items() if secret}
        self._signature_header = signature_header
        self._signature_headers = {k.lower(): v for k, v in (signature_headers or {}).items()}
        self._timestamp_header = timestamp_header
        self._tolerance = tolerance_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, clock: Clock = utc_now) -> "SignatureVerifier":
        """Build from application settings."""
        return cls(
            secrets=settings.webhook_secrets,
            signature_header=settings.webhook_signature_header,
            signature_headers=settings.webhook_signature_headers,
            timestamp_header=settings.webhook_timestamp_header,
            tolerance_seconds=settings.webhook_timestamp_tolerance_seconds,
            clock=clock,
        )

    @property
    def providers(self) -> List[str]:
        return sorted(self._secrets)

    def header_for(self, provider: str) -> str:
        return self._signature_headers.get(provider.lower(), self._signature_header)

    def verify(self, provider: str, body: bytes, headers: Mapping[str, str]) -> None:
        """
        Verify one delivery.

        Args:
            provider: Provider name from the URL
            body: Raw request body, exactly as received
            headers: Request headers (case-insensitive mapping)

        Raises:
            ResourceNotFoundException: provider has no configured secret
            WebhookVerificationException: missing, stale or invalid signature
        """
        secret = self._secrets.get(provider.lower())
        if secret is None:
            raise ResourceNotFoundException("Webhook provider", provider)

        header_name = self.header_for(provider)
        signature = headers.get(header_name)
        if not signature:
            raise WebhookVerificationException(provider, f"Missing {header_name} header")

        timestamped = _parse_timestamped(signature)
        if timestamped is not None:
            timestamp, candidates = timestamped
            if timestamp is None or not candidates:
                raise WebhookVerificationException(provider, "Malformed signature header")
        else:
            timestamp = headers.get(self._timestamp_header)
            value = signature.strip()
            if value.lower().startswith("sha256="):
                value = value[len("sha256="):]
            candidates = [value]

        if timestamp is not None:
            self._check_timestamp(provider, timestamp)

        expected = compute_signature(secret, body, timestamp).encode()
        if not any(
            hmac.compare_digest(expected, c.strip().lower().encode("utf-8", "replace"))
            for c in candidates
        ):
            logger.warning("Webhook signature mismatch", extra={"provider": provider})
            raise WebhookVerificationException(provider, "Invalid signature")

    def _check_timestamp(self, provider: str, timestamp: str) -> None:
        try:
            sent_at = int(timestamp)
        except ValueError:
            raise WebhookVerificationException(provider, "Malformed signature timestamp")

        skew = abs(self._clock().timestamp() - sent_at)
        if skew > self._tolerance:
            logger.warning(
                "Webhook timestamp outside tolerance",
                extra={"provider": provider, "skew_seconds": round(skew), "tolerance": self._tolerance}
            )
            raise WebhookVerificationException(provider, "Signature timestamp outside tolerance")
