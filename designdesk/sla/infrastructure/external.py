"""
SLA External Service Integrations
==================================

External services for SLA tracking:
- Slack webhook notifications (the SLA notify sink)
- Circuit breaker guarding the outbound calls
"""

import asyncio
import time
from typing import Optional, Dict, Any

import httpx

from designdesk.config import NotificationType
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.sla.application.services import INotifier
from designdesk.sla.domain import SLARecord, SLAEvaluation

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        monotonic=time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._monotonic = monotonic
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            elapsed = self._monotonic() - self._last_failure_time
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = self._monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackClient(INotifier):
    """
    Slack webhook notifier with circuit breaker and retry logic.

    Handles sending SLA warnings and violations to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling

    Without a webhook URL every call is a logged no-op returning False, so
    the notification pass keeps the level pending.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: str = "#sla-alerts",
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    @classmethod
    def from_settings(cls, settings) -> "SlackClient":
        return cls(
            webhook_url=settings.slack_webhook_url,
            channel=settings.slack_channel,
            timeout_seconds=settings.slack_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    def _build_message(
        self,
        notification_type: str,
        record: SLARecord,
        evaluation: SLAEvaluation
    ) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        if notification_type == NotificationType.VIOLATION:
            emoji = ":rotating_light:"
            header_text = "SLA Violation"
            status_text = ":red_circle: DEADLINE PASSED"
        else:
            emoji = ":warning:"
            header_text = "SLA Warning"
            status_text = ":large_yellow_circle: AT RISK"

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {header_text}",
                    "emoji": True
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Subject:*\n{record.subject_id}"},
                    {"type": "mrkdwn", "text": f"*Status:*\n{status_text}"},
                    {"type": "mrkdwn", "text": f"*Target:*\n{record.target_hours:g} business hours"},
                    {"type": "mrkdwn", "text": f"*Elapsed:*\n{evaluation.business_hours_elapsed:g}h"},
                    {"type": "mrkdwn", "text": f"*Remaining:*\n{evaluation.time_remaining_display}"},
                    {"type": "mrkdwn", "text": f"*Plan:*\n{(record.plan or 'default').title()}"}
                ]
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": (
                            f"Started: {record.started_at.isoformat()} | "
                            f"Complete: {evaluation.percentage_complete:.1f}%"
                        )
                    }
                ]
            }
        ]

        return {
            "channel": self._channel,
            "text": f"{header_text}: {record.subject_id}",
            "blocks": blocks
        }

    async def notify(
        self,
        notification_type: str,
        record: SLARecord,
        evaluation: SLAEvaluation
    ) -> bool:
        """
        Send notification to Slack webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"subject_id": record.subject_id}
            )
            return False

        message = self._build_message(notification_type, record, evaluation)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={
                            "subject_id": record.subject_id,
                            "notification_type": notification_type
                        }
                    )
                    return True

                logger.warning(
                    "Slack webhook returned non-200",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )

            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "subject_id": record.subject_id
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
