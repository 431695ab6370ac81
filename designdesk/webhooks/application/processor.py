"""
Event Processor
================

Registry-based dispatch of verified webhook events to typed async handlers.

Handlers are registered once at startup; registration validates the event
type name and rejects duplicates so a misconfigured registry fails fast
instead of silently dropping events.
"""

import asyncio
import inspect
import re
import time
from contextlib import AbstractAsyncContextManager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from designdesk.config import FailureReason
from designdesk.core.exceptions import ConfigurationException
from designdesk.shared.infrastructure.logging import get_logger, log_latency
from designdesk.webhooks.domain import HandlerResult

logger = get_logger(__name__)

# Handlers receive the event payload and the shared handler context
EventHandler = Callable[[Dict[str, Any], Any], Awaitable[Optional[HandlerResult]]]
TransactionFactory = Callable[[], AbstractAsyncContextManager]

EVENT_TYPE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")


class HandlerRegistry:
    """Maps event-type strings to exactly one async handler."""

    def __init__(self):
        self._handlers: Dict[str, EventHandler] = {}

    def register(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler.

        Raises:
            ConfigurationException: invalid name, non-async handler or duplicate
        """
        if not EVENT_TYPE_PATTERN.match(event_type or ""):
            raise ConfigurationException(
                f"Invalid event type name '{event_type}'",
                {"expected": "dotted lowercase, e.g. invoice.payment_failed"}
            )
        if not inspect.iscoroutinefunction(handler):
            raise ConfigurationException(
                f"Handler for '{event_type}' must be an async function"
            )
        if event_type in self._handlers:
            raise ConfigurationException(
                f"Duplicate handler registration for '{event_type}'",
                {"existing": getattr(self._handlers[event_type], "__name__", repr(self._handlers[event_type]))}
            )
        self._handlers[event_type] = handler

    def handler(self, event_type: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of :meth:`register`."""
        def decorator(func: EventHandler) -> EventHandler:
            self.register(event_type, func)
            return func
        return decorator

    def get(self, event_type: str) -> Optional[EventHandler]:
        return self._handlers.get(event_type)

    def event_types(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, event_type: str) -> bool:
        return event_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


class EventProcessor:
    """
    Runs exactly one handler per event.

    Handler exceptions and timeouts never escape; they come back as a failed
    ``HandlerResult`` so the caller can record them in the failure ledger.
    When a ``transaction`` factory is supplied (a savepoint), the handler's
    writes are rolled back if it fails.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        context: Any = None,
        timeout_seconds: float = 10.0,
        transaction: Optional[TransactionFactory] = None
    ):
        self._registry = registry
        self._context = context
        self._timeout = timeout_seconds
        self._transaction = transaction

    async def _invoke(self, handler: EventHandler, payload: Dict[str, Any]) -> Optional[HandlerResult]:
        if self._transaction is None:
            return await handler(payload, self._context)
        async with self._transaction():
            result = await handler(payload, self._context)
            if result is not None and not result.success:
                # Undo partial writes of a handler that reported failure
                raise _ReportedFailure(result)
            return result

    async def process(self, event_type: str, payload: Dict[str, Any]) -> HandlerResult:
        """
        Dispatch one event.

        Args:
            event_type: Provider event type, e.g. ``invoice.payment_failed``
            payload: Verbatim event body

        Returns:
            HandlerResult: success, message and error detail
        """
        handler = self._registry.get(event_type)
        if handler is None:
            logger.info("No handler registered, ignoring event", extra={"event_type": event_type})
            return HandlerResult.ignored(event_type)

        start = time.perf_counter()
        try:
            with log_latency(logger, "handler_dispatch", event_type=event_type):
                result = await asyncio.wait_for(self._invoke(handler, payload), timeout=self._timeout)
        except _ReportedFailure as e:
            return e.result
        except asyncio.TimeoutError:
            logger.error(
                "Webhook handler timed out",
                extra={"event_type": event_type, "timeout_seconds": self._timeout}
            )
            return HandlerResult.failed(
                f"Handler timed out after {self._timeout}s",
                reason=FailureReason.TIMEOUT
            )
        except Exception as e:
            logger.error(
                "Webhook handler failed",
                extra={
                    "event_type": event_type,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                },
                exc_info=True
            )
            return HandlerResult.failed(
                f"Handler for '{event_type}' raised {type(e).__name__}",
                error=str(e) or type(e).__name__,
            )

        return result or HandlerResult.ok()


class _ReportedFailure(Exception):
    """Carries a handler's failed result out of its savepoint."""

    def __init__(self, result: HandlerResult):
        super().__init__(result.error or result.message)
        self.result = result
