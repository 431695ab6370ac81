from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from designdesk.config import FailureReason
from designdesk.core.exceptions import ConfigurationException
from designdesk.webhooks.application import EventProcessor, HandlerRegistry, build_default_registry
from designdesk.webhooks.domain import HandlerResult


async def _noop(payload, context):
    return HandlerResult.ok("done")


@pytest.mark.parametrize("name", ["", "invoice", "Invoice.Paid", "invoice..paid", "invoice.paid.", "1invoice.paid"])
def test_register_rejects_bad_names(name) -> None:
    with pytest.raises(ConfigurationException):
        HandlerRegistry().register(name, _noop)


def test_register_rejects_duplicates() -> None:
    registry = HandlerRegistry()
    registry.register("invoice.paid", _noop)
    with pytest.raises(ConfigurationException, match="Duplicate"):
        registry.register("invoice.paid", _noop)


def test_register_rejects_sync_handlers() -> None:
    def sync_handler(payload, context):
        return None

    with pytest.raises(ConfigurationException, match="async"):
        HandlerRegistry().register("invoice.paid", sync_handler)


def test_decorator_registers_handler() -> None:
    registry = HandlerRegistry()

    @registry.handler("customer.subscription.created")
    async def created(payload, context):
        return None

    assert "customer.subscription.created" in registry
    assert registry.get("customer.subscription.created") is created
    assert len(registry) == 1


def test_default_registry_covers_billing_and_tracker_events() -> None:
    registry = build_default_registry()
    assert len(registry) == 9
    assert "invoice.payment_failed" in registry
    assert "request.completed" in registry


async def test_unknown_event_type_is_a_successful_noop() -> None:
    result = await EventProcessor(HandlerRegistry()).process("ping.sent", {})
    assert result.success
    assert not result.handled


async def test_handler_receives_payload_and_context() -> None:
    seen = []
    registry = HandlerRegistry()

    @registry.handler("invoice.paid")
    async def paid(payload, context):
        seen.append((payload, context))

    context = object()
    result = await EventProcessor(registry, context).process("invoice.paid", {"id": "evt_1"})
    assert result.success
    assert seen == [({"id": "evt_1"}, context)]


async def test_handler_exception_becomes_failed_result() -> None:
    registry = HandlerRegistry()

    @registry.handler("invoice.paid")
    async def paid(payload, context):
        raise RuntimeError("database unavailable")

    result = await EventProcessor(registry).process("invoice.paid", {})
    assert not result.success
    assert result.reason == FailureReason.HANDLER_ERROR
    assert result.error == "database unavailable"


async def test_slow_handler_times_out() -> None:
    registry = HandlerRegistry()

    @registry.handler("invoice.paid")
    async def paid(payload, context):
        await asyncio.sleep(5)

    result = await EventProcessor(registry, timeout_seconds=0.05).process("invoice.paid", {})
    assert not result.success
    assert result.reason == FailureReason.TIMEOUT


class _RecordingTransaction:
    def __init__(self):
        self.committed = 0
        self.rolled_back = 0

    @asynccontextmanager
    async def __call__(self):
        try:
            yield
        except BaseException:
            self.rolled_back += 1
            raise
        else:
            self.committed += 1


async def test_reported_failure_rolls_back_transaction() -> None:
    registry = HandlerRegistry()

    @registry.handler("invoice.paid")
    async def paid(payload, context):
        return HandlerResult.failed("bad state")

    transaction = _RecordingTransaction()
    result = await EventProcessor(registry, transaction=transaction).process("invoice.paid", {})
    assert not result.success
    assert result.message == "bad state"
    assert transaction.rolled_back == 1
    assert transaction.committed == 0


async def test_success_commits_transaction() -> None:
    registry = HandlerRegistry()
    registry.register("invoice.paid", _noop)

    transaction = _RecordingTransaction()
    result = await EventProcessor(registry, transaction=transaction).process("invoice.paid", {})
    assert result.success
    assert result.message == "done"
    assert transaction.committed == 1
