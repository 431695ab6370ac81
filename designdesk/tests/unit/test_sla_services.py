from __future__ import annotations

import pytest

from designdesk.config import SLAStatus, WarningLevel
from designdesk.core.exceptions import (
    ConcurrentModificationException,
    ConfigurationException,
    InvalidStateTransitionException,
    ResourceNotFoundException,
)
from designdesk.sla.application import SLANotificationService, SLATracker
from designdesk.sla.domain import BusinessCalendar, SLAConfig
from designdesk.sla.infrastructure import StaticSLAConfigProvider, YAMLSLAConfigProvider
from designdesk.tests.helpers import (
    FakeNotifier,
    InMemorySLARecordRepository,
    MutableClock,
    ny,
)


@pytest.fixture
def repository() -> InMemorySLARecordRepository:
    return InMemorySLARecordRepository()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(ny(2024, 1, 15, 10))


@pytest.fixture
def tracker(repository, clock) -> SLATracker:
    return SLATracker(repository, StaticSLAConfigProvider(), clock)


async def test_start_uses_default_target(tracker) -> None:
    record = await tracker.start("REQ-1")
    assert record.target_hours == 48
    assert record.status == SLAStatus.ACTIVE
    assert record.started_at == ny(2024, 1, 15, 10)


async def test_start_uses_plan_target(repository, clock) -> None:
    config = SLAConfig(plans={"premium": {"target_hours": 24}})
    tracker = SLATracker(repository, StaticSLAConfigProvider(config), clock)
    record = await tracker.start("REQ-1", plan="premium")
    assert record.target_hours == 24


async def test_start_twice_is_rejected(tracker) -> None:
    await tracker.start("REQ-1")
    with pytest.raises(InvalidStateTransitionException):
        await tracker.start("REQ-1")


async def test_restart_after_completion_opens_new_record(tracker, clock) -> None:
    first = await tracker.start("REQ-1")
    clock.advance(hours=1)
    await tracker.complete("REQ-1")
    clock.advance(hours=1)
    second = await tracker.start("REQ-1")
    assert second.id != first.id


async def test_pause_resume_flow(tracker, clock) -> None:
    await tracker.start("REQ-1")
    clock.set(ny(2024, 1, 15, 12))
    await tracker.pause("REQ-1", "client feedback")
    clock.set(ny(2024, 1, 15, 15))

    evaluation = await tracker.evaluate_subject("REQ-1")
    assert evaluation.business_hours_elapsed == 2
    assert evaluation.status == SLAStatus.PAUSED

    record = await tracker.resume("REQ-1")
    assert record.pause_duration_hours == 3
    assert record.version == 2


async def test_transition_on_unknown_subject(tracker) -> None:
    with pytest.raises(ResourceNotFoundException):
        await tracker.pause("missing")
    with pytest.raises(ResourceNotFoundException):
        await tracker.evaluate_subject("missing")


async def test_stale_version_is_rejected(tracker, repository, clock) -> None:
    record = await tracker.start("REQ-1")
    stale = await repository.get_by_id(record.id)

    await tracker.pause("REQ-1")
    stale.complete(clock(), BusinessCalendar())
    with pytest.raises(ConcurrentModificationException):
        await repository.save(stale)


async def test_metrics(tracker, clock) -> None:
    await tracker.start("REQ-met", target_hours=8)
    await tracker.start("REQ-late", target_hours=2)
    await tracker.start("REQ-open", target_hours=4)
    clock.set(ny(2024, 1, 15, 14))
    await tracker.complete("REQ-met")
    await tracker.complete("REQ-late")

    metrics = await tracker.metrics()
    assert metrics.total_records == 3
    assert metrics.completed_count == 2
    assert metrics.met_count == 1
    assert metrics.violated_count == 1
    assert metrics.adherence_percentage == 50.0
    assert metrics.average_turnaround_hours == 4.0
    assert metrics.active_count == 1
    assert metrics.at_risk_count == 1


async def test_notification_pass_announces_each_level_once(repository, tracker, clock) -> None:
    notifier = FakeNotifier()
    service = SLANotificationService(repository, StaticSLAConfigProvider(), notifier, clock)
    await tracker.start("REQ-1", target_hours=16)

    clock.set(ny(2024, 1, 15, 14))  # 4 elapsed, 12 remaining -> yellow
    summary = await service.run()
    assert summary == {"evaluated": 1, "warnings_sent": 1, "violations_sent": 0, "failed": 0}

    summary = await service.run()
    assert summary["warnings_sent"] == 0

    clock.set(ny(2024, 1, 17, 10))  # 16 elapsed -> red
    summary = await service.run()
    assert summary["violations_sent"] == 1
    assert notifier.sent == [("warning", "REQ-1", WarningLevel.YELLOW), ("violation", "REQ-1", WarningLevel.RED)]

    record = await repository.get_latest_for_subject("REQ-1")
    assert record.last_notified_level == WarningLevel.RED


async def test_failed_notification_is_retried_next_pass(repository, tracker, clock) -> None:
    notifier = FakeNotifier(error="slack down")
    service = SLANotificationService(repository, StaticSLAConfigProvider(), notifier, clock)
    await tracker.start("REQ-1", target_hours=12)

    summary = await service.run()
    assert summary["failed"] == 1
    record = await repository.get_latest_for_subject("REQ-1")
    assert record.last_notified_level == WarningLevel.NONE

    notifier.error = None
    summary = await service.run()
    assert summary["warnings_sent"] == 1


async def test_notification_pass_skips_completed(repository, tracker, clock) -> None:
    notifier = FakeNotifier()
    service = SLANotificationService(repository, StaticSLAConfigProvider(), notifier, clock)
    await tracker.start("REQ-1", target_hours=2)
    clock.set(ny(2024, 1, 15, 16))
    await tracker.complete("REQ-1")

    summary = await service.run()
    assert summary["evaluated"] == 0
    assert notifier.sent == []


def test_yaml_provider_loads_plans_and_thresholds(tmp_path) -> None:
    path = tmp_path / "sla.yaml"
    path.write_text(
        "thresholds:\n  yellow: 8\n"
        "plans:\n  premium:\n    target_hours: 24\n"
    )

    config = YAMLSLAConfigProvider(path, default_target_hours=40).get_config()

    assert config.default_target_hours == 40
    assert config.thresholds.yellow == 8
    assert config.get_target_hours("premium") == 24
    assert config.business_hours.start_hour == 9


def test_yaml_provider_missing_file_uses_defaults(tmp_path) -> None:
    config = YAMLSLAConfigProvider(tmp_path / "absent.yaml").get_config()
    assert config.default_target_hours == 48
    assert config.plans == {}


def test_yaml_provider_rejects_invalid_file(tmp_path) -> None:
    path = tmp_path / "sla.yaml"
    path.write_text("default_target_hours: 0\n")

    with pytest.raises(ConfigurationException):
        YAMLSLAConfigProvider(path)
