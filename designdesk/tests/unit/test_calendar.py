from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from designdesk.sla.domain import BusinessCalendar, BusinessHoursConfig
from designdesk.sla.domain.calendar import format_duration, time_remaining_display
from designdesk.tests.helpers import ny

calendar = BusinessCalendar()


def test_weekend_span_counts_nothing() -> None:
    # Saturday 00:00 -> Monday 00:00
    assert calendar.business_hours(ny(2024, 1, 13), ny(2024, 1, 15)) == 0


def test_window_is_clamped_to_business_hours() -> None:
    assert calendar.business_hours(ny(2024, 1, 15, 8), ny(2024, 1, 15, 18)) == 8


def test_multi_day_span_is_additive() -> None:
    # Mon 10-17 (7) + Tue 9-17 (8) + Wed 9-15 (6)
    assert calendar.business_hours(ny(2024, 1, 15, 10), ny(2024, 1, 17, 15)) == 21


def test_start_after_end_is_zero() -> None:
    assert calendar.business_hours(ny(2024, 1, 15, 12), ny(2024, 1, 15, 10)) == 0
    assert calendar.business_hours(ny(2024, 1, 15, 12), ny(2024, 1, 15, 12)) == 0


def test_business_hours_monotonic_in_end() -> None:
    start = ny(2024, 1, 12, 15)  # Friday afternoon
    previous = 0
    for step in range(24 * 5):
        counted = calendar.business_hours(start, start + timedelta(hours=step, minutes=30))
        assert counted >= previous
        previous = counted
    # Fri 15-17 (2) + Mon 9-17 (8) + Tue 9-17 (8) + Wed until 14:30 (6)
    assert previous == 24


def test_mid_hour_start_counts_its_bucket() -> None:
    # Whole-hour floor semantics: 10:30 -> 12:30 steps at 10:30 and 11:30.
    assert calendar.business_hours(ny(2024, 1, 15, 10, 30), ny(2024, 1, 15, 12, 30)) == 2
    assert calendar.business_hours(ny(2024, 1, 15, 16, 30), ny(2024, 1, 15, 17, 10)) == 1


def test_naive_datetimes_are_local_time() -> None:
    naive = calendar.business_hours(datetime(2024, 1, 15, 9), datetime(2024, 1, 15, 12))
    assert naive == 3


def test_aware_datetimes_are_converted() -> None:
    # 14:00 UTC is 09:00 in New York in January.
    start = datetime(2024, 1, 15, 14, tzinfo=timezone.utc)
    end = datetime(2024, 1, 15, 17, tzinfo=timezone.utc)
    assert calendar.business_hours(start, end) == 3


def test_dst_spring_forward_counts_real_hours() -> None:
    # Sunday 2024-03-10 loses 02:00 locally; Monday still counts 8.
    assert calendar.business_hours(ny(2024, 3, 9), ny(2024, 3, 12)) == 8


def test_is_business_hour_edges() -> None:
    assert calendar.is_business_hour(ny(2024, 1, 15, 9))
    assert calendar.is_business_hour(ny(2024, 1, 15, 16, 59))
    assert not calendar.is_business_hour(ny(2024, 1, 15, 17))
    assert not calendar.is_business_hour(ny(2024, 1, 13, 12))


def test_next_business_hour_rolls_over_weekend() -> None:
    # Friday 16:30 -> Friday 17:00 is out of window -> Monday 09:00
    result = calendar.next_business_hour(ny(2024, 1, 19, 16, 30))
    assert (result.weekday(), result.hour) == (0, 9)
    assert result.date().isoformat() == "2024-01-22"


def test_next_business_hour_before_opening() -> None:
    result = calendar.next_business_hour(ny(2024, 1, 15, 6))
    assert result == ny(2024, 1, 15, 9)


def test_estimated_completion_walks_business_hours() -> None:
    assert calendar.estimated_completion(0, ny(2024, 1, 15, 10)) == ny(2024, 1, 15, 10)
    # 10 hours from Mon 10:00: 7 hours Monday, 3 more Tuesday -> Tue 12:00
    assert calendar.estimated_completion(10, ny(2024, 1, 15, 10)) == ny(2024, 1, 16, 12)


def test_total_elapsed_hours_is_wall_clock() -> None:
    assert calendar.total_elapsed_hours(ny(2024, 1, 13), ny(2024, 1, 15)) == 48.0


def test_custom_calendar_window() -> None:
    config = BusinessHoursConfig(work_days=[5], start_hour=10, end_hour=14, timezone="Europe/London")
    weekend_shop = BusinessCalendar(config)
    start = datetime(2024, 1, 13, 0, tzinfo=timezone.utc)  # Saturday
    end = datetime(2024, 1, 14, 0, tzinfo=timezone.utc)
    assert weekend_shop.business_hours(start, end) == 4


@pytest.mark.parametrize(
    "kwargs",
    [
        {"work_days": []},
        {"work_days": [7]},
        {"start_hour": 17, "end_hour": 9},
        {"timezone": "Mars/Olympus_Mons"},
    ],
)
def test_invalid_business_hours_config(kwargs) -> None:
    with pytest.raises(ValidationError):
        BusinessHoursConfig(**kwargs)


def test_time_remaining_display() -> None:
    assert time_remaining_display(20) == "2d 4h remaining"
    assert time_remaining_display(16) == "2d remaining"
    assert time_remaining_display(3) == "3h remaining"
    assert time_remaining_display(0.5) == "30m remaining"
    assert time_remaining_display(0) == "SLA deadline passed"


def test_format_duration() -> None:
    assert format_duration(0.5) == "30 minutes"
    assert format_duration(5.5) == "5.5 hours"
    assert format_duration(50) == "2d 2h"
