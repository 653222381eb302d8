from __future__ import annotations

from random import Random

import pytest

from leadsniper.services.prospecting.pacing import FixedIntervalPacer, RetrySchedule


def test_retry_schedule_doubles_and_caps():
    schedule = RetrySchedule(attempts=4, initial=1.0, ceiling=3.0, spread=0.0)

    assert list(schedule.delays()) == [(1, 1.0), (2, 2.0), (3, 3.0), (4, 3.0)]


def test_retry_schedule_spread_stays_within_bounds():
    schedule = RetrySchedule(attempts=3, initial=1.0, ceiling=30.0, spread=0.5)

    for attempt, delay in schedule.delays(Random(7)):
        nominal = 2 ** (attempt - 1)
        assert nominal <= delay <= nominal * 1.5


@pytest.mark.parametrize(
    "kwargs",
    [{"attempts": 0}, {"initial": 0}, {"initial": 5.0, "ceiling": 1.0}, {"spread": -0.1}],
)
def test_retry_schedule_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        RetrySchedule(**kwargs)


def test_fixed_interval_pacer_rejects_negative_delay():
    with pytest.raises(ValueError):
        FixedIntervalPacer(-1)
