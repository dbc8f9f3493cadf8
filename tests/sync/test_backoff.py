from __future__ import annotations

import random

import pytest

from src.workforce_attendance.workforce_attendance.core.settings import TrackerSettings
from src.workforce_attendance.workforce_attendance.sync.backoff import ExponentialBackoff


def test_delays_double_until_the_cap():
    backoff = ExponentialBackoff(base_delay_s=1, max_delay_s=8, jitter=0)

    assert [backoff.next_delay() for _ in range(6)] == [1, 2, 4, 8, 8, 8]


def test_reset_starts_over():
    backoff = ExponentialBackoff(base_delay_s=0.5, max_delay_s=30, jitter=0)
    for _ in range(4):
        backoff.next_delay()

    backoff.reset()

    assert backoff.attempts == 0
    assert backoff.next_delay() == 0.5


def test_jitter_only_shortens_the_delay():
    backoff = ExponentialBackoff(base_delay_s=1, max_delay_s=10, jitter=0.2, rng=random.Random(7))
    for _ in range(50):
        ceiling = backoff.peek()
        delay = backoff.next_delay()
        assert ceiling * 0.8 <= delay <= ceiling <= 10


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_delay_s": 0},
        {"base_delay_s": 5, "max_delay_s": 1},
        {"jitter": 1.0},
        {"jitter": -0.1},
    ],
)
def test_rejects_bad_parameters(kwargs):
    with pytest.raises(ValueError):
        ExponentialBackoff(**kwargs)


def test_from_settings():
    settings = TrackerSettings(reconnect_base_delay_s=2, reconnect_max_delay_s=4, reconnect_jitter=0)
    backoff = ExponentialBackoff.from_settings(settings)

    assert [backoff.next_delay() for _ in range(3)] == [2, 4, 4]
