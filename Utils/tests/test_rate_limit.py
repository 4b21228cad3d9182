# Utils/tests/test_rate_limit.py
# Pacing policies between records.

import asyncio
import random

import pytest

from Utils.rate_limit import POLICY_PRESETS, RateLimiter, build_policy


def test_standard_policy_stays_in_band():
    rng = random.Random(7)
    policy = build_policy("standard")
    delays = [policy.next_delay(rng) for _ in range(500)]
    assert all(20.0 <= d <= 30.0 for d in delays)
    # Mostly the short tier.
    assert sum(1 for d in delays if d <= 25.0) > 300


def test_fast_policy_range():
    rng = random.Random(1)
    policy = build_policy("FAST")
    assert all(5.0 <= policy.next_delay(rng) <= 10.0 for _ in range(100))


def test_none_policy_is_zero():
    assert build_policy("none").next_delay(random.Random()) == 0.0


def test_custom_policy_uses_bounds():
    policy = build_policy("custom", 2.0, 3.0)
    rng = random.Random(3)
    assert all(2.0 <= policy.next_delay(rng) <= 3.0 for _ in range(50))


@pytest.mark.parametrize("name,low,high", [("custom", 5.0, 1.0), ("custom", -1.0, 2.0), ("turbo", 0, 0)])
def test_invalid_policies_raise(name, low, high):
    with pytest.raises(ValueError):
        build_policy(name, low, high)


def test_limiter_sleeps_drawn_delay(recording_sleep):
    limiter = RateLimiter(build_policy("custom", 4.0, 4.0), sleep=recording_sleep)
    waited = asyncio.run(limiter.wait())
    assert waited == 4.0
    assert recording_sleep.calls == [4.0]


def test_limiter_skips_sleep_for_none(recording_sleep):
    limiter = RateLimiter(POLICY_PRESETS["none"], sleep=recording_sleep)
    assert asyncio.run(limiter.wait()) == 0.0
    assert recording_sleep.calls == []
