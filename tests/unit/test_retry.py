"""
Unit Tests for BackoffPolicy
"""

import random

import pytest

from engagement_core.app.config import CounterSettings
from engagement_core.services.retry import BackoffPolicy


def test_default_waits_two_then_four_seconds():
    policy = BackoffPolicy()
    assert policy.delay_for(1) == 2.0
    assert policy.delay_for(2) == 4.0


def test_three_attempts_by_default():
    policy = BackoffPolicy()
    assert policy.should_retry(1)
    assert policy.should_retry(2)
    assert not policy.should_retry(3)


def test_max_delay_caps_wait():
    policy = BackoffPolicy(max_delay=3.0)
    assert policy.delay_for(5) == 3.0


def test_jitter_stays_within_fraction():
    policy = BackoffPolicy(jitter=0.5, rng=random.Random(7))
    for attempt in (1, 2, 3):
        base = 2.0**attempt
        assert base <= policy.delay_for(attempt) <= base * 1.5


def test_immediate_policy_never_waits():
    policy = BackoffPolicy.immediate(max_attempts=4)
    assert policy.max_attempts == 4
    assert policy.delay_for(3) == 0.0


def test_from_settings():
    settings = CounterSettings(max_attempts=5, base_delay_seconds=0.5, backoff_multiplier=3.0)
    policy = BackoffPolicy.from_settings(settings)
    assert policy.max_attempts == 5
    assert policy.delay_for(2) == 4.5


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        BackoffPolicy(max_attempts=0)
