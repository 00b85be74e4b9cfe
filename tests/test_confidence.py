"""
Confidence policy: reinforcement cap, time decay and the auto-apply gate.
"""

from datetime import datetime, timedelta

import pytest

from invoice_memory.core.confidence import (
    MAX_CONFIDENCE,
    apply_decay,
    days_since_use,
    decay,
    reinforce,
    should_auto_apply,
)


def test_reinforce_adds_increment():
    """Test a single reinforcement step."""
    assert reinforce(0.3) == pytest.approx(0.35)


def test_reinforce_is_capped():
    """Test reinforcement never exceeds the cap."""
    assert reinforce(0.93) == MAX_CONFIDENCE
    assert reinforce(MAX_CONFIDENCE) == MAX_CONFIDENCE


def test_repeated_reinforcement_is_monotonic():
    """Test confidence climbs towards the cap and stays there."""
    value = 0.0
    previous = value
    for _ in range(30):
        value = reinforce(value)
        assert value >= previous
        previous = value
    assert value == MAX_CONFIDENCE


def test_decay_per_day_and_floor():
    """Test decay subtracts 0.01 per day and floors at zero."""
    assert decay(0.5, 10) == pytest.approx(0.4)
    assert decay(0.05, 10) == 0.0
    assert decay(0.5, 0) == 0.5


def test_days_since_use_never_used():
    assert days_since_use(None) == 0


def test_days_since_use_counts_whole_days():
    """Test partial days are floored."""
    now = datetime(2024, 3, 10, 12, 0, 0)
    assert days_since_use(now - timedelta(days=3, hours=23), now) == 3
    assert days_since_use((now - timedelta(days=5)).isoformat(), now) == 5


def test_days_since_use_future_timestamp_is_zero():
    now = datetime(2024, 3, 10)
    assert days_since_use(now + timedelta(days=2), now) == 0


def test_apply_decay_uses_last_used_at():
    now = datetime(2024, 3, 10)
    assert apply_decay(0.8, now - timedelta(days=20), now) == pytest.approx(0.6)
    assert apply_decay(0.8, None, now) == 0.8


@pytest.mark.parametrize("confidence,reinforced,expected", [
    (0.75, 2, True),
    (0.95, 5, True),
    (0.74, 10, False),
    (0.9, 1, False),
    (0.0, 0, False),
])
def test_should_auto_apply_gate(confidence, reinforced, expected):
    """Test both thresholds have to be met."""
    assert should_auto_apply(confidence, reinforced) is expected
