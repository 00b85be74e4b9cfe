"""
Confidence policy: reinforcement, time decay and the auto-apply gate.
Pure functions. Stored confidence is full strength; decay is applied only when a value is read for a decision.
"""

import math
from datetime import datetime
from typing import Optional, Union

CONFIDENCE_INCREMENT = 0.05
DECAY_PER_DAY = 0.01
MAX_CONFIDENCE = 0.95
MIN_CONFIDENCE = 0.0

AUTO_APPLY_MIN_CONFIDENCE = 0.75
AUTO_APPLY_MIN_REINFORCEMENTS = 2

SECONDS_PER_DAY = 60 * 60 * 24


def reinforce(confidence: float) -> float:
    """Raise confidence by one increment, capped at MAX_CONFIDENCE."""
    return min(MAX_CONFIDENCE, confidence + CONFIDENCE_INCREMENT)


def decay(confidence: float, days_unused: float) -> float:
    """Lower confidence by DECAY_PER_DAY for each unused day, floored at zero."""
    return max(MIN_CONFIDENCE, confidence - days_unused * DECAY_PER_DAY)


def days_since_use(last_used_at: Optional[Union[datetime, str]], now: Optional[datetime] = None) -> int:
    """Whole days since last use; 0 if the memory was never used."""
    if last_used_at is None:
        return 0
    if isinstance(last_used_at, str):
        last_used_at = datetime.fromisoformat(last_used_at)

    now = now or datetime.now()
    elapsed = (now - last_used_at).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def apply_decay(confidence: float, last_used_at: Optional[Union[datetime, str]], now: Optional[datetime] = None) -> float:
    """Confidence as it should be read for a live decision."""
    return decay(confidence, days_since_use(last_used_at, now))


def should_auto_apply(confidence: float, reinforced_count: int) -> bool:
    """The single gate for correcting a document without human review."""
    return confidence >= AUTO_APPLY_MIN_CONFIDENCE and reinforced_count >= AUTO_APPLY_MIN_REINFORCEMENTS
