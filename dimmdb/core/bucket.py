"""Leaky bucket threshold accounting.

A bucket holds up to ``capacity`` events per ``agetime`` seconds. Events
drain out of the bucket in proportion to the time elapsed since it was last
aged. When an accounted event fills the bucket, its contents move into
``excess``, the bucket empties, and the caller is told the threshold was
crossed.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable


class ConfigError(Exception):
    """Error parsing a threshold configuration."""

    pass


# Seconds per unit suffix, largest first for rendering
TIME_UNITS = {"d": 24 * 3600, "h": 3600, "m": 60, "s": 1}

DEFAULT_AGETIME = 24 * 3600

# "<capacity> / [<n>]<unit>", e.g. "10 / 24h"
THRESHOLD_PATTERN = re.compile(r"^\s*(\d+)\s*(?:/\s*(\d*)\s*([smhd]?)\s*)?$")


@dataclass(frozen=True)
class BucketConfig:
    """Threshold settings for one error class."""

    capacity: int
    agetime: int = DEFAULT_AGETIME
    trigger: str | None = None


@dataclass
class BucketState:
    """Mutable bucket contents owned by a single error counter."""

    count: int = 0
    excess: int = 0
    tstamp: int = 0


def parse_bucket_config(
    text: str,
    trigger: str | None = None,
) -> BucketConfig:
    """
    Parse a threshold string into a BucketConfig.

    Args:
        text: Threshold such as "10 / 24h" or "1 / 1d"
        trigger: Trigger program path for this class

    Returns:
        Parsed BucketConfig

    Raises:
        ConfigError: If the string is not a valid threshold
    """
    match = THRESHOLD_PATTERN.match(str(text))
    if not match:
        raise ConfigError(f"Invalid threshold: {text!r}")

    capacity = int(match.group(1))
    agetime = DEFAULT_AGETIME
    if match.group(2) is not None:
        amount = int(match.group(2)) if match.group(2) else 1
        agetime = amount * TIME_UNITS.get(match.group(3) or "s", 1)
        if agetime == 0:
            raise ConfigError(f"Threshold age time must be positive: {text!r}")

    return BucketConfig(capacity=capacity, agetime=agetime, trigger=trigger)


def format_agetime(seconds: int) -> str:
    """Render an age time with the largest unit that divides it."""
    for suffix, unit in TIME_UNITS.items():
        if seconds and seconds % unit == 0:
            return f"{seconds // unit}{suffix}"
    return f"{seconds}s"


class LeakyBucketAccountant:
    """Threshold accountant backed by leaky buckets."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def now(self) -> int:
        return int(self.clock())

    def init_state(self) -> BucketState:
        return BucketState(tstamp=self.now())

    def age(self, conf: BucketConfig, state: BucketState, now: int) -> None:
        """Drain the bucket for the time elapsed since it was last aged."""
        diff = now - state.tstamp
        if conf.agetime and diff >= conf.agetime:
            drained = int(diff / conf.agetime * conf.capacity)
            state.tstamp = now
            state.count = max(state.count - drained, 0)

    def account(
        self,
        conf: BucketConfig,
        state: BucketState,
        delta: int,
        at: int,
    ) -> bool:
        """
        Add delta events at time ``at``.

        Returns:
            True if the bucket overflowed, i.e. the threshold was crossed
        """
        if not conf.capacity:
            return False
        self.age(conf, state, at)
        state.count += delta
        if state.count >= conf.capacity:
            state.excess += state.count
            state.count = 0
            return True
        return False

    def summarize(self, conf: BucketConfig, state: BucketState) -> str:
        """Human readable rate, e.g. "12 in 24h"."""
        self.age(conf, state, self.now())
        return f"{self.threshold_count(state)} in {format_agetime(conf.agetime)}"

    def is_idle(self, state: BucketState) -> bool:
        return state.count == 0

    def threshold_count(self, state: BucketState) -> int:
        return state.count + state.excess
