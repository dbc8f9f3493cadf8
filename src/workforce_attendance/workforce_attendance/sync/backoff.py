from __future__ import annotations

import random
from typing import Optional

from ..core.constants import (
    DEFAULT_RECONNECT_BASE_DELAY_S,
    DEFAULT_RECONNECT_JITTER,
    DEFAULT_RECONNECT_MAX_DELAY_S,
)
from ..core.settings import TrackerSettings


class ExponentialBackoff:
    """Reconnect delays: base * 2^attempt, capped, then shortened by up to ``jitter``.

    With jitter 0.2 a 10 s delay lands somewhere in [8 s, 10 s], so a fleet of
    clients dropped together does not reconnect in lockstep. The cap is never
    exceeded.
    """

    def __init__(
        self,
        *,
        base_delay_s: float = DEFAULT_RECONNECT_BASE_DELAY_S,
        max_delay_s: float = DEFAULT_RECONNECT_MAX_DELAY_S,
        jitter: float = DEFAULT_RECONNECT_JITTER,
        rng: Optional[random.Random] = None,
    ):
        if base_delay_s <= 0 or max_delay_s < base_delay_s:
            raise ValueError("need 0 < base_delay_s <= max_delay_s")
        if not 0.0 <= jitter < 1.0:
            raise ValueError("jitter must be in [0, 1)")
        self.base_delay_s = float(base_delay_s)
        self.max_delay_s = float(max_delay_s)
        self.jitter = float(jitter)
        self._rng = rng or random.Random()
        self.attempts = 0

    def peek(self) -> float:
        """Un-jittered delay the next call to ``next_delay`` starts from."""
        return min(self.max_delay_s, self.base_delay_s * (2 ** min(self.attempts, 32)))

    def next_delay(self) -> float:
        delay = self.peek()
        self.attempts += 1
        if self.jitter:
            delay *= 1.0 - self.jitter * self._rng.random()
        return delay

    def reset(self) -> None:
        self.attempts = 0

    @classmethod
    def from_settings(cls, settings: TrackerSettings, *, rng: Optional[random.Random] = None) -> "ExponentialBackoff":
        return cls(
            base_delay_s=settings.reconnect_base_delay_s,
            max_delay_s=settings.reconnect_max_delay_s,
            jitter=settings.reconnect_jitter,
            rng=rng,
        )
