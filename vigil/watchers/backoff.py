"""Retry/backoff policy for failing checkers.

After the *n*-th consecutive checker failure the loop waits::

    min(base * 2**n, maximum)

seconds before the next attempt, less a random share of up to ``jitter``
of the growth over the previous step, so that watchers polling the same
external resource do not retry in lockstep.  Jitter never reaches below the
previous step, so consecutive delays are non-decreasing, and no jitter is
applied once the cap is reached.  Once ``max_failures`` is reached the
watcher is deactivated instead of retried.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from vigil.config import SupervisorConfig


@dataclass(frozen=True)
class BackoffPolicy:
    base_seconds: float = 1.0
    max_seconds: float = 300.0
    jitter: float = 0.1
    max_failures: int = 5
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.base_seconds <= 0:
            raise ValueError(f"base_seconds must be positive, got {self.base_seconds}")
        if self.max_seconds < self.base_seconds:
            raise ValueError("max_seconds must be >= base_seconds")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1], got {self.jitter}")
        if self.max_failures < 1:
            raise ValueError(f"max_failures must be >= 1, got {self.max_failures}")

    @classmethod
    def from_config(cls, config: SupervisorConfig) -> "BackoffPolicy":
        return cls(
            base_seconds=config.base_backoff_seconds,
            max_seconds=config.max_backoff_seconds,
            jitter=config.backoff_jitter,
            max_failures=config.max_consecutive_failures,
        )

    def delay_for(self, failures: int) -> float:
        """Deterministic delay after *failures* consecutive failures (no jitter)."""
        if failures <= 0:
            return 0.0
        exponent = min(failures, 64)
        return min(self.base_seconds * (2 ** exponent), self.max_seconds)

    def next_delay(self, failures: int) -> float:
        """Jittered delay actually slept; never above ``max_seconds``.

        Drawn from ``[nominal - jitter * growth, nominal]`` where *growth* is
        the increase over ``delay_for(failures - 1)``, so the result is never
        below any delay returned for fewer failures.
        """
        delay = self.delay_for(failures)
        growth = delay - self.delay_for(failures - 1)
        if self.jitter and growth > 0:
            delay -= self.rng.uniform(0.0, self.jitter * growth)
        return delay

    def exhausted(self, failures: int) -> bool:
        return failures >= self.max_failures
