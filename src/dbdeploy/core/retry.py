"""Retry budget and randomized backoff for lock conflicts."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Callable

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_MAX_BACKOFF_SECONDS = 5.0


@dataclass
class RetryPolicy:
    """
    How often and how long to back off when an apply hits a deadlock or
    lock timeout.

    Attributes:
        max_attempts: Total attempts per object, including the first one.
        max_backoff: Upper bound in seconds for the random sleep between attempts.
        rng: Random source for the jitter. Inject a seeded one for tests.
        sleep: Sleep function. Inject a recorder for tests.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_backoff: float = DEFAULT_MAX_BACKOFF_SECONDS
    rng: random.Random = field(default_factory=random.SystemRandom)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.max_backoff < 0:
            raise ValueError("max_backoff must be >= 0")

    def backoff(self) -> float:
        """Sleep a random duration so concurrent retriers fall out of lockstep."""
        delay = self.rng.uniform(0, self.max_backoff)
        self.sleep(delay)
        return delay
