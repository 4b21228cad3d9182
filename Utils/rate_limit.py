"""Randomised pacing between records for the enrichment pipeline.
Policies are picked by name from RATE_LIMIT_POLICY (see config/settings.py)."""

import random
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "RateLimitTier",
    "RateLimitPolicy",
    "RateLimiter",
    "POLICY_PRESETS",
    "build_policy",
]


@dataclass(frozen=True)
class RateLimitTier:
    """A weighted ``[min_seconds, max_seconds]`` band of wait times."""

    weight: float
    min_seconds: float
    max_seconds: float


@dataclass(frozen=True)
class RateLimitPolicy:
    """Named mix of tiers; one tier is drawn by weight, then a uniform delay."""

    name: str
    tiers: tuple[RateLimitTier, ...] = ()

    def next_delay(self, rng: random.Random) -> float:
        """Draw the next wait in seconds (``0.0`` for an empty policy)."""
        if not self.tiers:
            return 0.0
        total = sum(t.weight for t in self.tiers)
        pick = rng.random() * total
        for tier in self.tiers:
            pick -= tier.weight
            if pick < 0:
                break
        return rng.uniform(tier.min_seconds, tier.max_seconds)


POLICY_PRESETS: dict[str, RateLimitPolicy] = {
    # 80% of waits in 20-25s, 20% in 25-30s.
    "standard": RateLimitPolicy(
        "standard",
        (RateLimitTier(0.8, 20.0, 25.0), RateLimitTier(0.2, 25.0, 30.0)),
    ),
    "fast": RateLimitPolicy("fast", (RateLimitTier(1.0, 5.0, 10.0),)),
    "none": RateLimitPolicy("none"),
}


def build_policy(name: str, min_seconds: float = 5.0, max_seconds: float = 10.0) -> RateLimitPolicy:
    """Resolve a policy name to a :class:`RateLimitPolicy`.

    Args:
        name: ``standard``, ``fast``, ``none`` or ``custom``.
        min_seconds: Lower bound for ``custom``.
        max_seconds: Upper bound for ``custom``.

    Raises:
        ValueError: For an unknown name or an inverted/negative custom range.
    """
    key = (name or "standard").strip().lower()
    if key == "custom":
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError(
                f"Invalid custom rate limit range: {min_seconds}-{max_seconds}s"
            )
        return RateLimitPolicy(
            "custom", (RateLimitTier(1.0, min_seconds, max_seconds),)
        )
    if key not in POLICY_PRESETS:
        raise ValueError(f"Unknown rate limit policy: {name!r}")
    return POLICY_PRESETS[key]


class RateLimiter:
    """Sleeps a policy-drawn interval between records."""

    def __init__(
        self,
        policy: RateLimitPolicy,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def wait(self) -> float:
        """Sleep for the next drawn delay and return it in seconds."""
        seconds = self.policy.next_delay(self._rng)
        if seconds <= 0:
            return 0.0
        logger.info("Waiting %ds before next record | policy=%s", round(seconds), self.policy.name)
        await self._sleep(seconds)
        return seconds
