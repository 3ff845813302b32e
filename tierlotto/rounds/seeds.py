"""Sources of the 64-bit seeds consumed by winner selection.

Draw fairness rests entirely on the seed being unpredictable to ticket
buyers, so the engine never derives seeds itself; hosts plug in a source.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

SEED_BITS = 64
SEED_MODULUS = 2**SEED_BITS


def validate_seed(seed: int) -> int:
    """Return ``seed`` unchanged if it is an unsigned 64-bit integer."""

    if isinstance(seed, bool) or not isinstance(seed, int):
        raise TypeError("seed must be an integer")
    if not 0 <= seed < SEED_MODULUS:
        raise ValueError(f"seed must be in [0, 2**{SEED_BITS})")
    return seed


class SeedSource(ABC):
    """Interface of seed providers."""

    @abstractmethod
    def next_seed(self) -> int:
        """Return the next unsigned 64-bit seed."""


class SystemSeedSource(SeedSource):
    """Draw seeds from the operating system's CSPRNG."""

    def next_seed(self) -> int:
        return secrets.randbits(SEED_BITS)


class FixedSeedSource(SeedSource):
    """Replay a predetermined sequence of seeds.

    Useful for audits that re-run a recorded draw sequence and for tests.
    Raises ``LookupError`` once the sequence is exhausted.
    """

    def __init__(self, seeds: Iterable[int]) -> None:
        self._seeds = deque(validate_seed(seed) for seed in seeds)

    def next_seed(self) -> int:
        if not self._seeds:
            raise LookupError("FixedSeedSource has no seeds left")
        return self._seeds.popleft()

    @property
    def remaining(self) -> int:
        return len(self._seeds)


class ClockSeedSource(SeedSource):
    """Timestamp-plus-height seed, ``(micros + block_height) mod 2**64``.

    This formula is predictable by anyone who knows the block schedule and
    is only offered for compatibility with ledgers drawn that way.
    """

    def __init__(
        self,
        block_height: Callable[[], int],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._block_height = block_height
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def next_seed(self) -> int:
        now = self._clock()
        micros = int(now.timestamp()) * 1_000_000 + now.microsecond
        return (micros + self._block_height()) % SEED_MODULUS


__all__ = [
    "SEED_BITS",
    "SEED_MODULUS",
    "ClockSeedSource",
    "FixedSeedSource",
    "SeedSource",
    "SystemSeedSource",
    "validate_seed",
]
