"""Prize arithmetic for tiered winner pools."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from ..models.round import WinnerPool

AMOUNT_MAX = 2**128 - 1
"""Largest representable amount (unsigned 128-bit, in the smallest unit)."""

# Share of the prize pool paid out to each tier. Smaller tiers receive a
# larger share per winner.
POOL_PERCENTAGES: Mapping[WinnerPool, int] = MappingProxyType(
    {
        WinnerPool.POOL1: 20,
        WinnerPool.POOL2: 25,
        WinnerPool.POOL3: 30,
        WinnerPool.POOL4: 25,
        WinnerPool.COMPLETE: 0,
    }
)


def saturating_add(amount: int, increment: int) -> int:
    """Return ``amount + increment`` capped at :data:`AMOUNT_MAX`."""

    if amount < 0 or increment < 0:
        raise ValueError("amounts must be non-negative")
    return min(amount + increment, AMOUNT_MAX)


def pool_allocation(prize_pool: int, pool: WinnerPool) -> int:
    """Portion of ``prize_pool`` reserved for ``pool``, rounded down."""

    return prize_pool * POOL_PERCENTAGES[pool] // 100


def prize_per_winner(prize_pool: int, pool: WinnerPool, winners_in_pool: int) -> int:
    """Prize paid to each winner of ``pool``.

    Parameters
    ----------
    prize_pool : int
        Total amount collected by the round.
    pool : WinnerPool
        Tier the winner was drawn for.
    winners_in_pool : int
        Number of winners allotted to ``pool`` (not the number drawn so far).

    Returns
    -------
    int
        ``floor(allocation / winners_in_pool)``, or ``0`` when the pool has no
        winners. The remainder of the division stays undistributed.
    """

    if winners_in_pool <= 0:
        return 0
    return min(pool_allocation(prize_pool, pool) // winners_in_pool, AMOUNT_MAX)


__all__ = [
    "AMOUNT_MAX",
    "POOL_PERCENTAGES",
    "pool_allocation",
    "prize_per_winner",
    "saturating_add",
]
