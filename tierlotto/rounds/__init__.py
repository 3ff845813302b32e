"""Round lifecycle, winner selection and prize arithmetic."""

from .lifecycle import (
    MIN_TICKETS_TO_CLOSE,
    POOL_TICKET_PERCENTAGES,
    TICKET_NUMBER_MAX,
    RoundLifecycleManager,
    compute_pool_sizes,
)
from .prizes import (
    AMOUNT_MAX,
    POOL_PERCENTAGES,
    pool_allocation,
    prize_per_winner,
    saturating_add,
)
from .seeds import (
    ClockSeedSource,
    FixedSeedSource,
    SeedSource,
    SystemSeedSource,
)
from .selection import WinnerDraw, WinnerSelectionEngine, candidate_ticket

__all__ = [
    "AMOUNT_MAX",
    "ClockSeedSource",
    "FixedSeedSource",
    "MIN_TICKETS_TO_CLOSE",
    "POOL_PERCENTAGES",
    "POOL_TICKET_PERCENTAGES",
    "RoundLifecycleManager",
    "SeedSource",
    "SystemSeedSource",
    "TICKET_NUMBER_MAX",
    "WinnerDraw",
    "WinnerSelectionEngine",
    "candidate_ticket",
    "compute_pool_sizes",
    "pool_allocation",
    "prize_per_winner",
    "saturating_add",
]
