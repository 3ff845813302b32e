"""Column type for token amounts."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

# u128 maximum has 39 decimal digits.
AMOUNT_DIGITS = 39


class AmountType(TypeDecorator):
    """Store non-negative integer amounts as decimal text.

    Amounts go up to 2**128 - 1, which neither a 64-bit INTEGER nor SQLite's
    NUMERIC affinity keeps exactly.
    """

    impl = String(AMOUNT_DIGITS)
    cache_ok = True

    def process_bind_param(self, value: Optional[int], dialect) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"amounts must be integers, got {type(value).__name__}")
        if value < 0:
            raise ValueError("amounts must be non-negative")
        return str(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)
