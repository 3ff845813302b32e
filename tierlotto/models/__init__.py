from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .round import DRAW_ORDER, LotteryRound, RoundStatus, WinnerPool  # noqa: F401
from .ticket import TicketOwner, TicketPurchase, WinningTicket  # noqa: F401
from .register import LedgerRegister  # noqa: F401

__all__ = [
    "Base",
    "DRAW_ORDER",
    "LotteryRound",
    "RoundStatus",
    "WinnerPool",
    "TicketPurchase",
    "TicketOwner",
    "WinningTicket",
    "LedgerRegister",
]
