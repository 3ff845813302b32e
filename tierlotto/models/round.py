"""Database model for lottery rounds."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .amount_type import AmountType
from .base import Base
from .id_type import ID_TYPE
from ..db.utils import dt_iso

if TYPE_CHECKING:
    from .ticket import TicketPurchase, WinningTicket


class RoundStatus(str, enum.Enum):
    """Lifecycle state of a :class:`LotteryRound`."""

    ACTIVE = "active"
    CLOSED = "closed"
    COMPLETE = "complete"


class WinnerPool(str, enum.Enum):
    """Winner tier currently being drawn for a closed round.

    Pools are drawn in declaration order; ``COMPLETE`` marks that every pool
    has received its allotted winners.
    """

    POOL1 = "pool1"
    POOL2 = "pool2"
    POOL3 = "pool3"
    POOL4 = "pool4"
    COMPLETE = "complete"

    @property
    def ordinal(self) -> int:
        """1-based position of the pool; ``0`` for ``COMPLETE``."""

        if self is WinnerPool.COMPLETE:
            return 0
        return int(self.value[-1])

    def next_pool(self) -> "WinnerPool":
        if self is WinnerPool.COMPLETE or self.ordinal == len(DRAW_ORDER):
            return WinnerPool.COMPLETE
        return DRAW_ORDER[self.ordinal]


DRAW_ORDER: tuple[WinnerPool, ...] = (
    WinnerPool.POOL1,
    WinnerPool.POOL2,
    WinnerPool.POOL3,
    WinnerPool.POOL4,
)


class LotteryRound(Base):
    """One lottery cycle, from ticket sales through the final draw."""

    __tablename__ = "lottery_rounds"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=False)
    """Round id, allocated from the ledger's round counter."""

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RoundStatus.ACTIVE.value
    )
    """``"active"``, ``"closed"`` or ``"complete"``."""

    ticket_price: Mapped[int] = mapped_column(AmountType, nullable=False)
    """Price of a single ticket, fixed when the round is created."""

    next_ticket_number: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=1)
    """Number the next sold ticket receives; tickets are numbered from 1."""

    total_tickets_sold: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)

    prize_pool: Mapped[int] = mapped_column(AmountType, nullable=False, default=0)
    """Sum of all purchase amounts, saturating at the amount ceiling."""

    current_winner_pool: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WinnerPool.POOL1.value
    )
    """Pool the next draw selects a winner for."""

    pool1_count: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    pool2_count: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    pool3_count: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    pool4_count: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)

    pool1_winners_drawn: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    pool2_winners_drawn: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    pool3_winners_drawn: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    pool4_winners_drawn: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    purchases: Mapped[list["TicketPurchase"]] = relationship(
        back_populates="round", order_by="TicketPurchase.first_ticket"
    )
    winners: Mapped[list["WinningTicket"]] = relationship(
        back_populates="round", order_by="WinningTicket.draw_sequence"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active','closed','complete')", name="status_enum"
        ),
        CheckConstraint(
            "current_winner_pool IN ('pool1','pool2','pool3','pool4','complete')",
            name="winner_pool_enum",
        ),
        CheckConstraint(
            "next_ticket_number = total_tickets_sold + 1", name="gapless_numbering"
        ),
        CheckConstraint("pool1_winners_drawn <= pool1_count", name="pool1_drawn_le_count"),
        CheckConstraint("pool2_winners_drawn <= pool2_count", name="pool2_drawn_le_count"),
        CheckConstraint("pool3_winners_drawn <= pool3_count", name="pool3_drawn_le_count"),
        CheckConstraint("pool4_winners_drawn <= pool4_count", name="pool4_drawn_le_count"),
    )

    def __init__(
        self,
        *,
        id: int,
        ticket_price: int,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.id = id
        self.ticket_price = ticket_price
        self.status = RoundStatus.ACTIVE.value
        self.next_ticket_number = 1
        self.total_tickets_sold = 0
        self.prize_pool = 0
        self.current_winner_pool = WinnerPool.POOL1.value
        for pool in DRAW_ORDER:
            self.set_pool_count(pool, 0)
            setattr(self, f"{pool.value}_winners_drawn", 0)
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<LotteryRound(id={self.id}, status='{self.status}', "
            f"total_tickets_sold={self.total_tickets_sold}, prize_pool={self.prize_pool}, "
            f"current_winner_pool='{self.current_winner_pool}')>"
        )

    @property
    def round_status(self) -> RoundStatus:
        return RoundStatus(self.status)

    @property
    def winner_pool(self) -> WinnerPool:
        return WinnerPool(self.current_winner_pool)

    def pool_count(self, pool: WinnerPool) -> int:
        """Number of winners allotted to ``pool`` (``0`` for ``COMPLETE``)."""

        if pool is WinnerPool.COMPLETE:
            return 0
        return getattr(self, f"{pool.value}_count")

    def set_pool_count(self, pool: WinnerPool, count: int) -> None:
        setattr(self, f"{pool.value}_count", count)

    def winners_drawn(self, pool: WinnerPool) -> int:
        if pool is WinnerPool.COMPLETE:
            return 0
        return getattr(self, f"{pool.value}_winners_drawn")

    def record_winner_drawn(self, pool: WinnerPool) -> int:
        """Bump the drawn counter of ``pool`` and return the new value."""

        drawn = self.winners_drawn(pool) + 1
        setattr(self, f"{pool.value}_winners_drawn", drawn)
        return drawn

    @property
    def total_winners(self) -> int:
        return sum(self.pool_count(pool) for pool in DRAW_ORDER)

    @property
    def total_winners_drawn(self) -> int:
        return sum(self.winners_drawn(pool) for pool in DRAW_ORDER)

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of the round.

        Amounts are rendered as decimal strings since they can exceed the
        range of a JSON number.
        """

        return {
            "id": self.id,
            "status": self.status,
            "ticket_price": str(self.ticket_price),
            "total_tickets_sold": self.total_tickets_sold,
            "next_ticket_number": self.next_ticket_number,
            "prize_pool": str(self.prize_pool),
            "current_winner_pool": self.current_winner_pool,
            "pools": {
                pool.value: {
                    "count": self.pool_count(pool),
                    "winners_drawn": self.winners_drawn(pool),
                }
                for pool in DRAW_ORDER
            },
            "created_at": dt_iso(self.created_at),
            "closed_at": dt_iso(self.closed_at),
        }


__all__ = ["DRAW_ORDER", "LotteryRound", "RoundStatus", "WinnerPool"]
