"""Database models for ticket purchases, ticket ownership and winners."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .amount_type import AmountType
from .base import Base
from .id_type import ID_TYPE
from ..db.utils import dt_iso

if TYPE_CHECKING:
    from .round import LotteryRound

OWNER_LENGTH = 255


class TicketPurchase(Base):
    """A contiguous block of tickets bought in a single purchase."""

    __tablename__ = "ticket_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    round_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("lottery_rounds.id", ondelete="RESTRICT"), nullable=False
    )
    owner: Mapped[str] = mapped_column(String(OWNER_LENGTH), nullable=False)
    """Account the tickets belong to."""

    first_ticket: Mapped[int] = mapped_column(ID_TYPE, nullable=False)
    last_ticket: Mapped[int] = mapped_column(ID_TYPE, nullable=False)
    """Inclusive upper bound of the ticket range."""

    total_tickets: Mapped[int] = mapped_column(ID_TYPE, nullable=False)
    amount_paid: Mapped[int] = mapped_column(AmountType, nullable=False)
    """Full amount collected, including any remainder below one ticket price."""

    source_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Optional identifier of where the purchase originated (e.g. a remote chain)."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    round: Mapped["LotteryRound"] = relationship(back_populates="purchases")

    __table_args__ = (
        UniqueConstraint("round_id", "first_ticket", name="uq_ticket_purchase_first_ticket"),
        CheckConstraint("first_ticket >= 1", name="first_ticket_positive"),
        CheckConstraint(
            "total_tickets = last_ticket - first_ticket + 1", name="range_matches_count"
        ),
        Index("ix_ticket_purchases_round_owner", "round_id", "owner"),
    )

    def __init__(
        self,
        *,
        round_id: int,
        owner: str,
        first_ticket: int,
        last_ticket: int,
        total_tickets: int,
        amount_paid: int,
        source_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.round_id = round_id
        self.owner = owner
        self.first_ticket = first_ticket
        self.last_ticket = last_ticket
        self.total_tickets = total_tickets
        self.amount_paid = amount_paid
        self.source_id = source_id
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<TicketPurchase(id={self.id}, round_id={self.round_id}, owner='{self.owner}', "
            f"tickets={self.first_ticket}..{self.last_ticket})>"
        )

    @property
    def ticket_numbers(self) -> range:
        return range(self.first_ticket, self.last_ticket + 1)

    def to_json(self) -> dict[str, Any]:
        return {
            "round_id": self.round_id,
            "owner": self.owner,
            "first_ticket": self.first_ticket,
            "last_ticket": self.last_ticket,
            "total_tickets": self.total_tickets,
            "amount_paid": str(self.amount_paid),
            "source_id": self.source_id,
            "created_at": dt_iso(self.created_at),
        }


class TicketOwner(Base):
    """Index entry mapping a single ticket number to its owner.

    Rows are written once, when the ticket is sold, and never updated.
    """

    __tablename__ = "ticket_owners"

    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lottery_rounds.id", ondelete="RESTRICT"),
        primary_key=True,
        autoincrement=False,
    )
    ticket_number: Mapped[int] = mapped_column(
        ID_TYPE, primary_key=True, autoincrement=False
    )
    owner: Mapped[str] = mapped_column(String(OWNER_LENGTH), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<TicketOwner(round_id={self.round_id}, ticket_number={self.ticket_number}, "
            f"owner='{self.owner}')>"
        )


class WinningTicket(Base):
    """Ticket selected by a draw together with the prize it earned."""

    __tablename__ = "winning_tickets"

    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("lottery_rounds.id", ondelete="RESTRICT"),
        primary_key=True,
        autoincrement=False,
    )
    ticket_number: Mapped[int] = mapped_column(
        ID_TYPE, primary_key=True, autoincrement=False
    )
    owner: Mapped[str] = mapped_column(String(OWNER_LENGTH), nullable=False)
    prize_amount: Mapped[int] = mapped_column(AmountType, nullable=False)
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    """Prizes are paid as part of the draw, so winners are recorded as claimed."""

    winner_pool: Mapped[str] = mapped_column(String(20), nullable=False)
    """Pool (``"pool1"``..``"pool4"``) the ticket was drawn for."""

    draw_sequence: Mapped[int] = mapped_column(ID_TYPE, nullable=False)
    """1-based position of this draw within the round."""

    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    round: Mapped["LotteryRound"] = relationship(back_populates="winners")

    __table_args__ = (
        ForeignKeyConstraint(
            ["round_id", "ticket_number"],
            ["ticket_owners.round_id", "ticket_owners.ticket_number"],
            ondelete="RESTRICT",
        ),
        CheckConstraint(
            "winner_pool IN ('pool1','pool2','pool3','pool4')", name="winner_pool_enum"
        ),
        UniqueConstraint("round_id", "draw_sequence", name="uq_winning_ticket_draw_sequence"),
        Index("ix_winning_tickets_owner", "owner"),
    )

    def __init__(
        self,
        *,
        round_id: int,
        ticket_number: int,
        owner: str,
        prize_amount: int,
        winner_pool: str,
        draw_sequence: int,
        claimed: bool = True,
        drawn_at: Optional[datetime] = None,
    ) -> None:
        self.round_id = round_id
        self.ticket_number = ticket_number
        self.owner = owner
        self.prize_amount = prize_amount
        self.winner_pool = winner_pool
        self.draw_sequence = draw_sequence
        self.claimed = claimed
        if drawn_at is not None:
            self.drawn_at = drawn_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<WinningTicket(round_id={self.round_id}, ticket_number={self.ticket_number}, "
            f"owner='{self.owner}', prize_amount={self.prize_amount}, pool='{self.winner_pool}')>"
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "round_id": self.round_id,
            "ticket_number": self.ticket_number,
            "owner": self.owner,
            "prize_amount": str(self.prize_amount),
            "claimed": self.claimed,
            "winner_pool": self.winner_pool,
            "draw_sequence": self.draw_sequence,
            "drawn_at": dt_iso(self.drawn_at),
        }


__all__ = ["TicketPurchase", "TicketOwner", "WinningTicket"]
