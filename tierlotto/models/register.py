"""Scalar registers of the lottery ledger."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .id_type import ID_TYPE

REGISTER_ROW_ID = 1


class LedgerRegister(Base):
    """Single-row table holding the ledger's scalar registers.

    ``round_counter`` is the highest round id ever allocated and
    ``active_round_id`` points at the round accepting purchases, if any.
    ``controller_id`` identifies the only component allowed to record
    purchases once it has been linked.
    """

    __tablename__ = "ledger_registers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    round_counter: Mapped[int] = mapped_column(ID_TYPE, nullable=False, default=0)
    active_round_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("lottery_rounds.id", ondelete="SET NULL"), nullable=True
    )
    controller_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint(f"id = {REGISTER_ROW_ID}", name="single_row"),
    )

    def __init__(
        self,
        *,
        round_counter: int = 0,
        active_round_id: Optional[int] = None,
        controller_id: Optional[str] = None,
    ) -> None:
        self.id = REGISTER_ROW_ID
        self.round_counter = round_counter
        self.active_round_id = active_round_id
        self.controller_id = controller_id

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<LedgerRegister(round_counter={self.round_counter}, "
            f"active_round_id={self.active_round_id}, controller_id={self.controller_id!r})>"
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "round_counter": self.round_counter,
            "active_round_id": self.active_round_id,
            "controller_id": self.controller_id,
        }
