"""Session-bound access to the lottery ledger tables."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import LedgerStorageError
from ..models import (
    LedgerRegister,
    LotteryRound,
    TicketOwner,
    TicketPurchase,
    WinningTicket,
)
from ..models.register import REGISTER_ROW_ID

logger = logging.getLogger(__name__)

# Ticket index rows are written in chunks so a large purchase does not build
# one enormous parameter list.
INDEX_BATCH_SIZE = 1000


class LedgerStore:
    """Insert, get and enumerate over the ledger mappings.

    The store performs no validation: callers are responsible for the
    lottery invariants. Everything goes through the supplied session, so
    writes are visible to later reads in the same transaction and become
    durable when the caller commits.

    Any :class:`~sqlalchemy.exc.SQLAlchemyError` is re-raised as
    :class:`~tierlotto.errors.LedgerStorageError`.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.critical(f"Ledger storage failure while {action}: {exc}")
            raise LedgerStorageError(f"Failed while {action}: {exc}") from exc

    # -------- registers --------
    def registers(self) -> LedgerRegister:
        """Return the register row, creating it on first use."""

        with self._guard("loading ledger registers"):
            register = self._session.get(LedgerRegister, REGISTER_ROW_ID)
            if register is None:
                register = LedgerRegister()
                self._session.add(register)
                self._session.flush()
            return register

    # -------- rounds --------
    def insert_round(self, lottery_round: LotteryRound) -> LotteryRound:
        with self._guard(f"inserting round {lottery_round.id}"):
            self._session.add(lottery_round)
            self._session.flush()
        return lottery_round

    def get_round(self, round_id: int) -> Optional[LotteryRound]:
        with self._guard(f"loading round {round_id}"):
            return self._session.get(LotteryRound, round_id)

    def rounds(self) -> list[LotteryRound]:
        with self._guard("listing rounds"):
            return list(
                self._session.scalars(select(LotteryRound).order_by(LotteryRound.id))
            )

    def save_round(self, lottery_round: LotteryRound) -> None:
        """Flush pending changes made to ``lottery_round``."""

        with self._guard(f"updating round {lottery_round.id}"):
            self._session.flush()

    # -------- purchases --------
    def insert_purchase(self, purchase: TicketPurchase) -> TicketPurchase:
        with self._guard(f"recording purchase in round {purchase.round_id}"):
            self._session.add(purchase)
            self._session.flush()
        return purchase

    def purchases_for_round(self, round_id: int) -> list[TicketPurchase]:
        """All purchases of ``round_id`` in ticket order."""

        with self._guard(f"listing purchases of round {round_id}"):
            return list(
                self._session.scalars(
                    select(TicketPurchase)
                    .where(TicketPurchase.round_id == round_id)
                    .order_by(TicketPurchase.first_ticket)
                )
            )

    def purchases_for_owner(self, round_id: int, owner: str) -> list[TicketPurchase]:
        with self._guard(f"listing purchases of {owner!r} in round {round_id}"):
            return list(
                self._session.scalars(
                    select(TicketPurchase)
                    .where(
                        TicketPurchase.round_id == round_id,
                        TicketPurchase.owner == owner,
                    )
                    .order_by(TicketPurchase.first_ticket)
                )
            )

    # -------- ticket index --------
    def index_tickets(
        self, round_id: int, first_ticket: int, last_ticket: int, owner: str
    ) -> None:
        """Map every ticket in ``[first_ticket, last_ticket]`` to ``owner``."""

        with self._guard(f"indexing tickets {first_ticket}..{last_ticket} of round {round_id}"):
            start = first_ticket
            while start <= last_ticket:
                stop = min(start + INDEX_BATCH_SIZE - 1, last_ticket)
                self._session.execute(
                    insert(TicketOwner),
                    [
                        {"round_id": round_id, "ticket_number": number, "owner": owner}
                        for number in range(start, stop + 1)
                    ],
                )
                start = stop + 1

    def ticket_owner(self, round_id: int, ticket_number: int) -> Optional[str]:
        with self._guard(f"resolving owner of ticket {ticket_number} in round {round_id}"):
            return self._session.scalar(
                select(TicketOwner.owner).where(
                    TicketOwner.round_id == round_id,
                    TicketOwner.ticket_number == ticket_number,
                )
            )

    # -------- winners --------
    def insert_winner(self, winner: WinningTicket) -> WinningTicket:
        with self._guard(
            f"recording winning ticket {winner.ticket_number} of round {winner.round_id}"
        ):
            self._session.add(winner)
            self._session.flush()
        return winner

    def winners_for_round(self, round_id: int) -> list[WinningTicket]:
        """Winning tickets of ``round_id`` in the order they were drawn."""

        with self._guard(f"listing winners of round {round_id}"):
            return list(
                self._session.scalars(
                    select(WinningTicket)
                    .where(WinningTicket.round_id == round_id)
                    .order_by(WinningTicket.draw_sequence)
                )
            )

    def winning_ticket_numbers(self, round_id: int) -> set[int]:
        with self._guard(f"loading winning ticket numbers of round {round_id}"):
            return set(
                self._session.scalars(
                    select(WinningTicket.ticket_number).where(
                        WinningTicket.round_id == round_id
                    )
                )
            )


__all__ = ["INDEX_BATCH_SIZE", "LedgerStore"]
