"""Winner selection for closed lottery rounds."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import (
    AllWinnersDrawn,
    PoolStateCorrupted,
    RoundNotClosed,
    RoundNotFound,
    TicketOwnerMissing,
    WinnerSelectionExhausted,
)
from ..ledger import LedgerStore
from ..models import LotteryRound, RoundStatus, WinnerPool, WinningTicket
from .lifecycle import RoundLifecycleManager
from .prizes import prize_per_winner
from .seeds import SEED_MODULUS, SeedSource, SystemSeedSource, validate_seed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WinnerDraw:
    """Outcome of a single draw.

    Attributes
    ----------
    round_id : int
        Round the winner was drawn from.
    ticket_number : int
        Winning ticket.
    owner : str
        Owner of the winning ticket; the escrow must pay ``prize_amount`` to it.
    prize_amount : int
        Prize owed to ``owner``.
    new_round_created : bool
        ``True`` when this draw completed the round and opened its successor.
    """

    round_id: int
    ticket_number: int
    owner: str
    prize_amount: int
    new_round_created: bool


def candidate_ticket(seed: int, attempt: int, total_tickets: int) -> int:
    """Ticket number tried on ``attempt`` for ``seed``.

    ``seed + attempt`` wraps at 64 bits before being reduced onto the
    1-based ticket range.
    """

    return ((seed + attempt) % SEED_MODULUS) % total_tickets + 1


class WinnerSelectionEngine:
    """Draw one winner per call, walking the pools of a closed round in order."""

    def __init__(
        self,
        session: Session,
        *,
        store: Optional[LedgerStore] = None,
        lifecycle: Optional[RoundLifecycleManager] = None,
        seed_source: Optional[SeedSource] = None,
    ) -> None:
        """Create a selection engine bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        store : Optional[LedgerStore], default: None
            Ledger access; a store over ``session`` is created when omitted.
        lifecycle : Optional[RoundLifecycleManager], default: None
            Manager used to open the successor round once a round completes.
        seed_source : Optional[SeedSource], default: None
            Source consulted when :meth:`draw` is called without a seed.
            Defaults to :class:`~tierlotto.rounds.seeds.SystemSeedSource`.
        """

        self._store = store or LedgerStore(session)
        self._lifecycle = lifecycle or RoundLifecycleManager(session, store=self._store)
        self._seed_source = seed_source or SystemSeedSource()

    def draw(
        self,
        round_id: int,
        seed: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> WinnerDraw:
        """Select, record and return the next winner of ``round_id``.

        Parameters
        ----------
        round_id : int
            Closed round to draw from.
        seed : Optional[int], default: None
            Unsigned 64-bit seed. Taken from the engine's seed source when
            omitted.
        now : Optional[datetime], default: None
            Timestamp for the winning ticket and, when the round completes,
            for its successor.

        Returns
        -------
        WinnerDraw
            The drawn ticket, its owner and prize.

        Notes
        -----
        Each call performs these steps:

        1. Load the ticket numbers that already won in this round.
        2. Try ``candidate_ticket(seed, attempt, total)`` for attempt
           ``0, 1, 2, ...`` and keep the first ticket that has not won yet,
           giving up after ``2 * total`` attempts.
        3. Resolve the owner through the ticket index and compute the
           per-winner prize of the current pool.
        4. Record the :class:`WinningTicket` and bump the pool's counter.
        5. Advance to the next pool when the current one is full; after the
           fourth pool the round is marked complete and a successor round
           with the same ticket price is opened.

        Raises
        ------
        RoundNotFound
            If ``round_id`` does not exist.
        RoundNotClosed
            If the round is still selling tickets or already complete.
        AllWinnersDrawn
            If the round is closed but its pool cursor is already past the
            last pool.
        WinnerSelectionExhausted
            If no unused ticket was found within the attempt budget.
        TicketOwnerMissing, PoolStateCorrupted
            If the ledger is inconsistent.
        """

        now = now or datetime.now(timezone.utc)

        lottery_round = self._store.get_round(round_id)
        if lottery_round is None:
            raise RoundNotFound(round_id)
        if lottery_round.status != RoundStatus.CLOSED:
            raise RoundNotClosed(round_id, lottery_round.status)
        if lottery_round.winner_pool is WinnerPool.COMPLETE:
            raise AllWinnersDrawn(round_id)

        pool = lottery_round.winner_pool
        winners_count = lottery_round.pool_count(pool)
        winners_drawn = lottery_round.winners_drawn(pool)
        if winners_drawn >= winners_count:
            logger.critical(
                f"Round {round_id} cursor is on {pool.value} with "
                f"{winners_drawn}/{winners_count} winners drawn"
            )
            raise PoolStateCorrupted(round_id, pool.value, winners_drawn, winners_count)

        seed = validate_seed(self._seed_source.next_seed() if seed is None else seed)
        ticket_number = self._select_ticket(lottery_round, seed)

        owner = self._store.ticket_owner(round_id, ticket_number)
        if owner is None:
            logger.critical(f"Ticket {ticket_number} of round {round_id} has no owner")
            raise TicketOwnerMissing(round_id, ticket_number)

        prize_amount = prize_per_winner(lottery_round.prize_pool, pool, winners_count)
        self._store.insert_winner(
            WinningTicket(
                round_id=round_id,
                ticket_number=ticket_number,
                owner=owner,
                prize_amount=prize_amount,
                winner_pool=pool.value,
                draw_sequence=lottery_round.total_winners_drawn + 1,
                claimed=True,
                drawn_at=now,
            )
        )
        drawn = lottery_round.record_winner_drawn(pool)
        logger.info(
            f"Round {round_id} {pool.value}: ticket {ticket_number} won {prize_amount} "
            f"({drawn}/{winners_count})"
        )

        new_round_created = False
        if drawn >= winners_count:
            next_pool = pool.next_pool()
            lottery_round.current_winner_pool = next_pool.value
            if next_pool is WinnerPool.COMPLETE:
                lottery_round.status = RoundStatus.COMPLETE.value
                new_round_created = self._open_successor(lottery_round, now)
        self._store.save_round(lottery_round)

        return WinnerDraw(
            round_id=round_id,
            ticket_number=ticket_number,
            owner=owner,
            prize_amount=prize_amount,
            new_round_created=new_round_created,
        )

    def _select_ticket(self, lottery_round: LotteryRound, seed: int) -> int:
        total = lottery_round.total_tickets_sold
        taken = self._store.winning_ticket_numbers(lottery_round.id)
        max_attempts = total * 2
        for attempt in range(max_attempts):
            ticket = candidate_ticket(seed, attempt, total)
            if ticket not in taken:
                return ticket
            logger.debug(
                f"Round {lottery_round.id}: ticket {ticket} already won, retrying"
            )
        raise WinnerSelectionExhausted(lottery_round.id, max_attempts)

    def _open_successor(self, lottery_round: LotteryRound, now: datetime) -> bool:
        logger.info(f"Lottery round {lottery_round.id} complete")
        self._store.save_round(lottery_round)
        active_id = self._lifecycle.active_round_id()
        if active_id is not None:
            # Someone opened a round manually after this one closed.
            logger.info(
                f"Round {active_id} is already active; no successor created for "
                f"round {lottery_round.id}"
            )
            return False
        successor = self._lifecycle.create_round(lottery_round.ticket_price, now=now)
        logger.info(f"Opened successor round {successor.id} after round {lottery_round.id}")
        return True


__all__ = ["WinnerDraw", "WinnerSelectionEngine", "candidate_ticket"]
