"""Round lifecycle: creation, ticket sales and closing."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional

from sqlalchemy.orm import Session

from ..errors import (
    ActiveRoundExists,
    AmountTooSmall,
    InsufficientTickets,
    InvalidReference,
    InvalidTicketPrice,
    NoActiveRound,
    RoundNotActive,
    RoundNotFound,
    TicketLimitExceeded,
    Unauthorized,
)
from ..ledger import LedgerStore
from ..models import DRAW_ORDER, LotteryRound, RoundStatus, TicketPurchase, WinnerPool
from ..models.ticket import OWNER_LENGTH
from .prizes import AMOUNT_MAX, saturating_add

logger = logging.getLogger(__name__)

MIN_TICKETS_TO_CLOSE = 4

# Ticket numbers and the next-ticket cursor are stored in signed 64-bit columns.
TICKET_NUMBER_MAX = 2**63 - 1

# Share of sold tickets that win in each pool.
POOL_TICKET_PERCENTAGES: Mapping[WinnerPool, int] = MappingProxyType(
    {
        WinnerPool.POOL1: 15,
        WinnerPool.POOL2: 7,
        WinnerPool.POOL3: 5,
        WinnerPool.POOL4: 3,
    }
)

_CONTROLLER_ID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def compute_pool_sizes(total_tickets_sold: int) -> dict[WinnerPool, int]:
    """Return the number of winners for each pool.

    Each pool receives its percentage of ``total_tickets_sold``, rounded
    down. A pool that rounds down to zero still gets one winner as long as
    more tickets were sold than the pool's position minus one, so that small
    rounds draw one winner per pool when they can.
    """

    sizes: dict[WinnerPool, int] = {}
    for pool in DRAW_ORDER:
        size = total_tickets_sold * POOL_TICKET_PERCENTAGES[pool] // 100
        if size == 0 and total_tickets_sold > pool.ordinal - 1:
            size = 1
        sizes[pool] = size
    return sizes


def normalize_controller_id(controller_id: str) -> str:
    """Validate a controller reference and return its canonical form."""

    if not isinstance(controller_id, str):
        raise InvalidReference(controller_id)
    candidate = controller_id.strip()
    if not _CONTROLLER_ID_RE.match(candidate):
        raise InvalidReference(controller_id)
    return candidate.lower()


class RoundLifecycleManager:
    """Owns the round counter and the active-round register.

    Rounds move ``active`` -> ``closed`` -> ``complete``; the last step is
    driven by :class:`~tierlotto.rounds.selection.WinnerSelectionEngine`,
    which asks this manager for the successor round.
    """

    def __init__(self, session: Session, *, store: Optional[LedgerStore] = None) -> None:
        self._store = store or LedgerStore(session)

    @property
    def store(self) -> LedgerStore:
        return self._store

    def active_round_id(self) -> Optional[int]:
        return self._store.registers().active_round_id

    def active_round(self) -> Optional[LotteryRound]:
        round_id = self.active_round_id()
        if round_id is None:
            return None
        return self._store.get_round(round_id)

    def create_round(
        self, ticket_price: int, *, now: Optional[datetime] = None
    ) -> LotteryRound:
        """Open a new round selling tickets at ``ticket_price``.

        Raises
        ------
        InvalidTicketPrice
            If the price is not a positive amount.
        ActiveRoundExists
            If another round is still accepting purchases.
        """

        if (
            isinstance(ticket_price, bool)
            or not isinstance(ticket_price, int)
            or not 0 < ticket_price <= AMOUNT_MAX
        ):
            raise InvalidTicketPrice(ticket_price)

        registers = self._store.registers()
        if registers.active_round_id is not None:
            raise ActiveRoundExists(registers.active_round_id)

        round_id = registers.round_counter + 1
        lottery_round = LotteryRound(
            id=round_id,
            ticket_price=ticket_price,
            created_at=now or datetime.now(timezone.utc),
        )
        self._store.insert_round(lottery_round)
        registers.round_counter = round_id
        registers.active_round_id = round_id
        self._store.save_round(lottery_round)

        logger.info(f"Created lottery round {round_id} with ticket price {ticket_price}")
        return lottery_round

    def link_controller(self, controller_id: str) -> str:
        """Authorize ``controller_id`` as the only recorder of purchases."""

        normalized = normalize_controller_id(controller_id)
        registers = self._store.registers()
        registers.controller_id = normalized
        self._store.session.flush()
        logger.info(f"Linked purchase controller {normalized}")
        return normalized

    def authorize_recorder(self, caller: Optional[str]) -> None:
        """Check that ``caller`` may record purchases.

        Every caller is accepted until a controller has been linked.
        """

        controller_id = self._store.registers().controller_id
        if controller_id is None:
            return
        if caller is None or caller.strip().lower() != controller_id:
            raise Unauthorized("record_ticket_purchase", caller)

    def record_purchase(
        self,
        owner: str,
        amount: int,
        source_id: Optional[str] = None,
        *,
        caller: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TicketPurchase:
        """Issue tickets in the active round for an amount already collected.

        The escrow must have confirmed receipt of ``amount``; no balance is
        checked here. The whole ``amount`` goes to the prize pool, including
        any remainder below the ticket price.

        Parameters
        ----------
        owner : str
            Account the tickets are issued to.
        amount : int
            Amount paid, in the smallest unit.
        source_id : Optional[str], default: None
            Where the purchase originated, recorded for auditing.
        caller : Optional[str], default: None
            Identity of the component recording the purchase; must match the
            linked controller once one is set.
        now : Optional[datetime], default: None
            Timestamp stored on the purchase.

        Returns
        -------
        TicketPurchase
            The persisted purchase with its contiguous ticket range.

        Raises
        ------
        AmountTooSmall
            If ``amount`` buys no ticket.
        TicketLimitExceeded
            If the tickets would run past :data:`TICKET_NUMBER_MAX`; nothing is
            written.
        """

        self.authorize_recorder(caller)

        if not isinstance(owner, str) or not owner.strip():
            raise ValueError("owner must be a non-empty string")
        if len(owner) > OWNER_LENGTH:
            raise ValueError(f"owner must be at most {OWNER_LENGTH} characters")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError("amount must be an integer")
        if amount < 0:
            raise ValueError("amount must be non-negative")

        round_id = self.active_round_id()
        if round_id is None:
            raise NoActiveRound()
        lottery_round = self._store.get_round(round_id)
        if lottery_round is None:
            logger.critical(f"Active round pointer references missing round {round_id}")
            raise RoundNotFound(round_id)
        if lottery_round.status != RoundStatus.ACTIVE:
            raise RoundNotActive(round_id, lottery_round.status)

        if lottery_round.ticket_price == 0:
            raise InvalidTicketPrice(lottery_round.ticket_price)
        ticket_count = amount // lottery_round.ticket_price
        if ticket_count == 0:
            raise AmountTooSmall(amount, lottery_round.ticket_price)

        first_ticket = lottery_round.next_ticket_number
        # next_ticket_number must still fit after the purchase
        available = TICKET_NUMBER_MAX - first_ticket
        if ticket_count > available:
            raise TicketLimitExceeded(round_id, ticket_count, available)
        last_ticket = first_ticket + ticket_count - 1
        purchase = TicketPurchase(
            round_id=round_id,
            owner=owner,
            first_ticket=first_ticket,
            last_ticket=last_ticket,
            total_tickets=ticket_count,
            amount_paid=amount,
            source_id=source_id,
            created_at=now or datetime.now(timezone.utc),
        )
        self._store.insert_purchase(purchase)
        self._store.index_tickets(round_id, first_ticket, last_ticket, owner)

        lottery_round.next_ticket_number = last_ticket + 1
        lottery_round.total_tickets_sold += ticket_count
        lottery_round.prize_pool = saturating_add(lottery_round.prize_pool, amount)
        self._store.save_round(lottery_round)

        logger.debug(
            f"Round {round_id}: issued tickets {first_ticket}..{last_ticket} to {owner}"
        )
        return purchase

    def close_round(self, *, now: Optional[datetime] = None) -> LotteryRound:
        """Stop sales on the active round and size its winner pools.

        Raises
        ------
        NoActiveRound
            If no round is active.
        RoundNotActive
            If the active pointer references a round that is no longer active.
        InsufficientTickets
            If fewer than :data:`MIN_TICKETS_TO_CLOSE` tickets were sold.
        """

        registers = self._store.registers()
        round_id = registers.active_round_id
        if round_id is None:
            raise NoActiveRound("No active round to close")
        lottery_round = self._store.get_round(round_id)
        if lottery_round is None:
            logger.critical(f"Active round pointer references missing round {round_id}")
            raise RoundNotFound(round_id)
        if lottery_round.status != RoundStatus.ACTIVE:
            raise RoundNotActive(round_id, lottery_round.status)
        if lottery_round.total_tickets_sold < MIN_TICKETS_TO_CLOSE:
            raise InsufficientTickets(
                round_id, lottery_round.total_tickets_sold, MIN_TICKETS_TO_CLOSE
            )

        for pool, size in compute_pool_sizes(lottery_round.total_tickets_sold).items():
            lottery_round.set_pool_count(pool, size)
        lottery_round.status = RoundStatus.CLOSED.value
        lottery_round.closed_at = now or datetime.now(timezone.utc)
        lottery_round.current_winner_pool = WinnerPool.POOL1.value
        registers.active_round_id = None
        self._store.save_round(lottery_round)

        logger.info(
            f"Closed lottery round {round_id}: {lottery_round.total_tickets_sold} tickets, "
            f"prize pool {lottery_round.prize_pool}, "
            f"pools {[lottery_round.pool_count(pool) for pool in DRAW_ORDER]}"
        )
        return lottery_round


__all__ = [
    "MIN_TICKETS_TO_CLOSE",
    "POOL_TICKET_PERCENTAGES",
    "RoundLifecycleManager",
    "compute_pool_sizes",
    "normalize_controller_id",
]
