from typing import TYPE_CHECKING, Any, Optional
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from .errors import RoundNotFound, Unauthorized
from .ledger import LedgerStore
from .models import LotteryRound, TicketPurchase, WinningTicket
from .rounds.lifecycle import RoundLifecycleManager
from .rounds.seeds import SeedSource
from .rounds.selection import WinnerDraw, WinnerSelectionEngine

if TYPE_CHECKING:
    from .escrow.api import EscrowClient

logger = logging.getLogger(__name__)

ENGINE_CALLER = "lottery-rounds"
"""Caller identity the draw workflow uses when instructing prize payouts."""


def create_round(
    session: Session, ticket_price: int, *, now: Optional[datetime] = None
) -> int:
    """Open a new round and return its id.

    Raises
    ------
    InvalidTicketPrice
        If ``ticket_price`` is not a positive amount.
    ActiveRoundExists
        If another round is still accepting purchases.
    """

    return RoundLifecycleManager(session).create_round(ticket_price, now=now).id


def link_controller(session: Session, controller_id: str) -> str:
    """Authorize ``controller_id`` as the component allowed to record purchases.

    Returns the normalized (lower-case) identifier. Raises
    :class:`~tierlotto.errors.InvalidReference` for anything other than 64
    hexadecimal characters.
    """

    return RoundLifecycleManager(session).link_controller(controller_id)


def record_ticket_purchase(
    session: Session,
    owner: str,
    amount: int,
    source_id: Optional[str] = None,
    *,
    caller: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TicketPurchase:
    """Record tickets bought in the active round for an already-collected amount.

    The escrow must have confirmed receipt of ``amount`` before this is
    called; no balance check is performed. ``floor(amount / ticket_price)``
    tickets are issued as one contiguous range following the previously
    sold tickets.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    owner : str
        Account receiving the tickets.
    amount : int
        Amount collected, in the smallest unit.
    source_id : Optional[str]
        Optional identifier of where the purchase came from.
    caller : Optional[str]
        Component recording the purchase. Must be the linked controller once
        :func:`link_controller` has been used.
    now : Optional[datetime]
        Timestamp stored on the purchase.

    Returns
    -------
    TicketPurchase
        The persisted purchase.

    Raises
    ------
    NoActiveRound, RoundNotActive
        If no round is accepting purchases.
    InvalidTicketPrice, AmountTooSmall
        If no ticket can be issued for ``amount``.
    Unauthorized
        If ``caller`` is not the linked controller.
    """

    return RoundLifecycleManager(session).record_purchase(
        owner, amount, source_id, caller=caller, now=now
    )


def close_round(session: Session, *, now: Optional[datetime] = None) -> int:
    """Close the active round, size its winner pools and return its id."""

    return RoundLifecycleManager(session).close_round(now=now).id


def generate_winner(
    session: Session,
    round_id: int,
    seed: Optional[int] = None,
    *,
    seed_source: Optional[SeedSource] = None,
    now: Optional[datetime] = None,
) -> WinnerDraw:
    """Draw the next winner of a closed round.

    The returned prize is not moved by this function: the caller must
    instruct the escrow to pay ``prize_amount`` to ``owner`` (see
    :func:`draw_winner_and_pay`).

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    round_id : int
        Closed round to draw from.
    seed : Optional[int]
        Unsigned 64-bit seed supplied by the external randomness source.
    seed_source : Optional[SeedSource]
        Used when ``seed`` is omitted; defaults to the system CSPRNG.
    now : Optional[datetime]
        Timestamp of the draw and of any successor round it opens.

    Returns
    -------
    WinnerDraw
        ``(round_id, ticket_number, owner, prize_amount, new_round_created)``.
    """

    engine = WinnerSelectionEngine(session, seed_source=seed_source)
    return engine.draw(round_id, seed, now=now)


def _confirm_escrow_response(response: Any, action: str) -> dict:
    # Expect a dict response from the escrow API
    if not isinstance(response, dict):
        raise RuntimeError(f"Unexpected escrow {action} response: {response!r}")

    status = response.get("status")
    if status != "success":
        message = response.get("message")
        raise RuntimeError(
            f"Escrow {action} failed" + (f": {message}" if message else ".")
        )
    return response


def buy_tickets(
    session: Session,
    owner: str,
    amount: int,
    escrow: "EscrowClient",
    source_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> TicketPurchase:
    """Collect ``amount`` from ``owner`` into escrow and record the purchase.

    The workflow performs two coordinated tasks:

    1. Ask the escrow service to move ``amount`` from ``owner`` into the
       lottery's escrow account.
    2. Record the purchase in the active round, acting as the linked
       controller.

    Both steps must belong to the caller's transaction: if recording fails
    after the escrow accepted the transfer, the exception propagates and the
    host is responsible for rolling back the whole operation.
    """

    store = LedgerStore(session)
    controller_id = store.registers().controller_id

    response = escrow.collect(owner, amount, reference=source_id)
    _confirm_escrow_response(response, "collect")
    logger.debug(f"Escrow collected {amount} from {owner}")

    return RoundLifecycleManager(session, store=store).record_purchase(
        owner, amount, source_id, caller=controller_id, now=now
    )


def distribute_prize(
    caller: str,
    winner: str,
    amount: int,
    escrow: "EscrowClient",
    reference: Optional[str] = None,
) -> dict:
    """Instruct the escrow to pay ``amount`` to ``winner``.

    Only the draw workflow (``ENGINE_CALLER``) may trigger payouts.
    """

    if caller != ENGINE_CALLER:
        raise Unauthorized("distribute_prize", caller)
    if amount <= 0:
        raise ValueError("prize amount must be positive")

    response = escrow.pay_out(winner, amount, reference=reference)
    confirmed = _confirm_escrow_response(response, "payout")
    logger.info(f"Escrow paid {amount} to {winner}")
    return confirmed


def draw_winner_and_pay(
    session: Session,
    round_id: int,
    escrow: "EscrowClient",
    seed: Optional[int] = None,
    *,
    seed_source: Optional[SeedSource] = None,
    now: Optional[datetime] = None,
) -> WinnerDraw:
    """Draw the next winner of ``round_id`` and pay the prize through escrow.

    Zero prizes (possible for tiny prize pools) are recorded but not paid.
    """

    draw = generate_winner(session, round_id, seed, seed_source=seed_source, now=now)
    if draw.prize_amount > 0:
        distribute_prize(
            ENGINE_CALLER,
            draw.owner,
            draw.prize_amount,
            escrow,
            reference=f"round-{draw.round_id}-ticket-{draw.ticket_number}",
        )
    return draw


# -------- read-only projections --------
def active_round_id(session: Session) -> Optional[int]:
    """Return the id of the round accepting purchases, if any."""

    return LedgerStore(session).registers().active_round_id


def get_round(session: Session, round_id: int) -> Optional[LotteryRound]:
    return LedgerStore(session).get_round(round_id)


def list_rounds(session: Session) -> list[LotteryRound]:
    """Return every round ever created, oldest first."""

    return LedgerStore(session).rounds()


def round_ticket_purchases(session: Session, round_id: int) -> list[TicketPurchase]:
    return LedgerStore(session).purchases_for_round(round_id)


def round_winners(session: Session, round_id: int) -> list[WinningTicket]:
    """Return the winning tickets of ``round_id`` in draw order."""

    return LedgerStore(session).winners_for_round(round_id)


def round_summary(session: Session, round_id: int) -> dict[str, Any]:
    """Return a JSON-serializable view of a round with its purchases and winners."""

    store = LedgerStore(session)
    lottery_round = store.get_round(round_id)
    if lottery_round is None:
        raise RoundNotFound(round_id)

    summary = lottery_round.to_json()
    summary["purchases"] = [p.to_json() for p in store.purchases_for_round(round_id)]
    summary["winners"] = [w.to_json() for w in store.winners_for_round(round_id)]
    return summary
