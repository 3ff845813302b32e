"""Typed failures raised by the lottery ledger and its operations.

Every error derives from :class:`LotteryError` so hosts can abort the
enclosing transaction on any of them, and also from the builtin that best
describes the failure so generic handlers keep working.
"""

from __future__ import annotations


class LotteryError(Exception):
    """Base class for all lottery failures."""


class NoActiveRound(LotteryError, LookupError):
    """No round is currently accepting purchases."""

    def __init__(self, message: str = "No active round") -> None:
        super().__init__(message)


class RoundNotFound(LotteryError, LookupError):
    def __init__(self, round_id: int) -> None:
        super().__init__(f"Round {round_id} not found")
        self.round_id = round_id


class RoundNotActive(LotteryError, RuntimeError):
    def __init__(self, round_id: int, status: str) -> None:
        super().__init__(f"Round {round_id} is not active (status: {status})")
        self.round_id = round_id
        self.status = status


class ActiveRoundExists(LotteryError, RuntimeError):
    """A new round was requested while another one is still active."""

    def __init__(self, round_id: int) -> None:
        super().__init__(f"Round {round_id} is still active")
        self.round_id = round_id


class RoundNotClosed(LotteryError, RuntimeError):
    def __init__(self, round_id: int, status: str) -> None:
        super().__init__(f"Round {round_id} is not closed (status: {status})")
        self.round_id = round_id
        self.status = status


class InvalidTicketPrice(LotteryError, ValueError):
    def __init__(self, ticket_price: int) -> None:
        super().__init__(f"Invalid ticket price: {ticket_price}")
        self.ticket_price = ticket_price


class AmountTooSmall(LotteryError, ValueError):
    def __init__(self, amount: int, ticket_price: int) -> None:
        super().__init__(
            f"Amount {amount} is too small to purchase any tickets "
            f"(ticket price: {ticket_price})"
        )
        self.amount = amount
        self.ticket_price = ticket_price


class TicketLimitExceeded(LotteryError, ValueError):
    """A purchase would issue ticket numbers past the 64-bit column range."""

    def __init__(self, round_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Round {round_id} cannot issue {requested} tickets; "
            f"only {available} ticket numbers remain"
        )
        self.round_id = round_id
        self.requested = requested
        self.available = available


class InsufficientTickets(LotteryError, RuntimeError):
    def __init__(self, round_id: int, sold: int, required: int) -> None:
        super().__init__(
            f"Cannot close round {round_id} with {sold} tickets sold; "
            f"at least {required} are required"
        )
        self.round_id = round_id
        self.sold = sold
        self.required = required


class AllWinnersDrawn(LotteryError, RuntimeError):
    def __init__(self, round_id: int) -> None:
        super().__init__(f"All winners already drawn for round {round_id}")
        self.round_id = round_id


class WinnerSelectionExhausted(LotteryError, RuntimeError):
    def __init__(self, round_id: int, attempts: int) -> None:
        super().__init__(
            f"Failed to find a unique winning ticket for round {round_id} "
            f"after {attempts} attempts"
        )
        self.round_id = round_id
        self.attempts = attempts


class TicketOwnerMissing(LotteryError, RuntimeError):
    """A sold ticket number has no owner in the index (ledger corruption)."""

    def __init__(self, round_id: int, ticket_number: int) -> None:
        super().__init__(
            f"Ticket {ticket_number} of round {round_id} has no recorded owner"
        )
        self.round_id = round_id
        self.ticket_number = ticket_number


class PoolStateCorrupted(LotteryError, RuntimeError):
    """The pool cursor points at a pool whose winners are already drawn."""

    def __init__(self, round_id: int, pool: str, drawn: int, count: int) -> None:
        super().__init__(
            f"Pool {pool} of round {round_id} is already complete "
            f"({drawn}/{count} drawn) but is still the current pool"
        )
        self.round_id = round_id
        self.pool = pool
        self.drawn = drawn
        self.count = count


class Unauthorized(LotteryError, PermissionError):
    def __init__(self, operation: str, caller: object) -> None:
        super().__init__(f"Unauthorized: {operation} cannot be called by {caller!r}")
        self.operation = operation
        self.caller = caller


class InvalidReference(LotteryError, ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid component reference: {value!r}")
        self.value = value


class LedgerStorageError(LotteryError, RuntimeError):
    """Reading or writing the ledger failed at the storage layer."""


__all__ = [
    "LotteryError",
    "NoActiveRound",
    "RoundNotFound",
    "RoundNotActive",
    "ActiveRoundExists",
    "RoundNotClosed",
    "InvalidTicketPrice",
    "AmountTooSmall",
    "TicketLimitExceeded",
    "InsufficientTickets",
    "AllWinnersDrawn",
    "WinnerSelectionExhausted",
    "TicketOwnerMissing",
    "PoolStateCorrupted",
    "Unauthorized",
    "InvalidReference",
    "LedgerStorageError",
]
