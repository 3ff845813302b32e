"""Durable storage of rounds, purchases, ticket ownership and winners."""

from .store import LedgerStore

__all__ = ["LedgerStore"]
