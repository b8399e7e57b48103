"""Ledger store backends."""

from ecotrack.store.base import LedgerStore
from ecotrack.store.memory import MemoryLedgerStore

__all__ = ["LedgerStore", "MemoryLedgerStore"]
