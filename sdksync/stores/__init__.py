"""Durable state kept alongside the target repository."""

from .ledger import SyncLedger, reconstruct_entries
from .lock import RunLock

__all__ = ["RunLock", "SyncLedger", "reconstruct_entries"]
