"""Batch-indexed expiring address store.

Entries expire by batch number rather than wall-clock time. Each member
is scheduled in exactly one expiry bucket:

    members:          address → value
    expiration_index: batch   → {address, ...}
    _expiry:          address → batch   (reverse index, keeps upsert O(1))

Cleanup for a batch touches only that batch's bucket, never the whole
store. Used twice: wallet cooldown (membership only) and contract
classification (address → is_contract).
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from .models import normalize_address

log = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    NEW = "new"
    EXTENDED = "extended"
    UNCHANGED = "unchanged"


class EligibilityCache:
    """Expiring address → value map keyed on batch numbers.

    Usage:
        cooldown = EligibilityCache("wallet")
        cooldown.upsert(addr, current_batch=5, expiry_window=30)
        cooldown.expire_through(35)   # addr gone
    """

    def __init__(self, name: str = "cache") -> None:
        self.name = name
        self._members: dict[str, Any] = {}
        self._expiration_index: dict[int, set[str]] = {}
        self._expiry: dict[str, int] = {}
        self._last_expired: Optional[int] = None

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.contains(address)

    # ── Public API ──

    def upsert(
        self,
        address: str,
        current_batch: int,
        expiry_window: int,
        value: Any = True,
    ) -> UpsertOutcome:
        """Insert or refresh an address so it expires at current_batch + expiry_window.

        A target at or before the last expired batch is moved to the next
        batch still to be expired, so the entry always has a reachable bucket.
        """
        addr = normalize_address(address)
        expiration_batch = int(current_batch) + int(expiry_window)
        if self._last_expired is not None and expiration_batch <= self._last_expired:
            log.debug("%s: batch %d already expired, scheduling %s at %d",
                      self.name, expiration_batch, addr, self._last_expired + 1)
            expiration_batch = self._last_expired + 1
        previous = self._expiry.get(addr)

        self._members[addr] = value

        if previous == expiration_batch:
            return UpsertOutcome.UNCHANGED

        if previous is not None:
            self._unschedule(addr, previous)
            outcome = UpsertOutcome.EXTENDED
        else:
            outcome = UpsertOutcome.NEW

        self._expiration_index.setdefault(expiration_batch, set()).add(addr)
        self._expiry[addr] = expiration_batch

        if outcome is UpsertOutcome.NEW:
            log.debug("%s: added %s, expires at batch %d",
                      self.name, addr, expiration_batch)
        else:
            log.debug("%s: extended %s from batch %d to %d",
                      self.name, addr, previous, expiration_batch)
        return outcome

    def contains(self, address: str) -> bool:
        return normalize_address(address) in self._members

    def get(self, address: str, default: Any = None) -> Any:
        return self._members.get(normalize_address(address), default)

    def expiry_of(self, address: str) -> Optional[int]:
        """Batch at which the address leaves the cache, or None if absent."""
        return self._expiry.get(normalize_address(address))

    def expire_batch(self, batch: int) -> int:
        """Drop every address scheduled to expire at ``batch``. Returns count removed."""
        bucket = self._expiration_index.pop(int(batch), None)
        if not bucket:
            return 0
        for addr in bucket:
            self._members.pop(addr, None)
            self._expiry.pop(addr, None)
        log.debug("%s: expired %d entries at batch %d (size now %d)",
                  self.name, len(bucket), batch, len(self._members))
        return len(bucket)

    def expire_through(self, batch: int) -> int:
        """Expire every bucket not yet expired, up to and including ``batch``.

        Walks forward from the last expired batch so a counter that jumped
        by more than one never leaves a bucket behind.
        """
        batch = int(batch)
        if self._last_expired is None:
            start = min(self._expiration_index, default=batch)
        else:
            start = self._last_expired + 1
        removed = 0
        for b in range(start, batch + 1):
            removed += self.expire_batch(b)
        if self._last_expired is None or batch > self._last_expired:
            self._last_expired = batch
        return removed

    def size(self) -> int:
        return len(self._members)

    def bucket_count(self) -> int:
        return len(self._expiration_index)

    def bucket(self, batch: int) -> frozenset[str]:
        """Snapshot of the addresses expiring at ``batch``."""
        return frozenset(self._expiration_index.get(int(batch), ()))

    # ── Internals ──

    def _unschedule(self, addr: str, batch: int) -> None:
        bucket = self._expiration_index.get(batch)
        if bucket is None:
            return
        bucket.discard(addr)
        if not bucket:
            del self._expiration_index[batch]
