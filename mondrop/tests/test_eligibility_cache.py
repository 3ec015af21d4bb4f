"""Tests for the batch-indexed eligibility cache."""
from __future__ import annotations

import pytest

from mondrop.eligibility_cache import EligibilityCache, UpsertOutcome


def addr(i: int) -> str:
    return f"0x{i:040x}"


# ──────────────────────────────────────────────────────────────
# Upsert
# ──────────────────────────────────────────────────────────────


class TestUpsert:
    def test_new_entry(self) -> None:
        cache = EligibilityCache("wallet")
        outcome = cache.upsert(addr(1), current_batch=5, expiry_window=3)
        assert outcome is UpsertOutcome.NEW
        assert cache.contains(addr(1))
        assert cache.expiry_of(addr(1)) == 8
        assert cache.size() == 1
        assert len(cache) == 1

    def test_normalizes_address(self) -> None:
        cache = EligibilityCache()
        cache.upsert("  0xABCdef0000000000000000000000000000000001 ", 1, 2)
        assert cache.contains("0xabcdef0000000000000000000000000000000001")
        assert "0xABCDEF0000000000000000000000000000000001" in cache

    def test_extend_moves_bucket(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 10)
        outcome = cache.upsert(addr(1), 4, 10)
        assert outcome is UpsertOutcome.EXTENDED
        assert cache.expiry_of(addr(1)) == 14
        assert addr(1) not in cache.bucket(11)
        assert addr(1) in cache.bucket(14)
        # emptied bucket is deleted
        assert cache.bucket_count() == 1

    def test_extend_keeps_other_bucket_members(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 10)
        cache.upsert(addr(2), 1, 10)
        cache.upsert(addr(1), 2, 10)
        assert cache.bucket(11) == frozenset({addr(2)})
        assert cache.bucket(12) == frozenset({addr(1)})

    def test_same_target_is_noop(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 10)
        outcome = cache.upsert(addr(1), 1, 10)
        assert outcome is UpsertOutcome.UNCHANGED
        assert cache.bucket(11) == frozenset({addr(1)})
        assert cache.bucket_count() == 1

    def test_never_in_two_buckets(self) -> None:
        cache = EligibilityCache()
        for batch in range(1, 20):
            cache.upsert(addr(7), batch, 5)
            holding = [b for b in range(0, 40) if addr(7) in cache.bucket(b)]
            assert holding == [batch + 5]

    def test_value_is_stored(self) -> None:
        cache = EligibilityCache("contract")
        cache.upsert(addr(1), 1, 10, value=True)
        cache.upsert(addr(2), 1, 10, value=False)
        assert cache.get(addr(1)) is True
        assert cache.get(addr(2)) is False
        assert cache.get(addr(3)) is None
        assert cache.get(addr(3), "missing") == "missing"


# ──────────────────────────────────────────────────────────────
# Expiry
# ──────────────────────────────────────────────────────────────


class TestExpiry:
    @pytest.mark.parametrize("start,window", [(1, 1), (1, 2), (5, 30), (100, 7)])
    def test_present_until_expiry_batch(self, start: int, window: int) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), start, window)
        for batch in range(start, start + window):
            cache.expire_batch(batch)
            assert cache.contains(addr(1))
        assert cache.expire_batch(start + window) == 1
        assert not cache.contains(addr(1))
        assert cache.expiry_of(addr(1)) is None

    def test_missing_bucket_is_noop(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 3)
        assert cache.expire_batch(99) == 0
        assert cache.size() == 1
        assert cache.bucket_count() == 1

    def test_expire_only_touches_its_bucket(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 2)
        cache.upsert(addr(2), 1, 2)
        cache.upsert(addr(3), 1, 3)
        assert cache.expire_batch(3) == 2
        assert not cache.contains(addr(1))
        assert not cache.contains(addr(2))
        assert cache.contains(addr(3))
        assert cache.bucket(3) == frozenset()

    def test_extended_entry_survives_old_bucket(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 2)   # expires at 3
        cache.upsert(addr(1), 2, 2)   # moved to 4
        cache.expire_batch(3)
        assert cache.contains(addr(1))
        cache.expire_batch(4)
        assert not cache.contains(addr(1))

    def test_expire_through_catches_up(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 2)   # 3
        cache.upsert(addr(2), 1, 3)   # 4
        cache.upsert(addr(3), 1, 9)   # 10
        assert cache.expire_through(1) == 0
        # counter jumped from 1 to 5 without a cleanup in between
        assert cache.expire_through(5) == 2
        assert cache.size() == 1
        assert cache.contains(addr(3))

    def test_expire_through_first_call_covers_older_buckets(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 0, 2)   # 2
        cache.upsert(addr(2), 0, 4)   # 4
        assert cache.expire_through(4) == 2
        assert cache.size() == 0

    def test_expire_through_is_idempotent(self) -> None:
        cache = EligibilityCache()
        cache.upsert(addr(1), 1, 1)
        assert cache.expire_through(2) == 1
        assert cache.expire_through(2) == 0
        cache.upsert(addr(2), 2, 1)
        assert cache.expire_through(3) == 1

    def test_stale_batch_lands_in_next_unexpired_bucket(self) -> None:
        cache = EligibilityCache()
        cache.expire_through(2)
        # registered against batch 1 after batch 2 was already cleaned up
        cache.upsert(addr(1), 1, 1)
        assert cache.expiry_of(addr(1)) == 3
        assert cache.expire_through(3) == 1
        assert not cache.contains(addr(1))

    def test_stale_batch_never_stranded(self) -> None:
        cache = EligibilityCache()
        cache.expire_through(5)
        cache.upsert(addr(1), 1, 2)
        for batch in range(6, 50):
            cache.expire_through(batch)
        assert not cache.contains(addr(1))
        assert cache.bucket_count() == 0
