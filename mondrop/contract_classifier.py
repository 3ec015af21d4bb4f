"""Cache-aside contract detection.

Wraps the remote "does this address have code" probe with the contract
EligibilityCache. Positive answers are cached for
cooldown_batches × CONTRACT_CACHE_MULTIPLIER batches and every cache hit
pushes the expiry out again. Negative answers are not cached unless
``negative_ttl_batches`` is set, in which case they are kept for that
short window only.

A probe that fails resolves to the fail-safe classification instead of
raising.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence
from enum import Enum

from .eligibility_cache import EligibilityCache
from .models import normalize_address

log = logging.getLogger(__name__)

CONTRACT_CACHE_MULTIPLIER = 10
PROBE_SUB_BATCH_SIZE = 50

# (address) -> True when the address holds code
ProbeFn = Callable[[str], Awaitable[bool]]


class FailSafePolicy(str, Enum):
    """What a failed probe means.

    WALLET:   treat as not a contract; keeps the address eligible.
    CONTRACT: treat as a contract; skips the address this cycle.
    """
    WALLET = "wallet"
    CONTRACT = "contract"


def chunked(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    size = max(1, int(size))
    for i in range(0, len(items), size):
        yield items[i:i + size]


class ContractClassifier:
    def __init__(
        self,
        cache: EligibilityCache,
        probe: ProbeFn,
        cooldown_batches: int,
        *,
        multiplier: int = CONTRACT_CACHE_MULTIPLIER,
        sub_batch_size: int = PROBE_SUB_BATCH_SIZE,
        fail_safe: FailSafePolicy = FailSafePolicy.WALLET,
        negative_ttl_batches: int = 0,
    ) -> None:
        self.cache = cache
        self._probe = probe
        self.expiry_window = int(cooldown_batches) * int(multiplier)
        self.sub_batch_size = max(1, int(sub_batch_size))
        self.fail_safe = FailSafePolicy(fail_safe)
        self.negative_ttl_batches = max(0, int(negative_ttl_batches))

        self.probes = 0
        self.probe_failures = 0
        self.cache_hits = 0

    @property
    def fail_safe_result(self) -> bool:
        return self.fail_safe is FailSafePolicy.CONTRACT

    # ── Public API ──

    def cached(self, address: str, current_batch: int) -> bool | None:
        """Cached classification, or None on a miss. Contract hits get a fresh expiry."""
        addr = normalize_address(address)
        if not self.cache.contains(addr):
            return None
        is_contract = bool(self.cache.get(addr))
        self.cache_hits += 1
        if is_contract:
            self.cache.upsert(addr, current_batch, self.expiry_window, True)
        return is_contract

    async def classify(self, address: str, current_batch: int) -> bool:
        """True when the address is (or is assumed to be) a contract."""
        verdicts = await self.classify_batch([address], current_batch)
        return verdicts[normalize_address(address)]

    async def classify_batch(
        self, addresses: Iterable[str], current_batch: int
    ) -> dict[str, bool]:
        """Classify one sub-batch.

        Cache hits are answered locally; misses are probed concurrently
        and the results are written to the cache only after every probe
        has returned.
        """
        verdicts: dict[str, bool] = {}
        misses: list[str] = []
        seen: set[str] = set()
        for raw in addresses:
            addr = normalize_address(raw)
            if addr in seen:
                continue
            seen.add(addr)
            hit = self.cached(addr, current_batch)
            if hit is None:
                misses.append(addr)
            else:
                verdicts[addr] = hit

        if not misses:
            return verdicts

        self.probes += len(misses)
        outcomes = await asyncio.gather(
            *(self._probe(addr) for addr in misses), return_exceptions=True
        )

        for addr, outcome in zip(misses, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                self.probe_failures += 1
                log.warning("contract probe failed for %s (%s); assuming %s",
                            addr, outcome, self.fail_safe.value)
                verdicts[addr] = self.fail_safe_result
                continue
            is_contract = bool(outcome)
            verdicts[addr] = is_contract
            if is_contract:
                self.cache.upsert(addr, current_batch, self.expiry_window, True)
            elif self.negative_ttl_batches > 0:
                self.cache.upsert(addr, current_batch, self.negative_ttl_batches, False)

        contracts = sum(1 for a in misses if verdicts[a])
        log.debug("probed %d addresses: %d contracts, %d probe failures",
                  len(misses), contracts,
                  sum(1 for o in outcomes if isinstance(o, Exception)))
        return verdicts

    async def classify_many(
        self, addresses: Sequence[str], current_batch: int
    ) -> dict[str, bool]:
        """Classify any number of addresses, sub_batch_size at a time."""
        verdicts: dict[str, bool] = {}
        for chunk in chunked(list(addresses), self.sub_batch_size):
            verdicts.update(await self.classify_batch(chunk, current_batch))
        return verdicts

    def stats(self) -> dict[str, int]:
        return {
            "probes": self.probes,
            "probe_failures": self.probe_failures,
            "cache_hits": self.cache_hits,
            "cached": self.cache.size(),
        }
