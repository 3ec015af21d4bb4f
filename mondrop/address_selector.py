"""Picks which active addresses get a reward this cycle.

Pipeline per call:
    candidates → drop known contracts → drop wallets in cooldown
               → probe unknowns (only if the known pool is thin)
               → shuffle → take `count` → register cooldown

Every returned address is written to the cooldown cache before the call
returns, so it cannot be picked again until its expiry batch.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .contract_classifier import ContractClassifier, chunked
from .eligibility_cache import EligibilityCache
from .models import dedupe_addresses

log = logging.getLogger(__name__)

# Probing stops once the pool holds this many times the requested count.
POOL_TARGET_FACTOR = 2


@dataclass(slots=True)
class CandidatePartition:
    contracts: list[str] = field(default_factory=list)
    cooling_down: list[str] = field(default_factory=list)
    eligible: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)


class AddressSelector:
    def __init__(
        self,
        wallet_cache: EligibilityCache,
        classifier: ContractClassifier,
        cooldown_batches: int,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.wallet_cache = wallet_cache
        self.classifier = classifier
        self.cooldown_batches = int(cooldown_batches)
        self._rng = rng or random.Random()

    def partition(self, candidates: Iterable[str], current_batch: int) -> CandidatePartition:
        """Split candidates using only what the caches already know."""
        parts = CandidatePartition()
        for addr in dedupe_addresses(candidates):
            known = self.classifier.cached(addr, current_batch)
            if known is True:
                parts.contracts.append(addr)
            elif self.wallet_cache.contains(addr):
                parts.cooling_down.append(addr)
            elif known is False:
                parts.eligible.append(addr)
            else:
                parts.unknown.append(addr)
        return parts

    async def select(
        self, candidates: Iterable[str], count: int, current_batch: int
    ) -> list[str]:
        count = int(count)
        if count <= 0:
            return []
        log.debug("starting selection for batch %d", current_batch)

        parts = self.partition(candidates, current_batch)
        pool = parts.eligible
        target = POOL_TARGET_FACTOR * count
        log.debug("candidates: %d known contracts, %d cooling down, %d eligible, %d unknown",
                  len(parts.contracts), len(parts.cooling_down),
                  len(pool), len(parts.unknown))

        if len(pool) >= target:
            log.debug("known pool already %d >= %d, skipping contract probes",
                      len(pool), target)
        else:
            filtered = 0
            for chunk in chunked(parts.unknown, self.classifier.sub_batch_size):
                verdicts = await self.classifier.classify_batch(chunk, current_batch)
                for addr in chunk:
                    if verdicts.get(addr):
                        filtered += 1
                    elif not self.wallet_cache.contains(addr):
                        pool.append(addr)
                if len(pool) >= target:
                    break
            if filtered:
                log.info("filtered out %d contract addresses", filtered)

        log.info("%d addresses eligible for selection", len(pool))

        if not pool:
            log.warning("no eligible addresses available for batch %d", current_batch)
            return []

        if len(pool) <= count:
            if len(pool) < count:
                log.warning("only %d eligible addresses available for selection",
                            len(pool))
            selected = list(pool)
        else:
            self._rng.shuffle(pool)
            selected = pool[:count]

        for addr in selected:
            self.wallet_cache.upsert(addr, current_batch, self.cooldown_batches)

        log.info("selected %d addresses for batch %d", len(selected), current_batch)
        return selected
