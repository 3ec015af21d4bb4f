"""Block monitor: polls for new blocks and hands them to the drop cycle.

Each poll reads the latest block number; if it moved, every block since
the last one seen is fetched (concurrently) with full transactions and
passed to the registered handler. Addresses are pulled out of the
blocks with extract_addresses().
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Optional

from .models import normalize_address

log = logging.getLogger(__name__)

BlocksHandler = Callable[[list[Any]], Awaitable[None]]


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def extract_addresses(blocks: Iterable[Any]) -> list[str]:
    """Unique sender and receiver addresses across all transactions, lower-cased."""
    seen: set[str] = set()
    out: list[str] = []
    tx_count = 0
    for block in blocks:
        for tx in _field(block, "transactions") or ():
            if not isinstance(tx, Mapping):
                # hash-only block bodies carry no addresses
                continue
            tx_count += 1
            for key in ("from", "to"):
                raw = tx.get(key)
                if not raw:
                    continue
                addr = normalize_address(raw)
                if addr not in seen:
                    seen.add(addr)
                    out.append(addr)
    log.info("extracted %d unique addresses from %d transactions", len(out), tx_count)
    return out


class BlockMonitor:
    """Polls the chain head and feeds new blocks to a handler.

    Usage:
        monitor = BlockMonitor(chain, poll_interval_s=2.0)
        monitor.on_blocks(handler)   # async handler(blocks)
        await monitor.run()          # polls forever
    """

    def __init__(
        self,
        chain: Any,
        poll_interval_s: float = 2.0,
        error_backoff_s: float = 5.0,
        max_blocks_per_poll: int = 50,
    ) -> None:
        self._chain = chain
        self._poll_interval_s = float(poll_interval_s)
        self._error_backoff_s = float(error_backoff_s)
        self._max_blocks = max(1, int(max_blocks_per_poll))
        self._handlers: list[BlocksHandler] = []
        self._running = False
        self.last_processed: Optional[int] = None
        self.polls = 0

    def on_blocks(self, handler: BlocksHandler) -> None:
        self._handlers.append(handler)

    async def run(self) -> None:
        self._running = True
        self.last_processed = await self._chain.latest_block_number()
        log.info("block monitor starting from block %d (poll interval: %.1fs)",
                 self.last_processed, self._poll_interval_s)
        while self._running:
            try:
                await asyncio.sleep(self._poll_interval_s)
                await self.poll_once()
            except asyncio.CancelledError:
                self._running = False
                return
            except Exception:
                log.exception("block monitor error, retrying in %.0fs", self._error_backoff_s)
                await asyncio.sleep(self._error_backoff_s)

    async def stop(self) -> None:
        self._running = False

    async def poll_once(self) -> int:
        """Process any new blocks. Returns how many were handed on."""
        self.polls += 1
        head = await self._chain.latest_block_number()
        if self.last_processed is None:
            self.last_processed = head
            return 0
        if head <= self.last_processed:
            log.debug("no new blocks since %d", self.last_processed)
            return 0

        start = self.last_processed + 1
        if head - start + 1 > self._max_blocks:
            log.warning("fell %d blocks behind, skipping to the last %d",
                        head - start + 1, self._max_blocks)
            start = head - self._max_blocks + 1

        log.debug("new blocks detected: %d to %d", start, head)
        blocks = await self._chain.get_blocks(start, head)
        self.last_processed = head

        for handler in self._handlers:
            try:
                await handler(blocks)
            except Exception:
                log.exception("blocks handler error")
        return len(blocks)
