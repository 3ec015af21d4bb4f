"""Single-flight reward dispatch.

State machine:

    Idle ──submit──→ Sending ──batch done, pending empty──→ Idle
                       │  ↑
                       └──┘ batch done, pop oldest pending

submit() never blocks: while a batch is in flight new batches are
appended to a FIFO and sent after it. Only one batch is ever being sent
from the funding account, and within a batch addresses go out one at a
time so nonces stay in order.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from typing import Optional

from .errors import DeliveryError
from .models import BatchReport, DeliveryResult, DeliveryStatus, dedupe_addresses

log = logging.getLogger(__name__)

# (address, amount_wei) -> tx hash
SendFn = Callable[[str, int], Awaitable[str]]
CompletionCallback = Callable[[BatchReport], None]


class DispatchQueue:
    """Serializes reward batches onto one sender.

    Usage:
        queue = DispatchQueue(sender.send, amount_wei)
        queue.on_batch_complete(lambda report: sequencer.advance_batch())
        queue.submit(selected)      # inside the event loop
        await queue.join()          # wait until idle
    """

    def __init__(self, send: SendFn, amount_wei: int, currency_symbol: str = "MON") -> None:
        self._send = send
        self.amount_wei = int(amount_wei)
        self.currency_symbol = currency_symbol
        self._pending: deque[list[str]] = deque()
        self._in_flight = False
        self._task: Optional[asyncio.Task[None]] = None
        self._callbacks: list[CompletionCallback] = []

        self.batches_completed = 0
        self.total_sent = 0
        self.total_failed = 0

    # ── Public API ──

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def on_batch_complete(self, cb: CompletionCallback) -> None:
        """Register a callback fired with the BatchReport of every finished batch."""
        self._callbacks.append(cb)

    def submit(self, addresses: Iterable[str]) -> None:
        batch = dedupe_addresses(addresses)
        if not batch:
            log.warning("no addresses provided for drop, ignoring")
            return

        if self._in_flight:
            self._pending.append(batch)
            log.debug("send in progress, queued batch of %d addresses (%d waiting)",
                      len(batch), len(self._pending))
            return

        self._in_flight = True
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._drain(batch), name="dispatch")

    async def join(self) -> None:
        """Wait until no batch is in flight and nothing is pending."""
        while self._task is not None:
            await asyncio.shield(self._task)

    # ── Internals ──

    async def _drain(self, batch: list[str]) -> None:
        try:
            while True:
                try:
                    report = await self._send_batch(batch)
                except Exception:
                    log.exception("error sending batch of %d addresses", len(batch))
                else:
                    self._complete(report)
                if not self._pending:
                    break
                batch = self._pending.popleft()
                log.debug("processing queued batch with %d addresses (%d still waiting)",
                          len(batch), len(self._pending))
        finally:
            self._in_flight = False
            self._task = None

    async def _send_batch(self, addresses: list[str]) -> BatchReport:
        report = BatchReport(started_at=time.time())
        log.info("sending %d wei %s to %d addresses",
                 self.amount_wei, self.currency_symbol, len(addresses))

        for addr in addresses:
            try:
                tx_hash = await self._send(addr, self.amount_wei)
            except DeliveryError as exc:
                log.error("failed to send to %s: %s", addr, exc.reason)
                report.results.append(DeliveryResult(addr, DeliveryStatus.FAILED, reason=exc.reason))
            except Exception as exc:
                log.error("failed to send to %s: %s", addr, exc)
                report.results.append(DeliveryResult(addr, DeliveryStatus.FAILED, reason=str(exc)))
            else:
                log.info("sent to %s in tx %s", addr, tx_hash)
                report.results.append(DeliveryResult(addr, DeliveryStatus.SENT, tx_hash=tx_hash))

        report.finished_at = time.time()
        return report

    def _complete(self, report: BatchReport) -> None:
        self.batches_completed += 1
        self.total_sent += report.sent
        self.total_failed += report.failed
        log.info("drop complete: %d successful, %d failed (%.2fs)",
                 report.sent, report.failed, report.elapsed_s)
        log.debug("batch report: %s", report.to_dict())
        for cb in self._callbacks:
            try:
                cb(report)
            except Exception:
                log.exception("batch completion callback error")
