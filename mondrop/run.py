"""Entry point: wires all components and runs the drop agent.

Architecture:
    ┌──────────────┐
    │ BlockMonitor │──new blocks──→ extract_addresses()
    └──────────────┘                      ↓
                       expire cache buckets up to current batch
                                          ↓
      EligibilityCache(wallet) ←── AddressSelector ──→ ContractClassifier
                                          ↓                    ↓
                                    DispatchQueue        eth_getCode probe
                                          ↓
                                    RewardSender ──→ eth_sendRawTransaction
                                          ↓
                              BatchSequencer.advance_batch()

    Scheduler: cache_cleanup (expire buckets), wallet_status (balance)

Usage:
    mondrop --dry-run
    python -m mondrop.run --addresses-per-batch 10 --cooldown-batches 5
"""
from __future__ import annotations

import asyncio
import logging
import random
import signal
import sys
from typing import Any, Optional

from .address_selector import AddressSelector
from .block_monitor import BlockMonitor, extract_addresses
from .chain import ChainClient, DryRunSender, RewardSender, from_wei, to_wei
from .config import NETWORK_NAME, Config, parse_args
from .contract_classifier import ContractClassifier, FailSafePolicy
from .dispatch_queue import DispatchQueue
from .eligibility_cache import EligibilityCache
from .errors import ConfigurationError
from .models import BatchReport
from .scheduler import Scheduler
from .sequencer import BatchSequencer

log = logging.getLogger(__name__)


class DropRunner:
    """Owns the caches and orchestrates one reward cycle per block poll."""

    def __init__(
        self,
        cfg: Config,
        chain: Optional[ChainClient] = None,
        sender: Any = None,
    ) -> None:
        self.cfg = cfg.validate()

        self.chain = chain or ChainClient(cfg.rpc_url, timeout_s=cfg.rpc_timeout_s)
        if sender is not None:
            self.sender = sender
        elif cfg.dry_run:
            self.sender = DryRunSender()
        else:
            self.sender = RewardSender(
                self.chain,
                private_key=cfg.private_key,
                chain_id=cfg.chain_id,
                gas_price_wei=to_wei(cfg.gas_price_gwei, "gwei"),
            )

        # Caches live for the whole process
        self.wallet_cache = EligibilityCache("wallet")
        self.contract_cache = EligibilityCache("contract")

        self.sequencer = BatchSequencer()
        self.classifier = ContractClassifier(
            self.contract_cache,
            self.chain.is_contract,
            cfg.cooldown_batches,
            multiplier=cfg.contract_cache_multiplier,
            sub_batch_size=cfg.probe_sub_batch_size,
            fail_safe=FailSafePolicy(cfg.probe_failure_policy),
            negative_ttl_batches=cfg.negative_ttl_batches,
        )
        rng = random.Random(cfg.seed) if cfg.seed is not None else None
        self.selector = AddressSelector(
            self.wallet_cache, self.classifier, cfg.cooldown_batches, rng=rng
        )
        self.queue = DispatchQueue(
            self.sender.send, to_wei(cfg.amount_per_drop), cfg.currency_symbol
        )
        self.monitor = BlockMonitor(self.chain, poll_interval_s=cfg.block_poll_interval_s)
        self.scheduler = Scheduler()

        self.cycles = 0
        self.cycles_skipped = 0
        self._wire()

    def _wire(self) -> None:
        def on_batch_complete(report: BatchReport) -> None:
            batch = self.sequencer.advance_batch()
            log.info("batch complete, next batch %d", batch)

        self.queue.on_batch_complete(on_batch_complete)
        self.monitor.on_blocks(self.process_blocks)

    # ── Cycle ──

    def cleanup_caches(self) -> int:
        """Expire every cache bucket due at or before the current batch."""
        batch = self.sequencer.current_batch
        removed = self.wallet_cache.expire_through(batch)
        removed += self.contract_cache.expire_through(batch)
        log.debug("cache cleanup at batch %d: removed %d (wallets=%d contracts=%d)",
                  batch, removed, self.wallet_cache.size(), self.contract_cache.size())
        return removed

    async def process_blocks(self, blocks: list[Any]) -> list[str]:
        addresses = extract_addresses(blocks)
        if not addresses:
            log.info("no active addresses found in the new blocks, skipping")
            self.cycles_skipped += 1
            return []
        return await self.run_cycle(addresses)

    async def run_cycle(self, addresses: list[str]) -> list[str]:
        self.cycles += 1
        self.cleanup_caches()
        batch = self.sequencer.current_batch
        selected = await self.selector.select(addresses, self.cfg.addresses_per_batch, batch)
        if not selected:
            log.info("no suitable non-contract addresses found, skipping")
            self.cycles_skipped += 1
            return []
        self.queue.submit(selected)
        return selected

    async def log_status(self) -> None:
        try:
            balance = from_wei(await self.sender.balance())
        except Exception as exc:
            log.error("error checking wallet balance: %s", exc)
            return
        log.info("[STATUS] wallet balance: %.4f %s | batch %d | wallets cooling down %d "
                 "| contracts cached %d | queue pending %d | sent %d failed %d",
                 balance, self.cfg.currency_symbol, self.sequencer.current_batch,
                 self.wallet_cache.size(), self.contract_cache.size(),
                 self.queue.pending_count, self.queue.total_sent, self.queue.total_failed)
        if not self.cfg.dry_run and balance < self.cfg.low_balance_threshold:
            log.warning("low wallet balance: %.4f %s, consider adding more funds",
                        balance, self.cfg.currency_symbol)

    # ── Lifecycle ──

    async def run(self) -> None:
        log.info("starting drop agent on %s (chain id %d)", NETWORK_NAME, self.cfg.chain_id)
        log.info("drop wallet: %s%s", self.sender.address,
                 " (dry run)" if self.cfg.dry_run else "")

        self.scheduler.schedule("cache_cleanup", self.cleanup_caches,
                                self.cfg.cache_cleanup_interval_s)
        self.scheduler.schedule("wallet_status", self.log_status, self.cfg.status_interval_s)

        try:
            await self.monitor.run()
        except asyncio.CancelledError:
            log.info("runner cancelled")
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self.scheduler.cancel_all()
        await self.monitor.stop()
        try:
            await asyncio.wait_for(self.queue.join(), timeout=30.0)
        except asyncio.TimeoutError:
            log.warning("dispatch queue still busy at shutdown (%d pending)",
                        self.queue.pending_count)
        await self.chain.close()
        log.info("stopped. cycles: %d (skipped %d), batches sent: %d, "
                 "transfers ok: %d, failed: %d",
                 self.cycles, self.cycles_skipped, self.queue.batches_completed,
                 self.queue.total_sent, self.queue.total_failed)
        log.info("classifier: %s", self.classifier.stats())


def banner(cfg: Config) -> str:
    line = "=" * 60
    return (
        f"{line}\n"
        f"Starting MonDrop...\n"
        f"Dropping {cfg.amount_per_drop:.8f} {cfg.currency_symbol} to "
        f"{cfg.addresses_per_batch} active addresses per batch, "
        f"cooldown {cfg.cooldown_batches} batches\n"
        f"{line}"
    )


def main() -> None:
    cfg = parse_args()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    try:
        runner = DropRunner(cfg)
    except ConfigurationError as exc:
        log.error("initialization failed: %s", exc)
        raise SystemExit(1)

    print(banner(cfg), file=sys.stderr)

    loop = asyncio.new_event_loop()
    main_task = loop.create_task(runner.run(), name="mondrop")

    # Graceful shutdown on SIGINT/SIGTERM
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, main_task.cancel)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        loop.run_until_complete(main_task)
    except KeyboardInterrupt:
        log.info("interrupted")
    except Exception:
        log.exception("fatal error, exiting")
        raise SystemExit(1)
    finally:
        loop.close()


if __name__ == "__main__":
    main()
