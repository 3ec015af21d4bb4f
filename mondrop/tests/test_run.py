"""Tests for the drop runner: cycle, status and shutdown."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from mondrop.config import Config
from mondrop.run import DropRunner, banner


def addr(i: int) -> str:
    return f"0x{i:040x}"


def tx(sender: str, to: str | None) -> dict[str, Any]:
    return {"from": sender, "to": to, "value": 0}


class FakeChain:
    """Just enough of ChainClient for the runner."""

    def __init__(self, contracts: tuple[str, ...] = ()) -> None:
        self.contracts = set(contracts)
        self.probes: list[str] = []
        self.closed = False

    async def is_contract(self, address: str) -> bool:
        self.probes.append(address)
        return address in self.contracts

    async def close(self) -> None:
        self.closed = True


class FakeSender:
    address = "0xfunding"

    def __init__(self, balance_wei: int = 10**18) -> None:
        self.sent: list[str] = []
        self.balance_wei = balance_wei

    async def send(self, to: str, amount_wei: int) -> str:
        self.sent.append(to)
        return f"0x{len(self.sent):064x}"

    async def balance(self) -> int:
        return self.balance_wei


# ──────────────────────────────────────────────────────────────
# Drop cycle
# ──────────────────────────────────────────────────────────────


def make_runner(chain: FakeChain, sender: FakeSender, **overrides: Any) -> DropRunner:
    fields: dict[str, Any] = {
        "dry_run": True,
        "addresses_per_batch": 3,
        "cooldown_batches": 2,
        "seed": 5,
    }
    fields.update(overrides)
    return DropRunner(Config(**fields), chain=chain, sender=sender)  # type: ignore[arg-type]


class TestDropRunner:
    def test_cycle_sends_and_advances_batch(self) -> None:
        contract = addr(99)
        chain = FakeChain(contracts=(contract,))
        sender = FakeSender()
        runner = make_runner(chain, sender)

        async def scenario() -> list[str]:
            selected = await runner.run_cycle([contract, addr(1), addr(2)])
            await runner.queue.join()
            return selected

        selected = asyncio.run(scenario())
        assert sorted(selected) == [addr(1), addr(2)]
        assert sorted(sender.sent) == [addr(1), addr(2)]
        assert runner.sequencer.current_batch == 2
        assert runner.contract_cache.contains(contract)
        for a in selected:
            assert runner.wallet_cache.expiry_of(a) == 3

    def test_process_blocks(self) -> None:
        chain = FakeChain()
        sender = FakeSender()
        runner = make_runner(chain, sender)
        blocks = [{"transactions": [tx(addr(1), addr(2))]}]

        async def scenario() -> None:
            await runner.process_blocks(blocks)
            await runner.process_blocks([{"transactions": []}])
            await runner.queue.join()

        asyncio.run(scenario())
        assert sorted(sender.sent) == [addr(1), addr(2)]
        assert runner.cycles == 1
        assert runner.cycles_skipped == 1

    def test_cooldown_then_cleanup_before_selection(self) -> None:
        chain = FakeChain()
        sender = FakeSender()
        runner = make_runner(chain, sender, cooldown_batches=1)

        async def scenario() -> list[list[str]]:
            first = await runner.run_cycle([addr(1)])
            await runner.queue.join()
            # batch 2: the entry expiring at 2 is dropped before selection
            second = await runner.run_cycle([addr(1)])
            await runner.queue.join()
            return [first, second]

        assert asyncio.run(scenario()) == [[addr(1)], [addr(1)]]
        assert runner.sequencer.current_batch == 3

    def test_cooling_down_wallet_skipped(self) -> None:
        chain = FakeChain()
        sender = FakeSender()
        runner = make_runner(chain, sender, cooldown_batches=5)

        async def scenario() -> list[list[str]]:
            first = await runner.run_cycle([addr(1)])
            await runner.queue.join()
            second = await runner.run_cycle([addr(1)])
            return [first, second]

        assert asyncio.run(scenario()) == [[addr(1)], []]
        assert runner.cycles_skipped == 1
        assert runner.sequencer.current_batch == 2

    def test_low_balance_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        chain = FakeChain()
        sender = FakeSender(balance_wei=10**12)
        runner = make_runner(chain, sender, dry_run=False, private_key="0x01")
        with caplog.at_level(logging.WARNING, logger="mondrop.run"):
            asyncio.run(runner.log_status())
        assert "low wallet balance" in caplog.text

    def test_shutdown_closes_chain(self) -> None:
        chain = FakeChain()
        runner = make_runner(chain, FakeSender())
        asyncio.run(runner.shutdown())
        assert chain.closed

    def test_banner(self) -> None:
        text = banner(Config(addresses_per_batch=10, amount_per_drop=0.001, cooldown_batches=4))
        assert "0.00100000 MON" in text
        assert "10 active addresses" in text
