"""JSON-RPC access to the chain: blocks, contract probe, signed transfers.

ChainClient is read-only (block polling, eth_getCode, balances).
RewardSender signs native-token transfers locally with eth_account and
submits them with eth_sendRawTransaction, tracking the funding
account's nonce itself between sends.
"""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional

import aiohttp
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3

from .errors import ClassificationProbeError, ConfigurationError, DeliveryError
from .models import normalize_address

log = logging.getLogger(__name__)

TRANSFER_GAS_LIMIT = 21000


def to_wei(amount: float | str | Decimal, unit: str = "ether") -> int:
    return int(AsyncWeb3.to_wei(Decimal(str(amount)), unit))


def from_wei(amount_wei: int) -> float:
    return float(AsyncWeb3.from_wei(int(amount_wei), "ether"))


class ChainClient:
    def __init__(self, rpc_url: str, timeout_s: float = 10.0) -> None:
        self.rpc_url = rpc_url
        provider = AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=max(1.0, float(timeout_s)))},
        )
        self.w3 = AsyncWeb3(provider)

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def latest_block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def get_block(self, number: int) -> Any:
        """Block with full transaction objects."""
        block = await self.w3.eth.get_block(number, full_transactions=True)
        log.debug("fetched block %d with %d transactions",
                  number, len(block.get("transactions", [])))
        return block

    async def get_blocks(self, start: int, end: int) -> list[Any]:
        """Blocks start..end inclusive, fetched concurrently, in order."""
        if end < start:
            return []
        return list(await asyncio.gather(
            *(self.get_block(n) for n in range(start, end + 1))
        ))

    async def is_contract(self, address: str) -> bool:
        """True when the address has deployed code."""
        try:
            code = await self.w3.eth.get_code(AsyncWeb3.to_checksum_address(address))
        except Exception as exc:
            raise ClassificationProbeError(normalize_address(address), str(exc)) from exc
        return bool(code) and len(code) > 0

    async def get_balance(self, address: str) -> int:
        return int(await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address), "latest"))


class RewardSender:
    """Sends fixed-price legacy transfers from one funding account.

    The pending nonce is read once and then advanced locally after each
    accepted transaction. Any failure forgets the nonce so the next send
    re-reads it from the node.
    """

    def __init__(
        self,
        chain: ChainClient,
        private_key: str,
        chain_id: int,
        gas_price_wei: int,
        gas_limit: int = TRANSFER_GAS_LIMIT,
    ) -> None:
        if not private_key:
            raise ConfigurationError("private key not found: set PRIVATE_KEY or pass --private-key")
        try:
            self._account = Account.from_key(private_key)
        except Exception as exc:
            raise ConfigurationError(f"invalid private key: {exc}") from exc
        self.chain = chain
        self.chain_id = int(chain_id)
        self.gas_price_wei = int(gas_price_wei)
        self.gas_limit = int(gas_limit)
        self._nonce: Optional[int] = None

    @property
    def address(self) -> str:
        return str(self._account.address)

    async def send(self, to: str, amount_wei: int) -> str:
        w3 = self.chain.w3
        try:
            if self._nonce is None:
                self._nonce = int(await w3.eth.get_transaction_count(self.address, "pending"))
            tx: dict[str, Any] = {
                "chainId": self.chain_id,
                "nonce": self._nonce,
                "to": AsyncWeb3.to_checksum_address(to),
                "value": int(amount_wei),
                "gas": self.gas_limit,
                "gasPrice": self.gas_price_wei,
            }
            signed = self._account.sign_transaction(tx)
            raw = getattr(signed, "raw_transaction", None)
            if raw is None:
                raw = getattr(signed, "rawTransaction", None)
            if raw is None:
                raise RuntimeError("signed_tx_missing_raw")
            tx_hash = await w3.eth.send_raw_transaction(raw)
        except Exception as exc:
            self._nonce = None
            raise DeliveryError(normalize_address(to), str(exc)) from exc

        self._nonce += 1
        return str(AsyncWeb3.to_hex(tx_hash))

    async def balance(self) -> int:
        return await self.chain.get_balance(self.address)


class DryRunSender:
    """Stands in for RewardSender with --dry-run: logs, sends nothing."""

    def __init__(self, address: str = "dry-run") -> None:
        self.address = address
        self.sends = 0

    async def send(self, to: str, amount_wei: int) -> str:
        self.sends += 1
        log.info("[dry-run] would send %d wei to %s", amount_wei, to)
        return f"dry-run:{self.sends}"

    async def balance(self) -> int:
        return 0
