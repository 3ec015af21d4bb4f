"""Configuration for the drop agent."""
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from .contract_classifier import CONTRACT_CACHE_MULTIPLIER, PROBE_SUB_BATCH_SIZE, FailSafePolicy
from .env import DEFAULT_ENV_FILE, bootstrap_env_file, env_bool, env_float, env_int, env_str
from .errors import ConfigurationError


# ──────────────────────────────────────────────────────────────
# Network (Monad testnet)
# ──────────────────────────────────────────────────────────────

DEFAULT_RPC_URL = "https://testnet-rpc.monad.xyz/"
DEFAULT_CHAIN_ID = 10143
NETWORK_NAME = "Monad Testnet"
BLOCK_EXPLORER_URL = "https://testnet.monadexplorer.com/"


# ──────────────────────────────────────────────────────────────
# Config dataclass
# ──────────────────────────────────────────────────────────────

@dataclass(slots=True)
class Config:
    """Runtime configuration, populated from CLI + env."""

    env_file: str = DEFAULT_ENV_FILE

    # ── Network ──
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    currency_symbol: str = "MON"
    rpc_timeout_s: float = 10.0
    # Fixed legacy gas price
    gas_price_gwei: float = 51.0

    # ── Funding wallet ──
    private_key: str = ""
    dry_run: bool = False

    # ── Drop ──
    addresses_per_batch: int = 50
    amount_per_drop: float = 0.0001
    # Batches a rewarded wallet waits before it is eligible again.
    # Wall-clock cooldown is roughly drop interval × cooldown_batches.
    cooldown_batches: int = 30
    contract_cache_multiplier: int = CONTRACT_CACHE_MULTIPLIER
    probe_sub_batch_size: int = PROBE_SUB_BATCH_SIZE
    probe_failure_policy: str = FailSafePolicy.WALLET.value
    # >0 remembers "not a contract" for this many batches
    negative_ttl_batches: int = 0
    seed: Optional[int] = None

    # ── Intervals (seconds) ──
    block_poll_interval_s: float = 2.0
    cache_cleanup_interval_s: float = 10.0
    status_interval_s: float = 60.0

    # ── Logging ──
    log_level: str = "INFO"

    @property
    def contract_expiry_batches(self) -> int:
        return self.cooldown_batches * self.contract_cache_multiplier

    @property
    def low_balance_threshold(self) -> float:
        """Warn when the wallet holds less than ten full batches of drops."""
        return self.addresses_per_batch * self.amount_per_drop * 10

    def validate(self) -> "Config":
        if self.addresses_per_batch <= 0:
            raise ConfigurationError("addresses_per_batch must be positive")
        if self.cooldown_batches <= 0:
            raise ConfigurationError("cooldown_batches must be positive")
        if self.amount_per_drop <= 0:
            raise ConfigurationError("amount_per_drop must be positive")
        if self.probe_sub_batch_size <= 0:
            raise ConfigurationError("probe_sub_batch_size must be positive")
        for name in ("block_poll_interval_s", "cache_cleanup_interval_s", "status_interval_s"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        try:
            FailSafePolicy(self.probe_failure_policy)
        except ValueError:
            raise ConfigurationError(
                f"unknown probe failure policy: {self.probe_failure_policy!r}"
            ) from None
        if not self.dry_run and not self.private_key:
            raise ConfigurationError(
                "private key not found: set PRIVATE_KEY or pass --private-key (or use --dry-run)"
            )
        return self


def parse_args(argv: Sequence[str] | None = None) -> Config:
    """Build Config from CLI args + environment variables."""
    argv_list = list(argv) if argv is not None else None
    env_file = bootstrap_env_file(argv_list)

    p = argparse.ArgumentParser(
        prog="mondrop",
        description="Reward recently active wallets with small native-token drops.",
    )
    p.add_argument("--env-file", default=env_file, help="path to env file (default: .env)")
    p.add_argument("--rpc-url", default=env_str("RPC_URL", DEFAULT_RPC_URL))
    p.add_argument("--chain-id", type=int, default=env_int("CHAIN_ID", DEFAULT_CHAIN_ID))
    p.add_argument("--rpc-timeout", type=float, default=env_float("RPC_TIMEOUT", 10.0),
                   help="RPC timeout seconds")
    p.add_argument("--gas-price-gwei", type=float, default=env_float("GAS_PRICE_GWEI", 51.0))
    p.add_argument("--private-key", default=os.environ.get("PRIVATE_KEY", ""),
                   help="funding wallet key; required unless --dry-run")
    p.add_argument("--dry-run", action=argparse.BooleanOptionalAction,
                   default=env_bool("DRY_RUN", False))
    p.add_argument("--addresses-per-batch", type=int,
                   default=env_int("ADDRESSES_PER_BATCH", 50))
    p.add_argument("--amount-per-drop", type=float,
                   default=env_float("AMOUNT_PER_DROP", 0.0001))
    p.add_argument("--cooldown-batches", type=int,
                   default=env_int("COOLDOWN_BATCHES", 30))
    p.add_argument("--probe-failure-policy", choices=[m.value for m in FailSafePolicy],
                   default=env_str("PROBE_FAILURE_POLICY", FailSafePolicy.WALLET.value),
                   help="how to treat an address whose contract probe failed")
    p.add_argument("--negative-ttl-batches", type=int,
                   default=env_int("NEGATIVE_TTL_BATCHES", 0),
                   help="remember non-contract probe results for N batches (0 = never)")
    p.add_argument("--seed", type=int, default=None, help="seed for reproducible selection")
    p.add_argument("--block-poll-interval", type=float,
                   default=env_float("BLOCK_POLL_INTERVAL", 2.0))
    p.add_argument("--cache-cleanup-interval", type=float,
                   default=env_float("CACHE_CLEANUP_INTERVAL", 10.0))
    p.add_argument("--status-interval", type=float,
                   default=env_float("STATUS_INTERVAL", 60.0))
    p.add_argument("--log-level", default=None)
    args = p.parse_args(argv_list)

    log_level = args.log_level or env_str("MONDROP_LOG_LEVEL", "INFO")

    return Config(
        env_file=env_file,
        rpc_url=str(args.rpc_url).strip(),
        chain_id=int(args.chain_id),
        currency_symbol=env_str("CURRENCY_SYMBOL", "MON"),
        rpc_timeout_s=max(1.0, float(args.rpc_timeout)),
        gas_price_gwei=max(0.0, float(args.gas_price_gwei)),
        private_key=str(args.private_key).strip(),
        dry_run=bool(args.dry_run),
        addresses_per_batch=int(args.addresses_per_batch),
        amount_per_drop=float(args.amount_per_drop),
        cooldown_batches=int(args.cooldown_batches),
        probe_failure_policy=str(args.probe_failure_policy).strip().lower(),
        negative_ttl_batches=max(0, int(args.negative_ttl_batches)),
        seed=args.seed,
        block_poll_interval_s=float(args.block_poll_interval),
        cache_cleanup_interval_s=float(args.cache_cleanup_interval),
        status_interval_s=float(args.status_interval),
        log_level=str(log_level).upper(),
    )
