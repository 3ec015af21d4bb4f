"""Shared data types for the drop agent."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional


def normalize_address(address: str) -> str:
    """Canonical cache key for an address: stripped and lower-cased."""
    return str(address).strip().lower()


def dedupe_addresses(addresses: Iterable[str]) -> list[str]:
    """Normalize and drop repeats, keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in addresses:
        addr = normalize_address(raw)
        if not addr or addr in seen:
            continue
        seen.add(addr)
        out.append(addr)
    return out


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(slots=True)
class DeliveryResult:
    """Outcome of one transfer inside a dispatch batch."""
    address: str
    status: DeliveryStatus
    tx_hash: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.SENT


@dataclass(slots=True)
class BatchReport:
    """Everything attempted for one dispatched batch."""
    results: list[DeliveryResult] = field(default_factory=list)
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.status is DeliveryStatus.SENT)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status is DeliveryStatus.FAILED)

    @property
    def elapsed_s(self) -> float:
        return max(0.0, self.finished_at - self.started_at)

    def to_dict(self) -> dict[str, object]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "elapsed_s": round(self.elapsed_s, 4),
            "results": [
                {
                    "address": r.address,
                    "status": r.status.value,
                    "tx_hash": r.tx_hash,
                    "reason": r.reason,
                }
                for r in self.results
            ],
        }
