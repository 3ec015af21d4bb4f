"""Error taxonomy for the drop agent.

Per-item faults (classification probes, single transfers) are absorbed
where they happen; only configuration faults stop the process.
"""
from __future__ import annotations


class DropError(Exception):
    """Base class for all mondrop errors."""


class ConfigurationError(DropError):
    """Missing secret or invalid setting at startup. Fatal."""


class ClassificationError(DropError):
    """An address could not be classified."""


class ClassificationProbeError(ClassificationError):
    """The remote code lookup for an address failed."""

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"probe failed for {address}: {reason}")
        self.address = address
        self.reason = reason


class DeliveryError(DropError):
    """A single reward transfer failed."""

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"delivery to {address} failed: {reason}")
        self.address = address
        self.reason = reason
