"""Batch counter shared by the caches, the selector and the dispatch queue."""
from __future__ import annotations

import logging

log = logging.getLogger(__name__)


class BatchSequencer:
    """Monotonic batch epoch. Advanced once per completed dispatch cycle."""

    def __init__(self, start: int = 1) -> None:
        self._batch = int(start)
        log.info("batch sequencer starting at batch %d", self._batch)

    @property
    def current_batch(self) -> int:
        return self._batch

    def advance_batch(self) -> int:
        self._batch += 1
        log.debug("batch advanced to %d", self._batch)
        return self._batch
