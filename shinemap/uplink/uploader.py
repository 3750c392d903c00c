"""Circuit-breaker flush: drain the table, try one upload, forget the batch.

A failed batch is never retried, queued or written anywhere. Losing telemetry
is accepted; keeping a local trail of where someone has been is not.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from shinemap.errors import UploadError
from shinemap.grid.aggregator import GridAggregator, PendingBatch

log = logging.getLogger(__name__)


class BatchStore(Protocol):
    async def upload(self, batch: PendingBatch, token: str) -> None: ...


class CircuitBreakerUploader:
    def __init__(
        self,
        aggregator: GridAggregator,
        store: BatchStore | None,
        token: Callable[[], str | None],
        spawn: Callable[[Coroutine[Any, Any, Any]], None],
    ) -> None:
        self._aggregator = aggregator
        self._store = store
        self._token = token
        self._spawn = spawn
        self.batches_sent = 0
        self.batches_lost = 0
        self.batches_unsent = 0
        self.cells_lost = 0

    def flush(self) -> PendingBatch | None:
        """Drain and hand the batch to a background upload.

        Returns the drained batch, or None when there was nothing to send. Does
        not wait for the network.
        """
        if self._aggregator.is_empty():
            return None
        batch = self._aggregator.drain()
        if not batch:
            return None

        token = self._token()
        if not token or self._store is None:
            log.debug("no credential, discarding %d cells", len(batch))
            self.batches_unsent += 1
            return batch

        log.info("flushing %d cells", len(batch))
        self._spawn(self._attempt(batch, token))
        return batch

    async def _attempt(self, batch: PendingBatch, token: str) -> None:
        try:
            await self._store.upload(batch, token)
        except UploadError as e:
            self.batches_lost += 1
            self.cells_lost += len(batch)
            log.warning("upload failed, %d cells dropped: %s", len(batch), e)
            return
        except Exception:
            self.batches_lost += 1
            self.cells_lost += len(batch)
            log.exception("upload crashed, %d cells dropped", len(batch))
            return
        self.batches_sent += 1
