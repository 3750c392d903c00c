"""Sample sources: where raw positions come from.

A source is push-based. ``subscribe`` registers two callbacks and returns a
handle whose ``cancel`` stops delivery; it is safe to cancel more than once.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol

from shinemap.errors import SensorError
from shinemap.protocol import LineReader
from shinemap.tracking.pulse import Sample

log = logging.getLogger(__name__)

SampleCallback = Callable[[Sample], Any]
ErrorCallback = Callable[[SensorError], Any]
StreamOpener = Callable[[], Awaitable[asyncio.StreamReader]]


class Subscription(Protocol):
    def cancel(self) -> None: ...


class SampleSource(Protocol):
    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Subscription: ...


def parse_sample(payload: dict) -> Sample:
    try:
        return Sample.from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise SensorError(f"malformed sample: {e!r}") from e


class _PushSubscription:
    def __init__(self, source: PushSampleSource, on_sample: SampleCallback, on_error: ErrorCallback) -> None:
        self._source = source
        self.on_sample = on_sample
        self.on_error = on_error

    def cancel(self) -> None:
        self._source._remove(self)


class PushSampleSource:
    """Adapter for callback-style providers: whoever owns the sensor calls push().

    Safe to push from any thread.
    """

    def __init__(self) -> None:
        self._subscribers: list[_PushSubscription] = []
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> _PushSubscription:
        sub = _PushSubscription(self, on_sample, on_error)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def _remove(self, sub: _PushSubscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def push(self, sample: Sample) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub.on_sample(sample)

    def push_payload(self, payload: dict) -> None:
        try:
            sample = parse_sample(payload)
        except SensorError as e:
            self.push_error(e)
            return
        self.push(sample)

    def push_error(self, error: SensorError) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub.on_error(error)


class _TaskSubscription:
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> None:
        """Block until the stream ends or the subscription is cancelled."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class StreamSampleSource:
    """JSON-lines samples read from a stream (stdin, TCP or a replayed file).

    With ``pace=True`` the gaps between sample ``time`` values are slept
    through, so a recorded track replays at its original speed.
    """

    def __init__(
        self,
        open_stream: StreamOpener,
        stall_timeout: float | None = None,
        pace: bool = False,
    ) -> None:
        self._open_stream = open_stream
        self._stall_timeout = stall_timeout
        self._pace = pace

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> _TaskSubscription:
        task = asyncio.get_running_loop().create_task(self._read_loop(on_sample, on_error))
        return _TaskSubscription(task)

    async def _read_loop(self, on_sample: SampleCallback, on_error: ErrorCallback) -> None:
        try:
            reader = await self._open_stream()
        except OSError as e:
            on_error(SensorError(f"cannot open sample stream: {e}"))
            return

        lines = LineReader(reader, stall_timeout=self._stall_timeout)
        prev_time: int | None = None
        while True:
            try:
                msg = await lines.read_message()
                if msg is None:
                    log.info("sample stream ended")
                    return
                sample = parse_sample(msg)
            except SensorError as e:
                on_error(e)
                continue
            except (ConnectionError, OSError) as e:
                on_error(SensorError(f"sample stream failed: {e}"))
                return

            if self._pace and prev_time is not None and sample.time > prev_time:
                await asyncio.sleep((sample.time - prev_time) / 1000.0)
            prev_time = sample.time
            on_sample(sample)


class ClockedSource:
    """Moves a virtual clock to each sample's recorded time before delivery."""

    def __init__(self, source: SampleSource, advance_to: Callable[[int], Any]) -> None:
        self._source = source
        self._advance_to = advance_to

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Subscription:
        def deliver(sample: Sample) -> Any:
            self._advance_to(sample.time)
            return on_sample(sample)

        return self._source.subscribe(deliver, on_error)


def file_opener(path: Path) -> StreamOpener:
    async def _open() -> asyncio.StreamReader:
        data = await asyncio.to_thread(path.read_bytes)
        reader = asyncio.StreamReader()
        reader.feed_data(data)
        reader.feed_eof()
        return reader

    return _open


def stdin_opener() -> StreamOpener:
    async def _open() -> asyncio.StreamReader:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        return reader

    return _open


def tcp_opener(host: str, port: int) -> StreamOpener:
    async def _open() -> asyncio.StreamReader:
        reader, _writer = await asyncio.open_connection(host, port)
        return reader

    return _open
