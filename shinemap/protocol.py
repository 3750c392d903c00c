"""Newline-delimited JSON framing for sample streams."""

from __future__ import annotations

import asyncio
import json
import logging

from shinemap.errors import SensorError

log = logging.getLogger(__name__)

NEWLINE = b"\n"


def encode(message: dict) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode() + NEWLINE


def decode_line(line: bytes) -> dict:
    """Parse one JSON object line. Raises SensorError for anything else."""
    try:
        message = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SensorError(f"malformed JSON line: {e}") from e
    if not isinstance(message, dict):
        raise SensorError(f"expected a JSON object, got {type(message).__name__}")
    return message


class LineReader:
    """Reads newline-delimited JSON objects from an asyncio.StreamReader.

    ``stall_timeout`` bounds the wait for one line; a silent provider surfaces
    as SensorError instead of blocking forever.
    """

    def __init__(self, reader: asyncio.StreamReader, stall_timeout: float | None = None) -> None:
        self._reader = reader
        self._stall_timeout = stall_timeout

    async def read_message(self) -> dict | None:
        """Read one message. Returns None on EOF, raises SensorError on a bad line."""
        while True:
            try:
                line = await asyncio.wait_for(
                    self._reader.readuntil(NEWLINE), timeout=self._stall_timeout
                )
            except asyncio.TimeoutError as e:
                raise SensorError(f"no sample for {self._stall_timeout:.0f}s") from e
            except asyncio.IncompleteReadError as e:
                # Last line without a trailing newline.
                if e.partial.strip():
                    return decode_line(e.partial)
                return None
            except asyncio.LimitOverrunError as e:
                log.warning("sample line exceeded buffer limit, discarding")
                await self._reader.read(e.consumed)
                raise SensorError("oversized sample line") from e

            line = line.strip()
            if not line:
                continue
            return decode_line(line)
