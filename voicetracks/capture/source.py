"""
PCM sources for a capture session.

A source is anything with `async read(n) -> bytes` that returns b"" at end of stream;
asyncio.StreamReader qualifies. PCMSource is the push-fed variant: the voice layer calls
feed() with whatever chunk sizes it receives and end() when the user's stream ends.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Protocol


class AudioSource(Protocol):
    async def read(self, n: int = -1) -> bytes:
        ...


class PCMSource:
    """
    Buffers pushed PCM bytes; read() hands out up to n bytes, waiting while the buffer is empty.
    No framing is assumed: feed() may be called with any chunk size.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._data_ready = asyncio.Event()
        self._eof = False
        self._closed = False

    def feed(self, data: bytes) -> None:
        """Append raw PCM bytes. Dropped after end() or close()."""
        if self._eof or self._closed or not data:
            return
        self._buffer.extend(data)
        self._data_ready.set()

    def end(self) -> None:
        """Mark clean end of stream; buffered bytes are still readable."""
        self._eof = True
        self._data_ready.set()

    async def read(self, n: int = -1) -> bytes:
        while not self._buffer and not (self._eof or self._closed):
            self._data_ready.clear()
            await self._data_ready.wait()
        if self._closed:
            return b""
        if n < 0 or n >= len(self._buffer):
            out = bytes(self._buffer)
            self._buffer.clear()
            return out
        out = bytes(self._buffer[:n])
        del self._buffer[:n]
        return out

    def close(self) -> None:
        """Discard buffered bytes and wake any pending read with b""."""
        self._closed = True
        self._buffer.clear()
        self._data_ready.set()

    @property
    def closed(self) -> bool:
        return self._closed

    def buffered_bytes(self) -> int:
        return len(self._buffer)


async def close_source(source: AudioSource) -> None:
    """Close a source if it supports it (sync or async close). StreamReader has no close()."""
    close = getattr(source, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result
