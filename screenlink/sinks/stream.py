"""
In-memory frame stream.

StreamFrameSink is a bounded single-producer/single-consumer byte pipe.
The forwarder writes frame payloads into it; a consumer (a video track
packetizer, a decoder, a websocket relay) pulls the concatenated bytes out
with read() or async iteration.

When the buffer is full, write() waits for the reader. That backpressure
propagates to the network read loop and, through TCP flow control, to the
server. A stalled reader therefore stalls frame ingestion.

Example:
    >>> sink = StreamFrameSink(max_buffer_size=1 << 20)
    >>> connector = ScreenConnector(sink)
    >>> ...
    >>> async for chunk in sink:
    ...     feed_decoder(chunk)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from screenlink.exceptions import SinkClosedError
from screenlink.protocol.constants import ProtocolConstants
from screenlink.sinks.abc import FrameSink

logger = logging.getLogger(__name__)


class StreamFrameSink(FrameSink):
    """
    Bounded in-memory byte stream between the forwarder and one reader.

    A payload is appended only when it fits in the remaining space, so a
    write never lands half a frame. A payload larger than the whole bound
    is admitted once the buffer is empty.

    After close(), writes raise SinkClosedError while bytes already
    buffered stay readable; read() returns b"" once they are drained.
    """

    def __init__(self, max_buffer_size: int = ProtocolConstants.DEFAULT_STREAM_BUFFER_SIZE) -> None:
        """
        Initialize the stream.

        Args:
            max_buffer_size: Bytes buffered before writers block.

        Raises:
            ValueError: If max_buffer_size is not positive.
        """
        if max_buffer_size <= 0:
            raise ValueError(f"max_buffer_size must be positive, got {max_buffer_size}")
        self._max_buffer_size = max_buffer_size
        self._buffer = bytearray()
        self._closed = False
        self._condition = asyncio.Condition()
        self.bytes_written = 0
        self.bytes_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        """Bytes written but not yet read."""
        return len(self._buffer)

    @property
    def max_buffer_size(self) -> int:
        return self._max_buffer_size

    @property
    def at_eof(self) -> bool:
        """True once the sink is closed and fully drained."""
        return self._closed and not self._buffer

    async def write(self, data: bytes) -> None:
        """
        Append one payload, waiting for space if needed.

        Raises:
            SinkClosedError: If the stream is closed before or while waiting.
        """
        if not data:
            return

        async with self._condition:
            while (
                not self._closed
                and self._buffer
                and len(self._buffer) + len(data) > self._max_buffer_size
            ):
                await self._condition.wait()

            if self._closed:
                raise SinkClosedError("Frame stream is closed")

            self._buffer.extend(data)
            self.bytes_written += len(data)
            self._condition.notify_all()

    async def read(self, size: int = -1) -> bytes:
        """
        Read up to `size` bytes, waiting until at least one is available.

        Args:
            size: Maximum bytes to return; -1 returns everything buffered.

        Returns:
            Between 1 and `size` bytes, or b"" at end of stream.
        """
        if size == 0:
            return b""

        async with self._condition:
            while not self._buffer and not self._closed:
                await self._condition.wait()

            if not self._buffer:
                return b""

            if size < 0 or size >= len(self._buffer):
                chunk = bytes(self._buffer)
                self._buffer.clear()
            else:
                chunk = bytes(self._buffer[:size])
                del self._buffer[:size]

            self.bytes_read += len(chunk)
            self._condition.notify_all()
            return chunk

    async def readexactly(self, size: int) -> bytes:
        """
        Read exactly `size` bytes.

        Raises:
            asyncio.IncompleteReadError: If the stream ends first.
        """
        parts = bytearray()
        while len(parts) < size:
            chunk = await self.read(size - len(parts))
            if not chunk:
                raise asyncio.IncompleteReadError(bytes(parts), size)
            parts.extend(chunk)
        return bytes(parts)

    async def close(self) -> None:
        """Close the write side and wake every waiting reader and writer."""
        if self._closed:
            return
        async with self._condition:
            self._closed = True
            self._condition.notify_all()
        logger.debug(
            "Frame stream closed (%d bytes written, %d still buffered)",
            self.bytes_written,
            len(self._buffer),
        )

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read()
            if not chunk:
                return
            yield chunk

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"StreamFrameSink({len(self._buffer)}/{self._max_buffer_size} bytes, {status})"
