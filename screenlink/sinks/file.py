"""
File-backed frame sink.

Frame payloads are written to a file as they arrive, producing a raw
elementary stream (e.g. output.h264) that standard tools can play.
Writes never wait for a consumer. File I/O runs in a worker thread so a
slow disk does not stall the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import BinaryIO

from screenlink.exceptions import FrameSinkError, SinkClosedError
from screenlink.sinks.abc import FrameSink

logger = logging.getLogger(__name__)


class FileFrameSink(FrameSink):
    """
    Frame sink that writes payloads to a file.

    The file is opened on the first write, so constructing the sink has no
    file-system side effect. It is truncated unless append is set.

    Example:
        >>> sink = FileFrameSink("output.h264")
        >>> connector = ScreenConnector(sink)
    """

    def __init__(self, path: str | Path, *, append: bool = False) -> None:
        """
        Initialize the file sink.

        Args:
            path: Destination file path.
            append: Append to an existing file instead of truncating it.
        """
        self._path = Path(path)
        self._append = append
        self._file: BinaryIO | None = None
        self._closed = False
        self.bytes_written = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, data: bytes) -> None:
        """
        Write one payload to the file.

        Raises:
            SinkClosedError: If the sink has been closed.
            FrameSinkError: If the file cannot be opened or written.
        """
        if self._closed:
            raise SinkClosedError(f"Frame file {self._path} is closed")

        try:
            if self._file is None:
                self._file = await asyncio.to_thread(self._path.open, "ab" if self._append else "wb")
                logger.info("Writing frames to %s", self._path)
            await asyncio.to_thread(self._file.write, data)
        except OSError as e:
            raise FrameSinkError(f"Cannot write frames to {self._path}: {e}") from e

        self.bytes_written += len(data)

    async def flush(self) -> None:
        """Flush buffered bytes to the file."""
        if self._file is None or self._closed:
            return
        try:
            await asyncio.to_thread(self._file.flush)
        except OSError as e:
            raise FrameSinkError(f"Cannot flush {self._path}: {e}") from e

    async def close(self) -> None:
        """
        Close the file.

        Safe to call multiple times.

        Raises:
            FrameSinkError: If the final flush fails.
        """
        if self._closed:
            return
        self._closed = True

        file, self._file = self._file, None
        if file is None:
            return
        try:
            await asyncio.to_thread(file.close)
        except OSError as e:
            raise FrameSinkError(f"Cannot close {self._path}: {e}") from e
        logger.debug("Closed %s after %d bytes", self._path, self.bytes_written)

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"FileFrameSink({str(self._path)!r}, {status})"
