"""
Mock transport for testing.

This module provides a mock transport implementation that allows testing
the connector and forwarder without a capture server. Responses can be
pre-configured or scripted against expected requests.

Example:
    >>> from screenlink.transport import MockTransport
    >>>
    >>> mock = MockTransport()
    >>> mock.add_response(bytes([0x03, 0, 0, 0, 0]))  # ACK packet
    >>> mock.feed_eof()
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable

from screenlink.exceptions import ConnectionClosedError, TimeoutError, TransportError
from screenlink.transport.abc import AbstractTransport


class MockTransport(AbstractTransport):
    """
    Mock transport for testing without a server.

    This transport simulates a byte stream by serving pre-configured
    responses. It records all written data for verification in tests.

    By default a read that cannot be satisfied raises TimeoutError at once.
    With block_when_empty=True it waits for more responses, end of stream
    or close instead, which is how a real socket behaves.

    Attributes:
        written_data: List of all bytes written to the transport.
        max_concurrent_reads: Highest number of reads that were in flight
            at the same time.

    Example:
        >>> mock = MockTransport()
        >>> mock.add_response(b"\\x03\\x00\\x00\\x00\\x00")
        >>>
        >>> async with mock:
        ...     await mock.write(b"test")
        ...     header = await mock.read(5)
        ...     assert header[0] == 0x03
        ...     assert mock.written_data == [b"test"]
    """

    def __init__(
        self,
        address: str = "mock://test",
        *,
        block_when_empty: bool = False,
    ) -> None:
        """
        Initialize the mock transport.

        Args:
            address: Identifier for the mock transport.
            block_when_empty: Wait for data instead of timing out at once.
        """
        self._address = address
        self._block_when_empty = block_when_empty
        self._is_open = False
        self._eof = False
        self._responses: deque[bytes] = deque()
        self._written_data: list[bytes] = []
        self._read_buffer = bytearray()
        self._data_available = asyncio.Event()
        self._response_callback: Callable[[bytes], bytes | None] | None = None
        self._active_reads = 0
        self.max_concurrent_reads = 0
        self.open_count = 0

    @property
    def is_open(self) -> bool:
        """Check if the mock transport is open."""
        return self._is_open

    @property
    def address(self) -> str:
        """Get the mock address."""
        return self._address

    @property
    def written_data(self) -> list[bytes]:
        """Get all data written to the transport."""
        return self._written_data.copy()

    @property
    def last_written(self) -> bytes | None:
        """Get the most recently written data."""
        return self._written_data[-1] if self._written_data else None

    @property
    def pending_bytes(self) -> int:
        """Number of bytes queued but not yet read."""
        return len(self._read_buffer) + sum(len(r) for r in self._responses)

    def add_response(self, response: bytes) -> None:
        """
        Add a response to the queue.

        Responses are returned in FIFO order on read operations.

        Args:
            response: Bytes to return on next read.
        """
        self._responses.append(response)
        self._data_available.set()

    def add_responses(self, *responses: bytes) -> None:
        """
        Add multiple responses to the queue.

        Args:
            *responses: Multiple byte responses to add.
        """
        for response in responses:
            self.add_response(response)

    def feed_eof(self) -> None:
        """Mark end of stream: reads fail once queued data is used up."""
        self._eof = True
        self._data_available.set()

    def set_response_callback(
        self,
        callback: Callable[[bytes], bytes | None] | None,
    ) -> None:
        """
        Set a callback to dynamically generate responses.

        The callback receives the written data and should return the response
        bytes. If it returns None, nothing is queued.

        Args:
            callback: Function that takes written bytes and returns response.
        """
        self._response_callback = callback

    def clear(self) -> None:
        """Clear all written data and pending responses."""
        self._written_data.clear()
        self._responses.clear()
        self._read_buffer.clear()

    async def open(self) -> None:
        """Open the mock transport."""
        if self._is_open:
            raise TransportError("Mock transport already open")
        self._is_open = True
        self.open_count += 1

    async def close(self) -> None:
        """Close the mock transport and wake pending reads."""
        self._is_open = False
        self._data_available.set()

    async def write(self, data: bytes, timeout: float | None = None) -> None:
        """
        Write data to the mock transport.

        Records the written data and optionally triggers response callback.

        Args:
            data: Bytes to write.
            timeout: Ignored.

        Raises:
            TransportError: If transport is not open.
        """
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))

        if self._response_callback:
            response = self._response_callback(data)
            if response is not None:
                self.add_response(response)

    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Read exact number of bytes.

        Args:
            size: Number of bytes to read.
            timeout: How long to wait for data when blocking.

        Returns:
            Exactly size bytes.

        Raises:
            TimeoutError: If not enough data is available in time.
            ConnectionClosedError: If the stream ended or was closed.
        """
        self._active_reads += 1
        self.max_concurrent_reads = max(self.max_concurrent_reads, self._active_reads)
        try:
            while True:
                if not self._is_open:
                    raise ConnectionClosedError("Mock transport not open")

                while len(self._read_buffer) < size and self._responses:
                    self._read_buffer.extend(self._responses.popleft())

                if len(self._read_buffer) >= size:
                    result = bytes(self._read_buffer[:size])
                    del self._read_buffer[:size]
                    # Give concurrent tasks a chance to run, as a socket would
                    await asyncio.sleep(0)
                    return result

                if self._eof:
                    raise ConnectionClosedError(
                        "Mock stream ended",
                        expected=size,
                        received=len(self._read_buffer),
                    )

                if not self._block_when_empty:
                    raise TimeoutError(
                        f"Not enough mock data: need {size}, have {len(self._read_buffer)}"
                    )

                self._data_available.clear()
                try:
                    await asyncio.wait_for(self._data_available.wait(), timeout)
                except asyncio.TimeoutError:
                    raise TimeoutError(
                        f"Timeout waiting for {size} bytes",
                        timeout_seconds=timeout,
                    ) from None
        finally:
            self._active_reads -= 1

    def assert_written(self, expected: bytes, index: int = -1) -> None:
        """
        Assert that specific data was written.

        Args:
            expected: Expected bytes.
            index: Index in written_data list (-1 for last).

        Raises:
            AssertionError: If data doesn't match.
        """
        if not self._written_data:
            raise AssertionError("No data written to mock transport")

        actual = self._written_data[index]
        if actual != expected:
            raise AssertionError(f"Written data mismatch: expected {expected!r}, got {actual!r}")

    def assert_write_count(self, expected: int) -> None:
        """
        Assert number of write operations.

        Args:
            expected: Expected number of writes.

        Raises:
            AssertionError: If count doesn't match.
        """
        actual = len(self._written_data)
        if actual != expected:
            raise AssertionError(f"Write count mismatch: expected {expected}, got {actual}")


class ScriptedMockTransport(MockTransport):
    """
    Mock transport with scripted request/response pairs.

    This variant allows defining expected request/response sequences
    for more structured testing scenarios. A response is queued only once
    the matching request has been written.

    Example:
        >>> mock = ScriptedMockTransport()
        >>> mock.expect(request=b"\\x01\\x00\\x00\\x00\\x00", response=device_info_packet)
    """

    def __init__(self, address: str = "mock://scripted", **kwargs) -> None:
        super().__init__(address, **kwargs)
        self._script: list[tuple[bytes | None, bytes]] = []
        self._script_index = 0

    def expect(
        self,
        response: bytes,
        request: bytes | None = None,
    ) -> None:
        """
        Add an expected request/response pair.

        Args:
            response: Response to return.
            request: Expected request (None to match any).
        """
        self._script.append((request, response))

    async def write(self, data: bytes, timeout: float | None = None) -> None:
        """Write with script validation."""
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))

        if self._script_index < len(self._script):
            expected_request, response = self._script[self._script_index]

            if expected_request is not None and data != expected_request:
                raise AssertionError(
                    f"Script mismatch at step {self._script_index}: "
                    f"expected {expected_request!r}, got {data!r}"
                )

            self.add_response(response)
            self._script_index += 1

    @property
    def script_complete(self) -> bool:
        """Whether every scripted request has been written."""
        return self._script_index == len(self._script)
