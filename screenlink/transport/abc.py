"""
Abstract transport interface for screen capture protocol communication.

This module defines the abstract base class for all transport implementations.
Transports handle the raw byte stream to the capture server.

The transport layer is responsible for:
- Opening/closing the connection
- Reading exact byte counts and writing raw bytes
- Timeout handling

Implementations:
- TcpTransport: asyncio stream over TCP
- MockTransport: in-memory transport for tests
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType


class AbstractTransport(ABC):
    """
    Abstract base class for capture protocol transports.

    Transports provide async read/write operations over a single duplex
    byte stream. All transport implementations must inherit from this
    class and implement all abstract methods.

    Transports support async context manager protocol for safe resource
    management:

        async with TcpTransport("192.168.1.20", 12345) as transport:
            await transport.write(command)
            header = await transport.read(5)

    Attributes:
        is_open: Whether the transport connection is currently open.
        address: Identifier for the remote endpoint.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """
        Check if the transport connection is currently open.

        Returns:
            True if connected and ready for I/O, False otherwise.
        """
        ...

    @property
    @abstractmethod
    def address(self) -> str:
        """
        Get the transport identifier.

        Returns:
            Endpoint string (e.g., "tcp://192.168.1.20:12345").
        """
        ...

    @abstractmethod
    async def open(self) -> None:
        """
        Open the transport connection.

        Raises:
            ConnectionError: If the connection cannot be established.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Close the transport connection.

        Releases the connection and wakes any pending read, which then
        fails with ConnectionClosedError. Safe to call multiple times.
        """
        ...

    @abstractmethod
    async def write(self, data: bytes, timeout: float | None = None) -> None:
        """
        Write data to the transport.

        Args:
            data: Bytes to send, written as a single logical write.
            timeout: Write timeout in seconds. None uses transport default.

        Raises:
            TimeoutError: If the write does not complete in time.
            TransportError: If the transport is not open or write fails.
        """
        ...

    @abstractmethod
    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Read an exact number of bytes from the transport.

        Blocks until exactly `size` bytes have been received. Bytes are
        only consumed once all of them are available, so a timeout leaves
        the stream untouched.

        Args:
            size: Number of bytes to read.
            timeout: Read timeout in seconds. None uses transport default.

        Returns:
            Exactly `size` bytes.

        Raises:
            TimeoutError: If timeout expires before all bytes are received.
            ConnectionClosedError: If the stream ends first.
            TransportError: If the transport is not open or read fails.
        """
        ...

    async def __aenter__(self) -> AbstractTransport:
        """Async context manager entry - opens the transport."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit - closes the transport."""
        await self.close()
