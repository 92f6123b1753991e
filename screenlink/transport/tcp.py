"""
Async TCP transport using asyncio streams.

This module provides the transport implementation for talking to a
screen capture server over a persistent TCP connection.

Example:
    >>> transport = TcpTransport("192.168.1.20", 12345)
    >>> async with transport:
    ...     await transport.write(command)
    ...     header = await transport.read(5)
"""

from __future__ import annotations

import asyncio
import logging

from screenlink.exceptions import (
    ConnectionClosedError,
    ConnectionError,
    TimeoutError,
    TransportError,
)
from screenlink.protocol.constants import ProtocolConstants
from screenlink.transport.abc import AbstractTransport

logger = logging.getLogger(__name__)


def format_address(host: str, port: int) -> str:
    """
    Format a host/port pair, bracketing bare IPv6 literals.

    Args:
        host: Host name, IPv4 address or IPv6 address.
        port: TCP port.

    Returns:
        "host:port", or "[host]:port" for IPv6.
    """
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class TcpTransport(AbstractTransport):
    """
    Async TCP transport using asyncio streams.

    Provides non-blocking socket communication using Python's asyncio
    framework. This is the transport used against a real capture server.

    Attributes:
        address: Remote endpoint as "tcp://host:port".
        is_open: Whether the connection is currently open.

    Example:
        >>> transport = TcpTransport("192.168.1.20", 12345, connect_timeout=3.0)
        >>> await transport.open()
        >>> try:
        ...     await transport.write(b"\\x01\\x00\\x00\\x00\\x00")
        ...     header = await transport.read(5, timeout=5.0)
        ... finally:
        ...     await transport.close()
    """

    def __init__(
        self,
        host: str,
        port: int = ProtocolConstants.DEFAULT_PORT,
        *,
        connect_timeout: float | None = ProtocolConstants.DEFAULT_CONNECT_TIMEOUT,
        default_timeout: float | None = ProtocolConstants.DEFAULT_READ_TIMEOUT,
        write_timeout: float | None = ProtocolConstants.DEFAULT_WRITE_TIMEOUT,
    ) -> None:
        """
        Initialize the TCP transport.

        Args:
            host: Server host name or address.
            port: Server port (default: 12345).
            connect_timeout: Dial timeout in seconds (None blocks).
            default_timeout: Default read timeout in seconds (None blocks).
            write_timeout: Default write timeout in seconds (None blocks).
        """
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._default_timeout = default_timeout
        self._write_timeout = write_timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_open(self) -> bool:
        """Check if the connection is currently open."""
        return (
            self._writer is not None
            and not self._writer.is_closing()
            and self._reader is not None
        )

    @property
    def address(self) -> str:
        """Get the remote endpoint."""
        return f"tcp://{format_address(self._host, self._port)}"

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    async def open(self) -> None:
        """
        Dial the capture server.

        Raises:
            ConnectionError: If the connection cannot be established.
        """
        if self.is_open:
            return

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            raise ConnectionError(
                f"Timed out connecting to {self.address} "
                f"after {self._connect_timeout:.1f}s"
            ) from None
        except OSError as e:
            raise ConnectionError(f"Failed to connect to {self.address}: {e}") from e
        except (OverflowError, ValueError) as e:
            # Out-of-range port or a host name the resolver cannot encode
            raise ConnectionError(f"Invalid address {self.address}: {e}") from e

        logger.debug("Connected to %s", self.address)

    async def close(self) -> None:
        """
        Close the connection.

        Safely closes the connection and releases resources. Safe to call
        multiple times.
        """
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            # The socket is released either way; a reset peer is not an error here
            logger.debug("Error while closing %s: %s", self.address, e)

    async def write(self, data: bytes, timeout: float | None = None) -> None:
        """
        Write data to the connection.

        Args:
            data: Bytes to transmit.
            timeout: Write timeout in seconds. None uses the default.

        Raises:
            TimeoutError: If the peer does not accept the data in time.
            TransportError: If the connection is not open or write fails.
        """
        if not self.is_open:
            raise TransportError(f"Connection to {self.address} is not open")

        effective_timeout = timeout if timeout is not None else self._write_timeout

        try:
            self._writer.write(data)
            await asyncio.wait_for(self._writer.drain(), timeout=effective_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Timeout writing {len(data)} bytes",
                timeout_seconds=effective_timeout,
            ) from None
        except OSError as e:
            raise TransportError(f"Write failed: {e}") from e

    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Read an exact number of bytes from the connection.

        Args:
            size: Number of bytes to read.
            timeout: Read timeout in seconds. None uses the default.

        Returns:
            Exactly `size` bytes.

        Raises:
            TimeoutError: If timeout expires before all bytes are received.
            ConnectionClosedError: If the connection ends first.
            TransportError: If the connection is not open or read fails.
        """
        reader = self._reader
        if reader is None or not self.is_open:
            raise ConnectionClosedError(f"Connection to {self.address} is not open")

        if size <= 0:
            return b""

        effective_timeout = timeout if timeout is not None else self._default_timeout

        try:
            return await asyncio.wait_for(
                reader.readexactly(size),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Timeout waiting for {size} bytes",
                timeout_seconds=effective_timeout,
            ) from None
        except asyncio.IncompleteReadError as e:
            raise ConnectionClosedError(
                f"Connection to {self.address} closed",
                expected=size,
                received=len(e.partial),
            ) from e
        except OSError as e:
            raise TransportError(f"Read failed: {e}") from e

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"TcpTransport({self.address!r}, {status})"
