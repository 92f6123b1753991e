"""
Transport layer for screen capture protocol communication.

This package provides the byte-stream implementations the connector
reads packets from and writes commands to.

Available transports:
- TcpTransport: asyncio TCP stream to a capture server
- MockTransport: Mock transport for testing without a server

Example:
    >>> from screenlink.transport import TcpTransport
    >>> async with TcpTransport("192.168.1.20", 12345) as transport:
    ...     await transport.write(command)
    ...     header = await transport.read(5)

Testing Example:
    >>> from screenlink.transport import MockTransport
    >>> mock = MockTransport()
    >>> mock.add_response(bytes([0x03, 0, 0, 0, 0]))  # ACK
"""

from screenlink.transport.abc import AbstractTransport
from screenlink.transport.mock import MockTransport, ScriptedMockTransport
from screenlink.transport.tcp import TcpTransport, format_address

__all__ = [
    "AbstractTransport",
    "TcpTransport",
    "MockTransport",
    "ScriptedMockTransport",
    "format_address",
]
