"""
Screen capture protocol opcodes, packet types and constants.

The opcode and packet type values must match the capture server.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Final


class Opcode(IntEnum):
    """
    Command opcodes for client-to-server messages.

    Each command is sent as a 5-byte header (opcode, payload length)
    followed by an optional payload.
    """

    QUERY_DEVICE_INFO = 1
    """Request the device info record. Answered by a DEVICE_INFO packet."""

    GET_SCREEN_FRAME = 2
    """Request a single screen frame."""

    START_SCREEN_CAPTURE = 3
    """Start streaming screen frames."""

    STOP_SCREEN_CAPTURE = 4
    """Stop streaming screen frames."""

    EXIT = 5
    """Ask the server to end the session."""


class PacketType(IntEnum):
    """Type tags for server-to-client packets."""

    DEVICE_INFO = 1
    """Fixed 192-byte device info record."""

    SCREEN_FRAME = 2
    """Opaque chunk of the encoded video bitstream."""

    ACK = 3
    """Command acknowledgment."""

    ERROR = 4
    """Server-side error report."""

    UNKNOWN = 255
    """Packet type the server could not classify."""


class ProtocolConstants:
    """
    Protocol-level constants and defaults.

    Timeouts are in seconds. None means block until the I/O completes.
    """

    HEADER_SIZE: Final[int] = 5
    """Opcode/type byte plus 32-bit little-endian length."""

    MAX_LENGTH: Final[int] = 0xFFFFFFFF
    """Largest length a header can declare."""

    DEVICE_INFO_SIZE: Final[int] = 192
    """Size of the device info record in bytes."""

    DEFAULT_PORT: Final[int] = 12345
    """Port the capture server listens on by default."""

    DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
    """Time allowed for the TCP dial."""

    DEFAULT_RESPONSE_TIMEOUT: Final[float] = 5.0
    """Time allowed for the reply to a response-bearing command."""

    DEFAULT_READ_TIMEOUT: Final[float | None] = None
    """Streaming reads block until data arrives."""

    DEFAULT_WRITE_TIMEOUT: Final[float | None] = None
    """Writes block until the kernel accepts the data."""

    MAX_PAYLOAD_SIZE: Final[int] = 64 * 1024 * 1024
    """Declared lengths above this are treated as a corrupt stream."""

    DEFAULT_STREAM_BUFFER_SIZE: Final[int] = 4 * 1024 * 1024
    """Bound of the in-memory frame sink before writers block."""

    DEFAULT_OUTPUT_FILE: Final[str] = "output.h264"
    """File name used by the command line tool."""

