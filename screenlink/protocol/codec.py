"""
Screen capture protocol packet framing.

Both directions share one frame layout:

    [TAG: u8][LENGTH: u32 little-endian][PAYLOAD: LENGTH bytes]

Outbound the tag is a command opcode, inbound it is a packet type. There
are no delimiters, checksums or correlation ids; integrity is left to TCP
and at most one response-bearing command may be in flight.

A packet is never handed out partially. recv_packet either returns the
full declared payload or raises, and any failure after the header has been
consumed leaves the stream desynchronized, so the connection must be torn
down.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from screenlink.exceptions import (
    ConnectionClosedError,
    ProtocolError,
    TimeoutError,
    TransportError,
)
from screenlink.protocol.constants import PacketType, ProtocolConstants

if TYPE_CHECKING:
    from screenlink.transport.abc import AbstractTransport

logger = logging.getLogger(__name__)

HEADER: Final[struct.Struct] = struct.Struct("<BI")
"""Packed header: one unsigned byte, one little-endian unsigned 32-bit length."""


def encode_command(opcode: int, payload: bytes = b"") -> bytes:
    """
    Encode a command frame.

    Args:
        opcode: Command opcode (0-255).
        payload: Optional payload bytes.

    Returns:
        Header followed by the payload, 5 + len(payload) bytes.

    Raises:
        ValueError: If the opcode or payload length does not fit the header.
    """
    if not 0 <= opcode <= 0xFF:
        raise ValueError(f"Opcode out of range: {opcode}")
    if len(payload) > ProtocolConstants.MAX_LENGTH:
        raise ValueError(f"Payload too large: {len(payload)} bytes")
    return HEADER.pack(opcode, len(payload)) + bytes(payload)


def decode_header(data: bytes | bytearray | memoryview) -> tuple[int, int]:
    """
    Decode a 5-byte packet header.

    Args:
        data: Exactly HEADER_SIZE bytes.

    Returns:
        Tuple of (type_tag, payload_length).

    Raises:
        ValueError: If data is not exactly 5 bytes.
    """
    if len(data) != HEADER.size:
        raise ValueError(f"Header must be {HEADER.size} bytes, got {len(data)}")
    return HEADER.unpack(data)


@dataclass(frozen=True)
class Packet:
    """
    A complete inbound packet.

    Attributes:
        packet_type: Raw type tag (0x00-0xFF).
        payload: Full payload, exactly as long as the header declared.
    """

    packet_type: int
    payload: bytes

    @property
    def kind(self) -> PacketType | int:
        """
        Get type as PacketType enum if recognized, else raw int.
        """
        try:
            return PacketType(self.packet_type)
        except ValueError:
            return self.packet_type

    @property
    def is_frame(self) -> bool:
        """Check if this packet carries screen frame data."""
        return self.packet_type == PacketType.SCREEN_FRAME

    @property
    def is_error(self) -> bool:
        """Check if this packet is a server error report."""
        return self.packet_type == PacketType.ERROR

    def encode(self) -> bytes:
        """Encode back to wire format (used by simulated servers)."""
        return HEADER.pack(self.packet_type, len(self.payload)) + self.payload

    def __repr__(self) -> str:
        kind = self.kind
        name = kind.name if isinstance(kind, PacketType) else f"0x{self.packet_type:02X}"
        if self.payload:
            return f"Packet({name}, payload={len(self.payload)} bytes)"
        return f"Packet({name})"


class PacketCodec:
    """
    Command writer and packet reader over a transport.

    The codec allows a single reader at a time; a second concurrent
    recv_packet call is a ProtocolError rather than a race on the stream.

    Example:
        >>> codec = PacketCodec(transport)
        >>> await codec.send_command(Opcode.QUERY_DEVICE_INFO)
        >>> packet = await codec.recv_packet(timeout=5.0)
        >>> packet.kind
        <PacketType.DEVICE_INFO: 1>
    """

    def __init__(
        self,
        transport: AbstractTransport,
        max_payload_size: int = ProtocolConstants.MAX_PAYLOAD_SIZE,
    ) -> None:
        """
        Initialize the codec.

        Args:
            transport: Open (or soon to be opened) transport.
            max_payload_size: Largest declared length accepted.
        """
        self._transport = transport
        self._max_payload_size = max_payload_size
        self._reading = False

    @property
    def transport(self) -> AbstractTransport:
        """Get the underlying transport."""
        return self._transport

    @property
    def is_reading(self) -> bool:
        """Whether a recv_packet call is in progress."""
        return self._reading

    async def send_command(
        self,
        opcode: int,
        payload: bytes = b"",
        timeout: float | None = None,
    ) -> None:
        """
        Send a command without waiting for any response.

        Header and payload go out in one transport write.

        Args:
            opcode: Command opcode.
            payload: Optional payload bytes.
            timeout: Write timeout override in seconds.

        Raises:
            TransportError: If the transport is not open or the write fails.
        """
        if not self._transport.is_open:
            raise TransportError("Connection not established")

        frame = encode_command(opcode, payload)
        await self._transport.write(frame, timeout)
        logger.debug("Sent command %d (%d byte payload)", opcode, len(payload))

    async def recv_packet(self, timeout: float | None = None) -> Packet:
        """
        Receive one complete packet.

        Args:
            timeout: Read timeout override in seconds, applied to the header
                and to the payload separately.

        Returns:
            The packet with its full payload.

        Raises:
            TimeoutError: If no header arrived in time (nothing consumed).
            ConnectionClosedError: If the stream ended before a header.
            TransportError: If the stream failed after the header was read.
            ProtocolError: On a second concurrent reader or an oversized
                declared length.
        """
        if self._reading:
            raise ProtocolError("Another reader is already receiving on this connection")

        self._reading = True
        try:
            header = await self._transport.read(HEADER.size, timeout)
            packet_type, length = decode_header(header)

            if length > self._max_payload_size:
                raise ProtocolError(
                    f"Declared payload length {length} exceeds limit {self._max_payload_size}"
                )

            try:
                payload = await self._transport.read(length, timeout) if length else b""
            except (TimeoutError, ConnectionClosedError) as e:
                raise TransportError(
                    f"Truncated packet (type {packet_type}, {length} bytes): {e}"
                ) from e

            logger.debug("Received packet type %d, %d bytes", packet_type, length)
            return Packet(packet_type=packet_type, payload=payload)
        finally:
            self._reading = False
