"""
Protocol layer for screen capture communication.

This module contains the low-level protocol handling:
- Command opcodes, packet types and protocol constants
- Command encoding and packet header decoding
- The packet codec that reads whole packets from a transport
"""

from screenlink.protocol.codec import (
    HEADER,
    Packet,
    PacketCodec,
    decode_header,
    encode_command,
)
from screenlink.protocol.constants import Opcode, PacketType, ProtocolConstants

__all__ = [
    # Constants
    "Opcode",
    "PacketType",
    "ProtocolConstants",
    # Framing
    "HEADER",
    "Packet",
    "PacketCodec",
    "encode_command",
    "decode_header",
]
