"""Tests for command encoding and packet decoding."""

import asyncio

import pytest

from screenlink.exceptions import (
    ConnectionClosedError,
    ProtocolError,
    TimeoutError,
    TransportError,
)
from screenlink.protocol.codec import Packet, PacketCodec, decode_header, encode_command
from screenlink.protocol.constants import Opcode, PacketType
from screenlink.transport.mock import MockTransport


class TestEncodeCommand:
    """Tests for encode_command."""

    def test_query_device_info_header(self):
        """Test the query command is a bare 5-byte header."""
        assert encode_command(Opcode.QUERY_DEVICE_INFO) == bytes([0x01, 0x00, 0x00, 0x00, 0x00])

    @pytest.mark.parametrize("length", [0, 1, 5, 300, 70_000])
    def test_frame_is_header_plus_payload(self, length):
        """Test a payload of length L produces exactly 5 + L bytes."""
        payload = bytes(i % 251 for i in range(length))
        frame = encode_command(Opcode.GET_SCREEN_FRAME, payload)

        assert len(frame) == 5 + length
        assert decode_header(frame[:5]) == (Opcode.GET_SCREEN_FRAME, length)
        assert frame[5:] == payload

    def test_length_is_little_endian(self):
        """Test the length field byte order."""
        frame = encode_command(Opcode.START_SCREEN_CAPTURE, bytes(0x0102))
        assert frame[1:5] == bytes([0x02, 0x01, 0x00, 0x00])

    def test_opcode_out_of_range(self):
        """Test opcodes must fit in one byte."""
        with pytest.raises(ValueError):
            encode_command(256)
        with pytest.raises(ValueError):
            encode_command(-1)


class TestDecodeHeader:
    """Tests for decode_header."""

    def test_device_info_header(self):
        """Test decoding a DEVICE_INFO header of 192 bytes."""
        assert decode_header(bytes([0x01, 0xC0, 0x00, 0x00, 0x00])) == (1, 192)

    def test_max_length(self):
        """Test the largest declarable length."""
        assert decode_header(bytes([0x02, 0xFF, 0xFF, 0xFF, 0xFF])) == (2, 0xFFFFFFFF)

    def test_wrong_size_raises(self):
        """Test headers must be exactly 5 bytes."""
        with pytest.raises(ValueError):
            decode_header(b"\x01\x00\x00\x00")
        with pytest.raises(ValueError):
            decode_header(b"\x01\x00\x00\x00\x00\x00")


class TestPacket:
    """Tests for the Packet dataclass."""

    def test_kind_known(self):
        """Test known tags map to PacketType."""
        assert Packet(2, b"").kind is PacketType.SCREEN_FRAME
        assert Packet(255, b"").kind is PacketType.UNKNOWN

    def test_kind_unrecognized(self):
        """Test unrecognized tags stay raw ints."""
        assert Packet(9, b"").kind == 9

    def test_flags(self):
        """Test frame and error helpers."""
        assert Packet(PacketType.SCREEN_FRAME, b"x").is_frame
        assert not Packet(PacketType.ACK, b"").is_frame
        assert Packet(PacketType.ERROR, b"").is_error

    def test_encode(self):
        """Test encoding back to wire format."""
        packet = Packet(PacketType.SCREEN_FRAME, b"abc")
        assert packet.encode() == bytes([0x02, 0x03, 0x00, 0x00, 0x00]) + b"abc"

    def test_repr(self):
        """Test string representation."""
        assert repr(Packet(PacketType.ACK, b"")) == "Packet(ACK)"
        assert "3 bytes" in repr(Packet(PacketType.SCREEN_FRAME, b"abc"))
        assert "0x09" in repr(Packet(9, b""))


class TestPacketCodec:
    """Tests for PacketCodec over a mock transport."""

    @pytest.fixture
    def transport(self):
        """Create a MockTransport instance."""
        return MockTransport()

    @pytest.fixture
    def codec(self, transport):
        """Create a codec on the mock transport."""
        return PacketCodec(transport)

    @pytest.mark.asyncio
    async def test_send_command_single_write(self, codec, transport):
        """Test a command goes out as one write."""
        await transport.open()
        await codec.send_command(Opcode.START_SCREEN_CAPTURE)
        assert transport.written_data == [bytes([0x03, 0x00, 0x00, 0x00, 0x00])]

    @pytest.mark.asyncio
    async def test_send_command_with_payload(self, codec, transport):
        """Test header and payload are written together."""
        await transport.open()
        await codec.send_command(Opcode.GET_SCREEN_FRAME, b"\xAA\xBB")
        transport.assert_write_count(1)
        transport.assert_written(bytes([0x02, 0x02, 0x00, 0x00, 0x00, 0xAA, 0xBB]))

    @pytest.mark.asyncio
    async def test_send_when_closed_raises(self, codec):
        """Test sending on a closed transport fails."""
        with pytest.raises(TransportError):
            await codec.send_command(Opcode.EXIT)

    @pytest.mark.asyncio
    async def test_recv_full_payload(self, codec, transport):
        """Test the whole declared payload is returned."""
        await transport.open()
        transport.add_response(Packet(PacketType.SCREEN_FRAME, b"x" * 100).encode())

        packet = await codec.recv_packet()

        assert packet.packet_type == PacketType.SCREEN_FRAME
        assert packet.payload == b"x" * 100

    @pytest.mark.asyncio
    async def test_recv_reassembles_fragments(self, codec, transport):
        """Test a packet arriving in small pieces is reassembled."""
        await transport.open()
        wire = Packet(PacketType.SCREEN_FRAME, bytes(range(50))).encode()
        transport.add_responses(wire[:2], wire[2:4], wire[4:7], wire[7:30], wire[30:])

        packet = await codec.recv_packet()

        assert packet.payload == bytes(range(50))
        assert transport.pending_bytes == 0

    @pytest.mark.asyncio
    async def test_recv_empty_payload(self, codec, transport):
        """Test a zero-length packet."""
        await transport.open()
        transport.add_response(bytes([0x03, 0x00, 0x00, 0x00, 0x00]))

        packet = await codec.recv_packet()

        assert packet == Packet(PacketType.ACK, b"")

    @pytest.mark.asyncio
    async def test_recv_consecutive_packets(self, codec, transport):
        """Test back-to-back packets in one chunk are split correctly."""
        await transport.open()
        transport.add_response(
            Packet(PacketType.SCREEN_FRAME, b"one").encode()
            + Packet(PacketType.ACK, b"").encode()
            + Packet(PacketType.SCREEN_FRAME, b"three").encode()
        )

        payloads = [(await codec.recv_packet()).payload for _ in range(3)]

        assert payloads == [b"one", b"", b"three"]

    @pytest.mark.asyncio
    async def test_short_payload_never_returned(self, codec, transport):
        """Test EOF inside the payload fails instead of returning fewer bytes."""
        await transport.open()
        transport.add_response(bytes([0x02, 0x0A, 0x00, 0x00, 0x00]) + b"1234")
        transport.feed_eof()

        with pytest.raises(TransportError) as exc_info:
            await codec.recv_packet()

        assert not isinstance(exc_info.value, ConnectionClosedError)
        assert "Truncated" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_payload_timeout_is_not_transient(self, codec, transport):
        """Test a timeout after the header is reported as a broken stream."""
        await transport.open()
        transport.add_response(bytes([0x02, 0x0A, 0x00, 0x00, 0x00]) + b"1234")

        with pytest.raises(TransportError) as exc_info:
            await codec.recv_packet()

        assert type(exc_info.value) is TransportError

    @pytest.mark.asyncio
    async def test_eof_before_header(self, codec, transport):
        """Test a clean end of stream between packets."""
        await transport.open()
        transport.feed_eof()

        with pytest.raises(ConnectionClosedError):
            await codec.recv_packet()

    @pytest.mark.asyncio
    async def test_header_timeout_consumes_nothing(self, codec, transport):
        """Test a header timeout leaves partial bytes in place."""
        await transport.open()
        transport.add_response(b"\x02\x03\x00")

        with pytest.raises(TimeoutError):
            await codec.recv_packet()
        assert transport.pending_bytes == 3

        transport.add_response(b"\x00\x00abc")
        packet = await codec.recv_packet()
        assert packet.payload == b"abc"

    @pytest.mark.asyncio
    async def test_oversized_length_rejected(self, transport):
        """Test a declared length above the limit is a protocol error."""
        codec = PacketCodec(transport, max_payload_size=16)
        await transport.open()
        transport.add_response(bytes([0x02, 0x11, 0x00, 0x00, 0x00]) + bytes(17))

        with pytest.raises(ProtocolError):
            await codec.recv_packet()

    @pytest.mark.asyncio
    async def test_second_concurrent_reader_rejected(self):
        """Test only one recv_packet may be in flight."""
        transport = MockTransport(block_when_empty=True)
        codec = PacketCodec(transport)
        await transport.open()

        first = asyncio.create_task(codec.recv_packet())
        await asyncio.sleep(0)
        assert codec.is_reading

        with pytest.raises(ProtocolError):
            await codec.recv_packet()

        transport.add_response(Packet(PacketType.ACK, b"").encode())
        packet = await first

        assert packet.packet_type == PacketType.ACK
        assert not codec.is_reading
        assert transport.max_concurrent_reads == 1
