"""Tests for the frame forwarding loop."""

import asyncio

import pytest
from pydantic import ValidationError

from screenlink.exceptions import (
    ProtocolError,
    SinkClosedError,
    TimeoutError,
    TransportError,
)
from screenlink.forwarder import (
    ForwarderPolicy,
    ForwarderState,
    FrameForwarder,
    StopReason,
)
from screenlink.protocol.codec import HEADER, Packet, PacketCodec
from screenlink.protocol.constants import PacketType
from screenlink.sinks import FileFrameSink, StreamFrameSink
from screenlink.transport.mock import MockTransport


def frame(payload: bytes) -> bytes:
    return Packet(PacketType.SCREEN_FRAME, payload).encode()


ACK = Packet(PacketType.ACK, b"").encode()


class FlakyTransport(MockTransport):
    """Mock transport that times out a set number of times before each header."""

    def __init__(self, timeouts_before_header):
        super().__init__()
        self._timeouts = list(timeouts_before_header)

    async def read(self, size, timeout=None):
        if size == HEADER.size and self._timeouts:
            if self._timeouts[0] > 0:
                self._timeouts[0] -= 1
                raise TimeoutError("Simulated header timeout", timeout_seconds=timeout)
            self._timeouts.pop(0)
        return await super().read(size, timeout)


class TestForwarderPolicy:
    """Tests for ForwarderPolicy validation."""

    def test_defaults(self):
        policy = ForwarderPolicy()
        assert policy.read_timeout is None
        assert policy.max_transient_errors == 3
        assert policy.close_sink_on_exit

    def test_rejects_negative_limit(self):
        with pytest.raises(ValidationError):
            ForwarderPolicy(max_transient_errors=-1)

    def test_rejects_zero_timeout(self):
        with pytest.raises(ValidationError):
            ForwarderPolicy(read_timeout=0)

    def test_frozen(self):
        policy = ForwarderPolicy()
        with pytest.raises(ValidationError):
            policy.retry_delay = 1.0


class TestFrameForwarder:
    """Tests for FrameForwarder."""

    @pytest.fixture
    def transport(self):
        """Create a MockTransport instance."""
        return MockTransport()

    @pytest.fixture
    def codec(self, transport):
        """Create a codec on the mock transport."""
        return PacketCodec(transport)

    @pytest.fixture
    def sink(self):
        """Create an in-memory frame stream."""
        return StreamFrameSink()

    @pytest.mark.asyncio
    async def test_forwards_frames_in_order(self, transport, codec, sink):
        """Test frame payloads reach the sink whole, in order, with non-frames dropped."""
        await transport.open()
        payloads = [b"a" * 100, b"b" * 250, b"c" * 10]
        transport.add_responses(frame(payloads[0]), ACK, frame(payloads[1]), frame(payloads[2]))
        transport.feed_eof()

        forwarder = FrameForwarder(codec, sink)
        stats = await forwarder.run()

        assert stats.frames_forwarded == 3
        assert stats.bytes_forwarded == 360
        assert stats.packets_discarded == 1
        assert stats.stop_reason is StopReason.EOF
        assert stats.ok
        assert forwarder.state is ForwarderState.STOPPED
        assert sink.closed
        assert await sink.read() == b"".join(payloads)

    @pytest.mark.asyncio
    async def test_discarded_packets_keep_stream_in_sync(self, transport, codec, sink):
        """Test payloads of discarded packets are consumed, not parsed as headers."""
        await transport.open()
        transport.add_responses(
            Packet(PacketType.ERROR, b"\x02\x05\x00\x00\x00oops").encode(),
            Packet(PacketType.DEVICE_INFO, bytes(192)).encode(),
            Packet(0x42, b"future packet").encode(),
            frame(b"payload"),
        )
        transport.feed_eof()

        stats = await FrameForwarder(codec, sink).run()

        assert stats.packets_discarded == 3
        assert stats.frames_forwarded == 1
        assert await sink.read() == b"payload"

    @pytest.mark.asyncio
    async def test_file_sink_receives_stream(self, transport, codec, tmp_path):
        """Test forwarding into a file."""
        await transport.open()
        transport.add_responses(frame(b"\x00\x00\x00\x01"), frame(b"idr"), ACK)
        transport.feed_eof()
        path = tmp_path / "output.h264"

        stats = await FrameForwarder(codec, FileFrameSink(path)).run()

        assert stats.ok
        assert path.read_bytes() == b"\x00\x00\x00\x01idr"

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_limit(self, transport, codec, sink):
        """Test consecutive timeouts beyond the limit end the loop with an error."""
        await transport.open()

        forwarder = FrameForwarder(codec, sink, ForwarderPolicy(max_transient_errors=2))
        stats = await forwarder.run()

        assert stats.transient_errors == 3
        assert stats.stop_reason is StopReason.ERROR
        assert isinstance(stats.error, TimeoutError)
        assert not stats.ok
        assert sink.closed

    @pytest.mark.asyncio
    async def test_zero_tolerance_stops_on_first_timeout(self, transport, codec, sink):
        """Test max_transient_errors=0 makes the first timeout fatal."""
        await transport.open()

        stats = await FrameForwarder(
            codec, sink, ForwarderPolicy(max_transient_errors=0)
        ).run()

        assert stats.transient_errors == 1
        assert stats.stop_reason is StopReason.ERROR

    @pytest.mark.asyncio
    async def test_timeout_counter_resets_after_packet(self, sink):
        """Test the limit applies to consecutive timeouts only."""
        transport = FlakyTransport([2, 2, 2])
        codec = PacketCodec(transport)
        await transport.open()
        transport.add_responses(frame(b"frame-1"), frame(b"frame-2"), frame(b"frame-3"))
        transport.feed_eof()

        stats = await FrameForwarder(
            codec, sink, ForwarderPolicy(max_transient_errors=2, retry_delay=0.001)
        ).run()

        assert stats.frames_forwarded == 3
        assert stats.transient_errors == 6
        assert stats.stop_reason is StopReason.EOF

    @pytest.mark.asyncio
    async def test_unlimited_retries(self, sink):
        """Test max_transient_errors=None keeps retrying."""
        transport = FlakyTransport([10])
        codec = PacketCodec(transport)
        await transport.open()
        transport.add_response(frame(b"late"))
        transport.feed_eof()

        stats = await FrameForwarder(
            codec, sink, ForwarderPolicy(max_transient_errors=None)
        ).run()

        assert stats.transient_errors == 10
        assert stats.frames_forwarded == 1

    @pytest.mark.asyncio
    async def test_truncated_packet_is_fatal(self, transport, codec, sink):
        """Test EOF inside a payload is an error, not a normal end."""
        await transport.open()
        transport.add_response(bytes([0x02, 0x64, 0x00, 0x00, 0x00]) + b"x" * 10)
        transport.feed_eof()

        stats = await FrameForwarder(codec, sink).run()

        assert stats.stop_reason is StopReason.ERROR
        assert isinstance(stats.error, TransportError)
        assert stats.frames_forwarded == 0
        assert sink.closed
        assert sink.buffered == 0

    @pytest.mark.asyncio
    async def test_oversized_packet_is_fatal(self, transport, sink):
        """Test a declared length over the limit ends the loop."""
        codec = PacketCodec(transport, max_payload_size=8)
        await transport.open()
        transport.add_response(frame(b"x" * 9))

        stats = await FrameForwarder(codec, sink).run()

        assert stats.stop_reason is StopReason.ERROR
        assert isinstance(stats.error, ProtocolError)

    @pytest.mark.asyncio
    async def test_closed_sink_is_fatal(self, transport, codec, sink):
        """Test a sink that refuses writes stops the loop."""
        await transport.open()
        transport.add_responses(frame(b"one"), frame(b"two"))
        await sink.close()

        stats = await FrameForwarder(codec, sink).run()

        assert stats.stop_reason is StopReason.ERROR
        assert isinstance(stats.error, SinkClosedError)
        assert stats.frames_forwarded == 0

    @pytest.mark.asyncio
    async def test_sink_left_open_when_configured(self, transport, codec, sink):
        """Test close_sink_on_exit=False leaves the sink usable."""
        await transport.open()
        transport.feed_eof()

        await FrameForwarder(codec, sink, ForwarderPolicy(close_sink_on_exit=False)).run()

        assert not sink.closed

    @pytest.mark.asyncio
    async def test_stop_interrupts_blocked_read(self, sink):
        """Test stop() ends a loop waiting for data."""
        transport = MockTransport(block_when_empty=True)
        codec = PacketCodec(transport)
        await transport.open()
        transport.add_response(frame(b"first"))

        forwarder = FrameForwarder(codec, sink)
        forwarder.start()
        await asyncio.sleep(0.01)
        assert forwarder.is_running

        stats = await forwarder.stop()

        assert stats.stop_reason is StopReason.STOPPED
        assert stats.frames_forwarded == 1
        assert forwarder.state is ForwarderState.STOPPED
        assert sink.closed
        assert await sink.read() == b"first"

    @pytest.mark.asyncio
    async def test_stop_from_other_task_returns_run_result(self, sink):
        """Test run() returns normally when another task stops it."""
        transport = MockTransport(block_when_empty=True)
        codec = PacketCodec(transport)
        await transport.open()
        forwarder = FrameForwarder(codec, sink)

        runner = asyncio.create_task(forwarder.run())
        await asyncio.sleep(0)
        await forwarder.stop()

        stats = await runner
        assert stats.stop_reason is StopReason.STOPPED

    @pytest.mark.asyncio
    async def test_stop_before_start(self, codec, sink):
        """Test stopping an idle forwarder."""
        forwarder = FrameForwarder(codec, sink)

        stats = await forwarder.stop()

        assert stats.stop_reason is StopReason.STOPPED
        assert forwarder.state is ForwarderState.STOPPED
        assert await forwarder.wait() == stats

    @pytest.mark.asyncio
    async def test_stop_twice(self, transport, codec, sink):
        """Test stop() after the loop ended returns the same stats."""
        await transport.open()
        transport.feed_eof()
        forwarder = FrameForwarder(codec, sink)
        forwarder.start()

        first = await forwarder.wait()
        second = await forwarder.stop()

        assert first == second
        assert second.stop_reason is StopReason.EOF

    @pytest.mark.asyncio
    async def test_stop_immediately_after_start(self, sink):
        """Test a stop before the task ever ran still closes the sink."""
        transport = MockTransport(block_when_empty=True)
        codec = PacketCodec(transport)
        await transport.open()
        forwarder = FrameForwarder(codec, sink)

        forwarder.start()
        stats = await forwarder.stop()

        assert stats.stop_reason is StopReason.STOPPED
        assert sink.closed

    @pytest.mark.asyncio
    async def test_transport_close_ends_loop(self, sink):
        """Test closing the connection wakes the loop as end of stream."""
        transport = MockTransport(block_when_empty=True)
        codec = PacketCodec(transport)
        await transport.open()
        forwarder = FrameForwarder(codec, sink)
        forwarder.start()
        await asyncio.sleep(0)

        await transport.close()
        stats = await forwarder.wait()

        assert stats.stop_reason is StopReason.EOF

    @pytest.mark.asyncio
    async def test_external_cancel(self, sink):
        """Test cancelling the task from outside is reported as CANCELLED."""
        transport = MockTransport(block_when_empty=True)
        codec = PacketCodec(transport)
        await transport.open()
        forwarder = FrameForwarder(codec, sink)
        task = forwarder.start()
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert forwarder.stats.stop_reason is StopReason.CANCELLED
        assert forwarder.state is ForwarderState.STOPPED
        assert sink.closed

    @pytest.mark.asyncio
    async def test_start_twice(self, transport, codec, sink):
        """Test a forwarder runs at most once."""
        await transport.open()
        transport.feed_eof()
        forwarder = FrameForwarder(codec, sink)
        forwarder.start()

        with pytest.raises(RuntimeError):
            forwarder.start()
        await forwarder.wait()

    @pytest.mark.asyncio
    async def test_backpressure_from_slow_reader(self, transport, codec):
        """Test a full stream sink pauses the loop until the reader catches up."""
        sink = StreamFrameSink(max_buffer_size=100)
        await transport.open()
        transport.add_responses(*(frame(bytes([i]) * 80) for i in range(3)))
        transport.feed_eof()

        forwarder = FrameForwarder(codec, sink)
        forwarder.start()
        for _ in range(10):
            await asyncio.sleep(0)

        assert forwarder.stats.frames_forwarded == 1
        assert forwarder.is_running

        received = b"".join([chunk async for chunk in sink])
        stats = await forwarder.wait()

        assert received == b"\x00" * 80 + b"\x01" * 80 + b"\x02" * 80
        assert stats.frames_forwarded == 3
        assert stats.stop_reason is StopReason.EOF

    @pytest.mark.asyncio
    async def test_only_reader(self, transport, codec, sink):
        """Test the loop never issues overlapping reads."""
        await transport.open()
        transport.add_responses(*(frame(b"x" * n) for n in (1, 2, 3)))
        transport.feed_eof()

        await FrameForwarder(codec, sink).run()

        assert transport.max_concurrent_reads == 1
