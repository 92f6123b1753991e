"""
Screen capture server connector.

This module provides the main client interface for talking to a screen
capture server over its binary command/response protocol.

The connector implements a small state machine:
    DISCONNECTED -> connect() -> CONNECTED
    CONNECTED -> start_capture() -> CAPTURE_ACTIVE
    CAPTURE_ACTIVE -> stop_capture() -> CONNECTED
    any -> close() -> CLOSED (terminal)

Capture state is advisory: the server does not acknowledge start/stop.

Only one task may read the connection at a time. query_device_info() reads
on the caller's task, so it must run before start_forwarding() hands the
read side to the frame forwarder; afterwards it raises ConnectionError.

Example:
    >>> from screenlink import ScreenConnector, StreamFrameSink
    >>>
    >>> async def main():
    ...     sink = StreamFrameSink()
    ...     async with ScreenConnector(sink) as connector:
    ...         await connector.connect("192.168.1.20", 12345)
    ...         info = await connector.query_device_info()
    ...         await connector.start_capture()
    ...         connector.start_forwarding()
    ...         async for chunk in sink:
    ...             process(chunk)
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable

from screenlink.exceptions import ConnectionError, TransportError, UnexpectedPacketError
from screenlink.forwarder import FrameForwarder
from screenlink.parsers.device_info_parser import clean_string, decode_device_info
from screenlink.protocol.codec import PacketCodec
from screenlink.protocol.constants import Opcode, PacketType, ProtocolConstants
from screenlink.sinks.stream import StreamFrameSink
from screenlink.transport.tcp import TcpTransport

if TYPE_CHECKING:
    from screenlink.forwarder import ForwarderPolicy
    from screenlink.models.records import DeviceInfo
    from screenlink.sinks.abc import FrameSink
    from screenlink.transport.abc import AbstractTransport

# Module logger
logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, int], "AbstractTransport"]


class ConnectorState(Enum):
    """Screen connector states."""

    DISCONNECTED = auto()
    """Created, connect() not called yet."""

    CONNECTED = auto()
    """Connection open, capture not started."""

    CAPTURE_ACTIVE = auto()
    """Start capture has been sent."""

    CLOSED = auto()
    """Closed; a new connector is needed to reconnect."""


class ScreenConnector:
    """
    Client for a screen capture server.

    The connector owns the connection and the frame sink for its whole
    lifetime and releases both on close().

    Attributes:
        state: Current connector state.
        sink: Destination for forwarded frames.
        transport: The underlying transport (None before connect()).

    Example:
        >>> connector = ScreenConnector(FileFrameSink("output.h264"))
        >>> await connector.connect("192.168.1.20")
        >>> print(await connector.query_device_info())
        >>> await connector.start_capture()
        >>> stats = await connector.start_forwarding().wait()
        >>> await connector.close()
    """

    def __init__(
        self,
        sink: FrameSink | None = None,
        *,
        response_timeout: float | None = ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT,
        connect_timeout: float | None = ProtocolConstants.DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float | None = ProtocolConstants.DEFAULT_READ_TIMEOUT,
        write_timeout: float | None = ProtocolConstants.DEFAULT_WRITE_TIMEOUT,
        max_payload_size: int = ProtocolConstants.MAX_PAYLOAD_SIZE,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """
        Initialize the connector.

        Args:
            sink: Frame destination. Defaults to an in-memory StreamFrameSink.
            response_timeout: Deadline for query replies in seconds.
            connect_timeout: Dial timeout for the default TCP transport.
            read_timeout: Default read timeout for the default TCP transport.
            write_timeout: Timeout for command writes.
            max_payload_size: Largest packet payload accepted.
            transport_factory: Callable (host, port) -> transport, replacing
                the default TcpTransport.
        """
        self._sink = sink if sink is not None else StreamFrameSink()
        self._response_timeout = response_timeout
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._max_payload_size = max_payload_size
        self._transport_factory = transport_factory or self._tcp_transport
        self._state = ConnectorState.DISCONNECTED
        self._transport: AbstractTransport | None = None
        self._codec: PacketCodec | None = None
        self._forwarder: FrameForwarder | None = None

    @property
    def state(self) -> ConnectorState:
        """Get the current connector state."""
        return self._state

    @property
    def sink(self) -> FrameSink:
        """Get the frame sink."""
        return self._sink

    @property
    def transport(self) -> AbstractTransport | None:
        """Get the underlying transport."""
        return self._transport

    @property
    def forwarder(self) -> FrameForwarder | None:
        """Get the frame forwarder, once started."""
        return self._forwarder

    @property
    def is_connected(self) -> bool:
        """Check if the connection is open."""
        return self._state in (ConnectorState.CONNECTED, ConnectorState.CAPTURE_ACTIVE)

    @property
    def is_capturing(self) -> bool:
        """Check if start_capture() has been sent without a matching stop."""
        return self._state == ConnectorState.CAPTURE_ACTIVE

    async def connect(self, host: str, port: int = ProtocolConstants.DEFAULT_PORT) -> None:
        """
        Connect to a capture server.

        Call at most once per connector.

        Args:
            host: Server host name or address.
            port: Server port.

        Raises:
            ConnectionError: If the dial fails or the connector is not in
                DISCONNECTED state.
        """
        if self._state != ConnectorState.DISCONNECTED:
            raise ConnectionError(
                f"Cannot connect: connector is in {self._state.name} state"
            )

        transport = self._transport_factory(host, port)
        logger.info("Connecting to %s", transport.address)

        try:
            await transport.open()
        except TransportError as e:
            raise ConnectionError(f"Failed to open {transport.address}: {e}") from e

        self._transport = transport
        self._codec = PacketCodec(transport, self._max_payload_size)
        self._state = ConnectorState.CONNECTED
        logger.info("Connected to %s", transport.address)

    async def query_device_info(self, timeout: float | None = None) -> DeviceInfo:
        """
        Ask the server for the device info record.

        Sends QUERY_DEVICE_INFO and reads exactly one packet. The reply must
        be a DEVICE_INFO packet; frames or anything else arriving first are
        not skipped.

        Args:
            timeout: Reply deadline override in seconds.

        Returns:
            Decoded DeviceInfo.

        Raises:
            ConnectionError: If not connected or the forwarder owns the reads.
            UnexpectedPacketError: If the reply has another packet type.
            MalformedRecordError: If the record is too short.
            TransportError: If the exchange fails.
        """
        codec = self._ensure_reader()
        effective_timeout = timeout if timeout is not None else self._response_timeout

        await codec.send_command(Opcode.QUERY_DEVICE_INFO, timeout=self._write_timeout)
        packet = await codec.recv_packet(effective_timeout)

        if packet.packet_type != PacketType.DEVICE_INFO:
            message = None
            if packet.is_error and packet.payload:
                message = f"Server error: {clean_string(packet.payload)}"
            logger.error("Device info query answered with %r", packet)
            raise UnexpectedPacketError(packet.packet_type, message)

        info = decode_device_info(packet.payload)
        logger.info("Device info: %s", info)
        return info

    async def start_capture(self) -> None:
        """
        Ask the server to start streaming screen frames.

        No acknowledgment is awaited.
        """
        await self._send(Opcode.START_SCREEN_CAPTURE)
        self._state = ConnectorState.CAPTURE_ACTIVE
        logger.info("Screen capture started")

    async def stop_capture(self) -> None:
        """
        Ask the server to stop streaming screen frames.

        No acknowledgment is awaited.
        """
        await self._send(Opcode.STOP_SCREEN_CAPTURE)
        self._state = ConnectorState.CONNECTED
        logger.info("Screen capture stopped")

    async def request_frame(self) -> None:
        """Ask the server for a single screen frame."""
        await self._send(Opcode.GET_SCREEN_FRAME)

    async def exit(self) -> None:
        """Ask the server to end the session."""
        await self._send(Opcode.EXIT)
        logger.info("Exit requested")

    def start_forwarding(self, policy: ForwarderPolicy | None = None) -> FrameForwarder:
        """
        Hand the read side of the connection to a background frame forwarder.

        After this call query_device_info() is no longer allowed.

        Args:
            policy: Forwarder error policy.

        Returns:
            The running FrameForwarder.

        Raises:
            ConnectionError: If not connected or forwarding already started.
        """
        codec = self._ensure_reader()
        if codec.is_reading:
            raise ConnectionError("Cannot start forwarding while a query is in progress")

        self._forwarder = FrameForwarder(codec, self._sink, policy)
        self._forwarder.start()
        return self._forwarder

    async def close(self) -> None:
        """
        Close the connection, stop forwarding and close the sink.

        Every step runs even if an earlier one fails. Safe to call multiple
        times; later calls do nothing.

        Raises:
            ConnectionError: If any step failed, after all steps ran.
        """
        if self._state == ConnectorState.CLOSED:
            return

        logger.debug("Closing connector (state: %s)", self._state.name)
        self._state = ConnectorState.CLOSED
        errors: list[tuple[str, Exception]] = []

        if self._transport is not None:
            try:
                await self._transport.close()
            except Exception as e:
                errors.append(("transport", e))

        if self._forwarder is not None:
            try:
                await self._forwarder.stop()
            except Exception as e:
                errors.append(("forwarder", e))

        try:
            await self._sink.close()
        except Exception as e:
            errors.append(("sink", e))

        for step, error in errors:
            logger.error("Failed to close %s: %s", step, error)

        if errors:
            step, first = errors[0]
            raise ConnectionError(f"Close failed at {step}: {first}") from first

        logger.info("Connector closed")

    async def _send(self, opcode: Opcode) -> None:
        codec = self._ensure_connected()
        await codec.send_command(opcode, timeout=self._write_timeout)

    def _ensure_connected(self) -> PacketCodec:
        """Verify connector is connected and return its codec."""
        if not self.is_connected or self._codec is None:
            raise ConnectionError(
                f"Not connected (state: {self._state.name})"
            )
        return self._codec

    def _ensure_reader(self) -> PacketCodec:
        """Verify the caller may read the connection."""
        codec = self._ensure_connected()
        if self._forwarder is not None:
            raise ConnectionError("Connection reads are owned by the frame forwarder")
        return codec

    def _tcp_transport(self, host: str, port: int) -> AbstractTransport:
        return TcpTransport(
            host,
            port,
            connect_timeout=self._connect_timeout,
            default_timeout=self._read_timeout,
            write_timeout=self._write_timeout,
        )

    async def __aenter__(self) -> ScreenConnector:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - close everything."""
        await self.close()

    def __repr__(self) -> str:
        address = self._transport.address if self._transport else "None"
        return f"ScreenConnector(state={self._state.name}, address={address})"
