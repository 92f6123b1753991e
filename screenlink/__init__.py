"""
screenlink - Python client for remote screen capture servers.

This library speaks the capture server's length-prefixed binary protocol
over TCP: it queries device information, starts and stops capture, and
forwards the raw video frame stream into a file or an in-memory stream
for another consumer.

Example:
    >>> from screenlink import ScreenConnector, StreamFrameSink
    >>>
    >>> async def main():
    ...     sink = StreamFrameSink()
    ...     async with ScreenConnector(sink) as connector:
    ...         await connector.connect("192.168.1.20", 12345)
    ...         print(await connector.query_device_info())
    ...         await connector.start_capture()
    ...         connector.start_forwarding()
    ...         async for chunk in sink:
    ...             handle_h264(chunk)
"""

from screenlink.client import ConnectorState, ScreenConnector
from screenlink.exceptions import (
    ConnectionClosedError,
    ConnectionError,
    FrameSinkError,
    MalformedRecordError,
    ProtocolError,
    ScreenLinkError,
    SinkClosedError,
    TimeoutError,
    TransportError,
    UnexpectedPacketError,
)
from screenlink.forwarder import (
    ForwarderPolicy,
    ForwarderState,
    ForwarderStats,
    FrameForwarder,
    StopReason,
)
from screenlink.models.records import DeviceInfo
from screenlink.parsers.device_info_parser import decode_device_info
from screenlink.protocol.constants import Opcode, PacketType
from screenlink.sinks import FileFrameSink, FrameSink, StreamFrameSink
from screenlink.transport import AbstractTransport, TcpTransport

__version__ = "0.1.0"
__all__ = [
    # Client
    "ScreenConnector",
    "ConnectorState",
    # Forwarding
    "FrameForwarder",
    "ForwarderPolicy",
    "ForwarderState",
    "ForwarderStats",
    "StopReason",
    # Sinks
    "FrameSink",
    "FileFrameSink",
    "StreamFrameSink",
    # Models
    "DeviceInfo",
    "decode_device_info",
    # Protocol
    "Opcode",
    "PacketType",
    # Exceptions
    "ScreenLinkError",
    "ConnectionError",
    "TransportError",
    "TimeoutError",
    "ConnectionClosedError",
    "ProtocolError",
    "UnexpectedPacketError",
    "MalformedRecordError",
    "FrameSinkError",
    "SinkClosedError",
    # Transport
    "AbstractTransport",
    "TcpTransport",
    # Version
    "__version__",
]
