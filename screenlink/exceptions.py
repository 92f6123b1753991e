"""
Exception hierarchy for screenlink.

All exceptions inherit from ScreenLinkError, providing a clean hierarchy
for error handling. The layout follows these principles:

1. Connection errors (dial, close, illegal state) are distinct from
   mid-session transport errors
2. Protocol violations carry the offending packet type for debugging
3. Record decoding errors include the sizes that did not match
4. Frame sink errors are separate so the forwarder can tell a vanished
   consumer from a broken connection
"""

from __future__ import annotations


class ScreenLinkError(Exception):
    """
    Base exception for all screenlink errors.

    All library-specific exceptions inherit from this class, allowing
    callers to catch all screenlink errors with a single except clause.
    """

    pass


class ConnectionError(ScreenLinkError):  # noqa: A001 - intentionally shadows builtin
    """
    Connector connection error.

    Raised when:
    - The TCP connection cannot be established
    - One or more resources failed to close
    - An operation is attempted in a state that does not allow it
    """

    pass


class TransportError(ScreenLinkError):
    """
    Transport-level error.

    Raised for read/write failures in the middle of a session:
    - Connection reset
    - Short read (EOF before a packet was complete)
    - Writes on a transport that is not open
    """

    pass


class TimeoutError(TransportError):  # noqa: A001 - intentionally shadows builtin
    """
    I/O deadline expired.

    Raised when a read or write does not complete within the configured
    timeout. A timeout while waiting for a packet header leaves the stream
    in sync, so callers may retry.
    """

    def __init__(
        self,
        message: str = "Communication timeout",
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds

    def __str__(self) -> str:
        base = super().__str__()
        if self.timeout_seconds is not None:
            return f"{base} (after {self.timeout_seconds:.1f}s)"
        return base


class ConnectionClosedError(TransportError):
    """
    The connection reached end of stream.

    Raised when the peer closed the connection, or it was closed locally,
    while a read was waiting for data.
    """

    def __init__(
        self,
        message: str = "Connection closed",
        *,
        expected: int | None = None,
        received: int | None = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received

    def __str__(self) -> str:
        base = super().__str__()
        if self.expected is not None and self.received is not None:
            return f"{base} (expected {self.expected} bytes, got {self.received})"
        return base


class ProtocolError(ScreenLinkError):
    """
    Protocol-level error.

    Raised when the protocol is violated, such as:
    - Declared payload length above the configured limit
    - Two readers on the same connection at once
    """

    pass


class UnexpectedPacketError(ProtocolError):
    """
    A synchronous exchange received the wrong packet type.

    The packet_type attribute holds the tag that was actually observed.
    """

    def __init__(self, packet_type: int, message: str | None = None) -> None:
        self.packet_type = packet_type
        super().__init__(message or f"Unexpected packet type: {packet_type}")


class MalformedRecordError(ScreenLinkError):
    """
    Record decoding error.

    Raised when a fixed-layout record is shorter than its layout requires.
    """

    def __init__(
        self,
        message: str,
        *,
        record_type: str | None = None,
        expected_size: int | None = None,
        actual_size: int | None = None,
    ) -> None:
        super().__init__(message)
        self.record_type = record_type
        self.expected_size = expected_size
        self.actual_size = actual_size

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.record_type:
            parts.append(f"record_type={self.record_type}")
        if self.expected_size is not None:
            parts.append(f"expected={self.expected_size}")
        if self.actual_size is not None:
            parts.append(f"actual={self.actual_size}")
        return " ".join(parts)


class FrameSinkError(ScreenLinkError):
    """
    Frame sink error.

    Raised when frame bytes cannot be delivered to the sink, for example
    because the backing file cannot be written.
    """

    pass


class SinkClosedError(FrameSinkError):
    """Write attempted on a frame sink that has been closed."""

    pass
