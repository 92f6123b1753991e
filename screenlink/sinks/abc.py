"""
Abstract frame sink interface.

A frame sink is the destination for raw screen frame payloads. The
forwarder writes each payload whole, in receive order; what the bytes
mean (an H.264 elementary stream, typically) is the consumer's business.

Implementations:
- StreamFrameSink: bounded in-memory byte stream read by another task
- FileFrameSink: payloads appended to a file on disk
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType


class FrameSink(ABC):
    """
    Abstract base class for frame destinations.

    A sink has exactly one writer. Writes are atomic per payload: either
    the whole payload is accepted or the write raises.
    """

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether close() has been called."""
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Deliver one frame payload.

        May block to apply backpressure.

        Raises:
            SinkClosedError: If the sink has been closed.
            FrameSinkError: If the bytes cannot be delivered.
        """
        ...

    async def flush(self) -> None:
        """Push buffered bytes to their destination. No-op by default."""
        return None

    @abstractmethod
    async def close(self) -> None:
        """
        Close the sink.

        Further writes raise SinkClosedError. Safe to call multiple times.
        """
        ...

    async def __aenter__(self) -> FrameSink:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
