"""
Frame forwarding loop.

The forwarder owns the read side of the connection once streaming starts.
It receives packets one at a time, drops everything that is not a screen
frame, and writes each frame payload whole into the frame sink, in the
order received.

State machine:
    IDLE -> start()/run() -> RUNNING
    RUNNING -> end of stream / fatal error / stop() -> DRAINING
    DRAINING -> sink flushed (and closed) -> STOPPED

Read errors are classified rather than retried blindly:
- TimeoutError waiting for a header is transient (nothing was consumed, the
  stream is still in sync) and is retried within ForwarderPolicy limits
- ConnectionClosedError ends the loop normally
- any other transport or protocol error, and any sink error, is fatal

The outcome is reported through ForwarderStats, returned by run(), wait()
and stop().

Example:
    >>> forwarder = connector.start_forwarding(ForwarderPolicy(read_timeout=2.0))
    >>> stats = await forwarder.wait()
    >>> print(stats.frames_forwarded, stats.stop_reason)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from screenlink.exceptions import (
    ConnectionClosedError,
    FrameSinkError,
    ProtocolError,
    TimeoutError,
    TransportError,
)

if TYPE_CHECKING:
    from screenlink.protocol.codec import PacketCodec
    from screenlink.sinks.abc import FrameSink

logger = logging.getLogger(__name__)


class ForwarderState(Enum):
    """Frame forwarder lifecycle states."""

    IDLE = auto()
    """Created, not started."""

    RUNNING = auto()
    """Receiving packets and writing frames."""

    DRAINING = auto()
    """Loop finished; flushing and closing the sink."""

    STOPPED = auto()
    """Terminal. Stats are final."""


class StopReason(Enum):
    """Why the forwarding loop ended."""

    EOF = auto()
    """The connection reached end of stream."""

    STOPPED = auto()
    """stop() was called."""

    ERROR = auto()
    """A fatal error, or too many consecutive transient errors."""

    CANCELLED = auto()
    """The task running the loop was cancelled from outside."""


class ForwarderPolicy(BaseModel):
    """
    Error and timeout policy for the forwarding loop.

    Example:
        >>> ForwarderPolicy(read_timeout=2.0, max_transient_errors=5)
        >>> ForwarderPolicy(max_transient_errors=None)  # retry timeouts forever
    """

    model_config = ConfigDict(frozen=True)

    read_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to wait for each packet; None uses the transport default",
    )
    max_transient_errors: int | None = Field(
        default=3,
        ge=0,
        description="Consecutive read timeouts tolerated; None retries forever, 0 stops on the first",
    )
    retry_delay: float = Field(
        default=0.0,
        ge=0,
        description="Seconds to sleep after a transient error",
    )
    close_sink_on_exit: bool = Field(
        default=True,
        description="Close the sink when the loop ends so readers see end of stream",
    )


@dataclass
class ForwarderStats:
    """
    Counters and outcome of a forwarding run.

    Attributes:
        frames_forwarded: Frame packets written to the sink.
        bytes_forwarded: Payload bytes written to the sink.
        packets_discarded: Non-frame packets dropped.
        transient_errors: Read timeouts seen, in total.
        stop_reason: Why the loop ended; None while running.
        error: The fatal error, if the loop ended on one.
    """

    frames_forwarded: int = 0
    bytes_forwarded: int = 0
    packets_discarded: int = 0
    transient_errors: int = 0
    stop_reason: StopReason | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        """Whether the loop ended without error."""
        return self.stop_reason in (StopReason.EOF, StopReason.STOPPED) and self.error is None


class FrameForwarder:
    """
    Background loop moving frame payloads from a connection to a sink.

    The forwarder must be the only reader of the connection while it runs.
    """

    def __init__(
        self,
        codec: PacketCodec,
        sink: FrameSink,
        policy: ForwarderPolicy | None = None,
    ) -> None:
        """
        Initialize the forwarder.

        Args:
            codec: Packet codec over the connection. Read ownership passes
                to the forwarder.
            sink: Destination for frame payloads.
            policy: Error policy (defaults to ForwarderPolicy()).
        """
        self._codec = codec
        self._sink = sink
        self._policy = policy or ForwarderPolicy()
        self._state = ForwarderState.IDLE
        self._stats = ForwarderStats()
        self._task: asyncio.Task[ForwarderStats] | None = None
        self._done = asyncio.Event()
        self._stop_requested = False

    @property
    def state(self) -> ForwarderState:
        return self._state

    @property
    def policy(self) -> ForwarderPolicy:
        return self._policy

    @property
    def sink(self) -> FrameSink:
        return self._sink

    @property
    def stats(self) -> ForwarderStats:
        """Snapshot of the current counters."""
        return dataclasses.replace(self._stats)

    @property
    def is_running(self) -> bool:
        return self._state in (ForwarderState.RUNNING, ForwarderState.DRAINING)

    def start(self) -> asyncio.Task[ForwarderStats]:
        """
        Run the loop as a background task.

        Returns:
            The task; its result is the final ForwarderStats.

        Raises:
            RuntimeError: If the forwarder was already started.
        """
        self._claim()
        self._task = asyncio.create_task(self._run(), name="screenlink-forwarder")
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def run(self) -> ForwarderStats:
        """
        Run the loop in the calling task until it ends.

        Returns:
            Final ForwarderStats.

        Raises:
            RuntimeError: If the forwarder was already started.
        """
        self._claim()
        self._task = asyncio.current_task()
        return await self._run()

    async def wait(self) -> ForwarderStats:
        """Wait for the loop to end and return the final stats."""
        await self._done.wait()
        return self.stats

    async def stop(self) -> ForwarderStats:
        """
        Stop the loop and wait until the sink has been drained.

        Safe to call at any time and more than once.

        Returns:
            Final ForwarderStats.
        """
        if self._state is ForwarderState.STOPPED:
            return self.stats

        if self._state is ForwarderState.IDLE:
            self._stats.stop_reason = StopReason.STOPPED
            self._state = ForwarderState.STOPPED
            self._done.set()
            return self.stats

        self._stop_requested = True
        task = self._task
        if (
            self._state is ForwarderState.RUNNING
            and task is not None
            and not task.done()
            and task is not asyncio.current_task()
        ):
            logger.debug("Stopping frame forwarder")
            task.cancel()
        await self._done.wait()

        # A task cancelled before its first step skipped _drain
        if self._policy.close_sink_on_exit and not self._sink.closed:
            await self._sink.close()
        return self.stats

    def _claim(self) -> None:
        if self._state is not ForwarderState.IDLE:
            raise RuntimeError(f"Frame forwarder already started (state: {self._state.name})")
        self._state = ForwarderState.RUNNING

    async def _run(self) -> ForwarderStats:
        logger.info("Frame forwarding started")
        try:
            await self._forward_loop()
        except asyncio.CancelledError:
            if not self._stop_requested:
                self._stats.stop_reason = StopReason.CANCELLED
                raise
            self._stats.stop_reason = StopReason.STOPPED
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
        finally:
            await self._drain()

        return self.stats

    async def _forward_loop(self) -> None:
        consecutive_timeouts = 0

        while True:
            try:
                packet = await self._codec.recv_packet(self._policy.read_timeout)
            except ConnectionClosedError as e:
                logger.info("Connection closed, frame forwarding ends: %s", e)
                self._stats.stop_reason = StopReason.EOF
                return
            except TimeoutError as e:
                consecutive_timeouts += 1
                self._stats.transient_errors += 1
                limit = self._policy.max_transient_errors
                if limit is not None and consecutive_timeouts > limit:
                    logger.error(
                        "Giving up after %d consecutive read timeouts: %s",
                        consecutive_timeouts,
                        e,
                    )
                    self._fail(e)
                    return
                logger.warning("Frame read timed out (%d in a row): %s", consecutive_timeouts, e)
                if self._policy.retry_delay:
                    await asyncio.sleep(self._policy.retry_delay)
                continue
            except (TransportError, ProtocolError) as e:
                logger.error("Frame read failed: %s", e)
                self._fail(e)
                return

            consecutive_timeouts = 0

            if not packet.is_frame:
                self._stats.packets_discarded += 1
                logger.debug("Discarding %r", packet)
                continue

            try:
                await self._sink.write(packet.payload)
            except FrameSinkError as e:
                logger.error("Frame sink rejected %d bytes: %s", len(packet.payload), e)
                self._fail(e)
                return

            self._stats.frames_forwarded += 1
            self._stats.bytes_forwarded += len(packet.payload)
            logger.debug("Forwarded %d bytes to sink", len(packet.payload))

    def _fail(self, error: BaseException) -> None:
        self._stats.stop_reason = StopReason.ERROR
        self._stats.error = error

    async def _drain(self) -> None:
        self._state = ForwarderState.DRAINING
        try:
            await self._sink.flush()
            if self._policy.close_sink_on_exit:
                await self._sink.close()
        except FrameSinkError as e:
            logger.error("Failed to drain frame sink: %s", e)
            if self._stats.error is None:
                self._stats.error = e
        finally:
            self._state = ForwarderState.STOPPED
            self._done.set()
            logger.info(
                "Frame forwarding stopped (%s): %d frames, %d bytes, %d packets discarded",
                self._stats.stop_reason.name if self._stats.stop_reason else "unknown",
                self._stats.frames_forwarded,
                self._stats.bytes_forwarded,
                self._stats.packets_discarded,
            )

    def _on_task_done(self, task: asyncio.Task[ForwarderStats]) -> None:
        # A task cancelled before its first step never reaches _drain
        if not self._done.is_set():
            if self._stats.stop_reason is None:
                self._stats.stop_reason = (
                    StopReason.STOPPED if self._stop_requested else StopReason.CANCELLED
                )
            self._state = ForwarderState.STOPPED
            self._done.set()

    def __repr__(self) -> str:
        return (
            f"FrameForwarder(state={self._state.name}, "
            f"frames={self._stats.frames_forwarded}, bytes={self._stats.bytes_forwarded})"
        )
