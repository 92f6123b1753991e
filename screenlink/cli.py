"""Command line tool: save a device's screen stream to a file.

Usage:
    screenlink 192.168.20.156 --port 12345 --output output.h264
    screenlink 192.168.20.156 --duration 30 -v

Connects, prints the device info, starts capture and writes the raw frame
stream to the output file until the server closes the connection, the
duration elapses or Ctrl-C is pressed.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from screenlink.client import ScreenConnector
from screenlink.exceptions import ScreenLinkError, TransportError
from screenlink.forwarder import ForwarderPolicy, ForwarderStats
from screenlink.protocol.constants import ProtocolConstants
from screenlink.sinks.file import FileFrameSink

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screenlink",
        description="Save a screen capture stream to a raw video file",
    )
    parser.add_argument("host", help="Capture server host or address")
    parser.add_argument(
        "--port", type=int, default=ProtocolConstants.DEFAULT_PORT,
        help=f"Capture server port (default: {ProtocolConstants.DEFAULT_PORT})",
    )
    parser.add_argument(
        "-o", "--output", type=Path, default=Path(ProtocolConstants.DEFAULT_OUTPUT_FILE),
        help=f"Output file (default: {ProtocolConstants.DEFAULT_OUTPUT_FILE})",
    )
    parser.add_argument(
        "--append", action="store_true",
        help="Append to the output file instead of truncating it",
    )
    parser.add_argument(
        "--duration", type=float, default=None,
        help="Stop after this many seconds (default: until the stream ends)",
    )
    parser.add_argument(
        "--connect-timeout", type=float, default=ProtocolConstants.DEFAULT_CONNECT_TIMEOUT,
        help="Seconds allowed for connecting",
    )
    parser.add_argument(
        "--read-timeout", type=float, default=None,
        help="Seconds to wait for each packet while streaming (default: wait forever)",
    )
    parser.add_argument(
        "--max-transient-errors", type=int, default=3,
        help="Consecutive read timeouts tolerated before giving up",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    return parser


async def capture_to_file(
    host: str,
    port: int,
    output: Path,
    *,
    append: bool = False,
    duration: float | None = None,
    connect_timeout: float | None = ProtocolConstants.DEFAULT_CONNECT_TIMEOUT,
    policy: ForwarderPolicy | None = None,
) -> ForwarderStats:
    """
    Capture a screen stream into a file.

    Returns:
        Final forwarder stats.

    Raises:
        ScreenLinkError: If connecting or the device info query fails.
    """
    sink = FileFrameSink(output, append=append)
    async with ScreenConnector(sink, connect_timeout=connect_timeout) as connector:
        await connector.connect(host, port)

        info = await connector.query_device_info()
        print(f"Device: {info}")

        await connector.start_capture()
        forwarder = connector.start_forwarding(policy)
        try:
            if duration is None:
                await forwarder.wait()
            else:
                try:
                    await asyncio.wait_for(forwarder.wait(), duration)
                except asyncio.TimeoutError:
                    logger.info("Capture duration of %.1fs reached", duration)
        finally:
            if connector.is_capturing:
                try:
                    await connector.stop_capture()
                except TransportError as e:
                    logger.debug("Stop capture not delivered: %s", e)

        return await forwarder.stop()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not 0 < args.port <= 0xFFFF:
        print(f"error: invalid option: port must be 1-65535, got {args.port}", file=sys.stderr)
        return 2
    if args.duration is not None and args.duration <= 0:
        print(
            f"error: invalid option: duration must be positive, got {args.duration}",
            file=sys.stderr,
        )
        return 2

    try:
        policy = ForwarderPolicy(
            read_timeout=args.read_timeout,
            max_transient_errors=args.max_transient_errors,
        )
    except ValidationError as e:
        print(f"error: invalid option: {e}", file=sys.stderr)
        return 2

    try:
        stats = asyncio.run(
            capture_to_file(
                args.host,
                args.port,
                args.output,
                append=args.append,
                duration=args.duration,
                connect_timeout=args.connect_timeout,
                policy=policy,
            )
        )
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    except ScreenLinkError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(
        f"Saved {stats.frames_forwarded} frames ({stats.bytes_forwarded} bytes) "
        f"to {args.output}"
    )
    if stats.error is not None:
        print(f"error: frame forwarding failed: {stats.error}", file=sys.stderr)
        return 1
    return 0
