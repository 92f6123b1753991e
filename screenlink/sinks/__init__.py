"""
Frame sinks: destinations for forwarded screen frame bytes.

Available sinks:
- StreamFrameSink: bounded in-memory stream for a concurrent reader
- FileFrameSink: raw elementary stream written to disk

Example:
    >>> from screenlink.sinks import FileFrameSink
    >>> connector = ScreenConnector(FileFrameSink("output.h264"))
"""

from screenlink.sinks.abc import FrameSink
from screenlink.sinks.file import FileFrameSink
from screenlink.sinks.stream import StreamFrameSink

__all__ = [
    "FrameSink",
    "FileFrameSink",
    "StreamFrameSink",
]
