"""
Device info record parser.

The DEVICE_INFO packet payload is a fixed 192-byte layout:

    Offset  Size  Field
    0       32    model            (zero-terminated string)
    32      32    brand            (zero-terminated string)
    64      32    manufacturer     (zero-terminated string)
    96      32    market name      (zero-terminated string)
    128     32    OS version       (zero-terminated string)
    160     4     API version      (int32 LE)
    164     4     DPI              (int32 LE)
    168     4     screen width     (int32 LE)
    172     4     screen height    (int32 LE)
    176     16    CPU architecture (zero-terminated string)

String fields are cut at the first zero byte of the raw field, before any
text decoding, so multi-byte text is never split by codepoint.
"""

from __future__ import annotations

import logging
import struct
from typing import Final

from screenlink.exceptions import MalformedRecordError
from screenlink.models.records import DeviceInfo
from screenlink.protocol.constants import ProtocolConstants

logger = logging.getLogger(__name__)

STRING_ENCODING: Final[str] = "utf-8"


def clean_string(raw: bytes | bytearray | memoryview) -> str:
    """
    Convert a fixed-width string field to text.

    Truncates at the first zero byte (the whole field if there is none),
    decodes and strips surrounding whitespace. Never fails: undecodable
    bytes become U+FFFD.

    Args:
        raw: Raw field bytes.

    Returns:
        Cleaned string, possibly empty.
    """
    raw = bytes(raw)
    end = raw.find(0)
    if end == -1:
        end = len(raw)
    return raw[:end].decode(STRING_ENCODING, errors="replace").strip()


class DeviceInfoParser:
    """
    Parser for device info records.

    Example:
        >>> parser = DeviceInfoParser()
        >>> info = parser.parse(packet.payload)
        >>> info.api_version
        33
    """

    # Byte offsets and widths of the string fields
    OFFSET_MODEL = 0
    OFFSET_BRAND = 32
    OFFSET_MANUFACTURER = 64
    OFFSET_MARKET_NAME = 96
    OFFSET_OS_VERSION = 128
    STRING_FIELD_SIZE = 32

    # Four consecutive int32 LE: api version, dpi, width, height
    OFFSET_INTEGERS = 160
    INTEGERS: Final[struct.Struct] = struct.Struct("<4i")

    OFFSET_CPU_ARCH = 176
    CPU_ARCH_SIZE = 16

    RECORD_SIZE = ProtocolConstants.DEVICE_INFO_SIZE

    def parse(self, data: bytes | bytearray | memoryview) -> DeviceInfo:
        """
        Parse a device info record.

        Args:
            data: Record bytes. Anything past the first 192 bytes is ignored.

        Returns:
            Parsed DeviceInfo.

        Raises:
            MalformedRecordError: If fewer than 192 bytes are supplied.
        """
        if len(data) < self.RECORD_SIZE:
            raise MalformedRecordError(
                f"Device info record too short: {len(data)} bytes, need {self.RECORD_SIZE}",
                record_type="DeviceInfo",
                expected_size=self.RECORD_SIZE,
                actual_size=len(data),
            )
        if len(data) > self.RECORD_SIZE:
            logger.debug("Ignoring %d trailing bytes in device info", len(data) - self.RECORD_SIZE)

        view = memoryview(data)[: self.RECORD_SIZE]
        api_version, dpi, width, height = self.INTEGERS.unpack_from(view, self.OFFSET_INTEGERS)

        return DeviceInfo(
            model=self._string(view, self.OFFSET_MODEL),
            brand=self._string(view, self.OFFSET_BRAND),
            manufacturer=self._string(view, self.OFFSET_MANUFACTURER),
            market_name=self._string(view, self.OFFSET_MARKET_NAME),
            os_version=self._string(view, self.OFFSET_OS_VERSION),
            api_version=api_version,
            dpi=dpi,
            screen_width=width,
            screen_height=height,
            cpu_arch=self._string(view, self.OFFSET_CPU_ARCH, self.CPU_ARCH_SIZE),
        )

    def encode(self, info: DeviceInfo) -> bytes:
        """
        Encode a DeviceInfo into the 192-byte wire layout.

        Strings are zero-padded to their field width.

        Raises:
            ValueError: If an encoded string does not fit its field.
        """
        record = bytearray(self.RECORD_SIZE)
        strings = (
            (self.OFFSET_MODEL, self.STRING_FIELD_SIZE, info.model),
            (self.OFFSET_BRAND, self.STRING_FIELD_SIZE, info.brand),
            (self.OFFSET_MANUFACTURER, self.STRING_FIELD_SIZE, info.manufacturer),
            (self.OFFSET_MARKET_NAME, self.STRING_FIELD_SIZE, info.market_name),
            (self.OFFSET_OS_VERSION, self.STRING_FIELD_SIZE, info.os_version),
            (self.OFFSET_CPU_ARCH, self.CPU_ARCH_SIZE, info.cpu_arch),
        )
        for offset, size, value in strings:
            encoded = value.encode(STRING_ENCODING)
            if len(encoded) > size:
                raise ValueError(f"{value!r} does not fit in a {size}-byte field")
            record[offset:offset + len(encoded)] = encoded

        self.INTEGERS.pack_into(
            record,
            self.OFFSET_INTEGERS,
            info.api_version,
            info.dpi,
            info.screen_width,
            info.screen_height,
        )
        return bytes(record)

    def _string(self, view: memoryview, offset: int, size: int = STRING_FIELD_SIZE) -> str:
        return clean_string(view[offset:offset + size])


DEFAULT_DEVICE_INFO_PARSER = DeviceInfoParser()


def decode_device_info(data: bytes | bytearray | memoryview) -> DeviceInfo:
    """
    Parse a device info record using the default parser.

    Args:
        data: At least 192 bytes of record data.

    Returns:
        Parsed DeviceInfo.
    """
    return DEFAULT_DEVICE_INFO_PARSER.parse(data)


def encode_device_info(info: DeviceInfo) -> bytes:
    """
    Encode a DeviceInfo using the default parser.

    Args:
        info: Record to encode.

    Returns:
        192 bytes in wire layout.
    """
    return DEFAULT_DEVICE_INFO_PARSER.encode(info)
