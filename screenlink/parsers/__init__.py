"""
Record parsers for screen capture protocol payloads.

Example:
    >>> from screenlink.parsers import decode_device_info
    >>> info = decode_device_info(packet.payload)
    >>> print(info.model)
"""

from screenlink.parsers.device_info_parser import (
    DEFAULT_DEVICE_INFO_PARSER,
    DeviceInfoParser,
    clean_string,
    decode_device_info,
    encode_device_info,
)

__all__ = [
    "DEFAULT_DEVICE_INFO_PARSER",
    "DeviceInfoParser",
    "clean_string",
    "decode_device_info",
    "encode_device_info",
]
