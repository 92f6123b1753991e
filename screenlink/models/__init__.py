"""
Data models for screen capture protocol records.
"""

from screenlink.models.records import DeviceInfo

__all__ = [
    "DeviceInfo",
]
