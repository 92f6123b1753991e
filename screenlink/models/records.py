"""
Pydantic models for screen capture protocol records.

Records are immutable once decoded. Integer fields are validated against
the signed 32-bit range they occupy on the wire.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

Int32 = Annotated[int, Field(ge=-(2**31), le=2**31 - 1)]


class DeviceInfo(BaseModel):
    """
    Description of the device whose screen is being captured.

    Decoded from the fixed 192-byte DEVICE_INFO packet.

    Example:
        >>> info = decode_device_info(packet.payload)
        >>> info.model
        'Pixel 6'
        >>> info.resolution
        (1080, 2400)
    """

    model_config = ConfigDict(frozen=True)

    model: str = Field(default="", max_length=32, description="Device model")
    brand: str = Field(default="", max_length=32, description="Brand name")
    manufacturer: str = Field(default="", max_length=32, description="Manufacturer")
    market_name: str = Field(default="", max_length=32, description="Consumer-facing name")
    os_version: str = Field(default="", max_length=32, description="OS release string")
    api_version: Int32 = Field(default=0, description="OS API level")
    dpi: Int32 = Field(default=0, description="Screen density in dots per inch")
    screen_width: Int32 = Field(default=0, description="Screen width in pixels")
    screen_height: Int32 = Field(default=0, description="Screen height in pixels")
    cpu_arch: str = Field(default="", max_length=16, description="CPU architecture / ABI")

    @property
    def resolution(self) -> tuple[int, int]:
        """Screen size as (width, height)."""
        return self.screen_width, self.screen_height

    @property
    def display_name(self) -> str:
        """Market name if the device reports one, else brand and model."""
        if self.market_name:
            return self.market_name
        return " ".join(part for part in (self.brand, self.model) if part)

    def __str__(self) -> str:
        return (
            f"{self.display_name} (API {self.api_version}, "
            f"{self.screen_width}x{self.screen_height} @ {self.dpi}dpi, {self.cpu_arch})"
        )
