"""Tests for data models."""

import pytest
from pydantic import ValidationError

from screenlink.models.records import DeviceInfo


class TestDeviceInfo:
    """Tests for DeviceInfo model."""

    @pytest.fixture
    def info(self):
        """Create a typical device record."""
        return DeviceInfo(
            model="Pixel 6",
            brand="google",
            manufacturer="Google",
            market_name="",
            os_version="13",
            api_version=33,
            dpi=420,
            screen_width=1080,
            screen_height=2400,
            cpu_arch="arm64",
        )

    def test_resolution(self, info):
        """Test resolution is (width, height)."""
        assert info.resolution == (1080, 2400)

    def test_display_name_falls_back_to_brand_and_model(self, info):
        """Test display name without a market name."""
        assert info.display_name == "google Pixel 6"

    def test_display_name_prefers_market_name(self, info):
        """Test market name wins when present."""
        named = info.model_copy(update={"market_name": "Galaxy S21"})
        assert named.display_name == "Galaxy S21"

    def test_str(self, info):
        """Test human readable summary."""
        text = str(info)
        assert "API 33" in text
        assert "1080x2400" in text
        assert "arm64" in text

    def test_frozen(self, info):
        """Test records are immutable."""
        with pytest.raises(ValidationError):
            info.model = "Pixel 7"

    def test_equality(self, info):
        """Test value equality."""
        assert info == info.model_copy()
        assert info != info.model_copy(update={"dpi": 440})

    def test_int32_range(self):
        """Test integer fields are limited to int32."""
        with pytest.raises(ValidationError):
            DeviceInfo(api_version=2**31)

    def test_cpu_arch_width(self):
        """Test cpu_arch cannot exceed its 16-byte field."""
        with pytest.raises(ValidationError):
            DeviceInfo(cpu_arch="x" * 17)
