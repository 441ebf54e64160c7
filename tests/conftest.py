"""Pytest configuration and fixtures."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from ggoled.bitmap import Bitmap
from ggoled.exceptions import DeviceCommunicationError, DeviceNotFoundError


def hid_entry(path: bytes, product_id: int = 0x12E0, interface_number: int = 4) -> dict:
    """Build a hidapi enumerate() entry."""
    return {
        "product_id": product_id,
        "interface_number": interface_number,
        "path": path,
        "product_string": "Arctis Nova Pro Wireless",
        "usage_page": 0xFFC0,
        "usage": 1,
    }


def hid_handle(descriptor: list[int] | None = None) -> MagicMock:
    """Create a mock hid.device object with a report descriptor."""
    handle = MagicMock()
    handle.get_report_descriptor = MagicMock(return_value=descriptor or [0x06, 0xC0, 0xFF])
    handle.send_feature_report = MagicMock(return_value=1024)
    handle.write = MagicMock(return_value=64)
    handle.read = MagicMock(return_value=[])
    return handle


@pytest.fixture
def oled_entries() -> list[dict]:
    """Two interface-4 entries on separate paths."""
    return [hid_entry(b"/dev/hidraw1"), hid_entry(b"/dev/hidraw2")]


@pytest.fixture
def make_entry():
    """Factory for hidapi enumerate() entries."""
    return hid_entry


@pytest.fixture
def make_handle():
    """Factory for mock hid.device objects."""
    return hid_handle


@pytest.fixture
def mock_hid_device() -> MagicMock:
    """Create a mock hid.device object."""
    return hid_handle()


class FakeDevice:
    """Stand-in for Device that records draws and can be made to fail."""

    def __init__(self, width: int = 128, height: int = 64) -> None:
        self.width = width
        self.height = height
        self.draws: list[Bitmap] = []
        self.pending_events: list = []
        self.fail_draw = False
        self.fail_events = False
        self.present = True
        self.reconnect_calls = 0

    def draw(self, bitmap: Bitmap, x: int = 0, y: int = 0) -> None:
        if self.fail_draw:
            msg = "write failed"
            raise DeviceCommunicationError(msg)
        self.draws.append(bitmap.copy())

    def get_events(self) -> list:
        if self.fail_events:
            msg = "read failed"
            raise DeviceCommunicationError(msg)
        events, self.pending_events = self.pending_events, []
        return events

    def reconnect(self) -> None:
        self.reconnect_calls += 1
        if not self.present:
            raise DeviceNotFoundError
        self.fail_draw = False
        self.fail_events = False

    def close(self) -> None:
        pass

    def return_to_ui(self) -> None:
        pass


@pytest.fixture
def fake_device() -> FakeDevice:
    """Create a recording fake device."""
    return FakeDevice()
