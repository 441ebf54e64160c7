"""Tests for device module."""

from __future__ import annotations

import random
from unittest.mock import MagicMock, patch

import pytest

from ggoled.bitmap import Bitmap
from ggoled.constants import (
    CMD_BRIGHTNESS,
    CMD_DRAW,
    CMD_RETURN_TO_UI,
    COMMAND_REPORT_SIZE,
    DRAW_HEADER_SIZE,
    DRAW_REPORT_SIZE,
    REPORT_ID,
)
from ggoled.device import (
    Device,
    ReportChunk,
    describe_devices,
    encode_draw_report,
    get_device_name,
    parse_event,
    split_for_report,
)
from ggoled.exceptions import DeviceCommunicationError, DeviceNotFoundError
from ggoled.models import BatteryEvent, HeadsetConnectionEvent, VolumeEvent


def _decode_draw_report(report: bytes) -> tuple[int, int, Bitmap]:
    """Invert encode_draw_report: return (x, y, bitmap of the chunk)."""
    x, y, w, h = report[2:DRAW_HEADER_SIZE]
    stride = (y % 8 + h + 7) // 8 * 8
    bitmap = Bitmap(w, h)
    for cx in range(w):
        for cy in range(h):
            ri = cx * stride + cy
            if report[DRAW_HEADER_SIZE + ri // 8] & (1 << (ri % 8)):
                bitmap.set(cx, cy)
    return x, y, bitmap


class TestGetDeviceName:
    """Tests for get_device_name."""

    def test_known_device(self) -> None:
        """Should name supported base stations."""
        assert get_device_name(0x12E0) == "Arctis Nova Pro Wireless"

    def test_unknown_device(self) -> None:
        """Should fall back to the hex product id."""
        assert get_device_name(0x1234) == "Unknown (0x1234)"


class TestConnect:
    """Tests for Device.connect discovery."""

    def test_no_devices(self) -> None:
        """Should raise DeviceNotFoundError when nothing matches."""
        with (
            patch("ggoled.device.hid.enumerate", return_value=[]),
            pytest.raises(DeviceNotFoundError, match="No matching devices"),
        ):
            Device.connect()

    def test_too_few_devices(self, make_entry) -> None:
        """A single matching interface is not enough."""
        with (
            patch("ggoled.device.hid.enumerate", return_value=[make_entry(b"a")]),
            pytest.raises(DeviceNotFoundError, match="Too few"),
        ):
            Device.connect()

    def test_too_many_devices(self, make_entry) -> None:
        """More than two matching interfaces is ambiguous."""
        entries = [make_entry(b"a"), make_entry(b"b"), make_entry(b"c")]
        with (
            patch("ggoled.device.hid.enumerate", return_value=entries),
            pytest.raises(DeviceNotFoundError, match="Too many"),
        ):
            Device.connect()

    def test_ignores_other_interfaces_and_products(self, make_entry) -> None:
        """Entries on other interfaces or products should not count."""
        entries = [
            make_entry(b"a"),
            make_entry(b"b", interface_number=3),
            make_entry(b"c", product_id=0x1612),
        ]
        with (
            patch("ggoled.device.hid.enumerate", return_value=entries),
            pytest.raises(DeviceNotFoundError, match="Too few"),
        ):
            Device.connect()

    @pytest.mark.parametrize("oled_first", [True, False])
    def test_roles_from_descriptor(self, oled_entries, make_handle, oled_first: bool) -> None:
        """Roles should come from the report descriptor, in either order."""
        oled = make_handle([0x06, 0xC0, 0xFF])
        info = make_handle([0x06, 0x00, 0xFF])
        handles = [oled, info] if oled_first else [info, oled]
        with (
            patch("ggoled.device.hid.enumerate", return_value=oled_entries),
            patch("ggoled.device.hid.device", side_effect=handles),
        ):
            device = Device.connect()

        device.return_to_ui()
        oled.write.assert_called_once()
        info.write.assert_not_called()

        info.read.side_effect = [[7, 0x25, 0x08], []]
        assert device.get_events() == [VolumeEvent(volume=0x30)]
        assert device.product_name == "Arctis Nova Pro Wireless"

    def test_same_path_opened_twice(self, make_entry, make_handle) -> None:
        """Two entries sharing one path should open that path twice."""
        entries = [make_entry(b"/dev/hidraw0"), make_entry(b"/dev/hidraw0")]
        first, second = make_handle(), make_handle()
        with (
            patch("ggoled.device.hid.enumerate", return_value=entries),
            patch("ggoled.device.hid.device", side_effect=[first, second]),
        ):
            Device.connect()

        first.open_path.assert_called_once_with(b"/dev/hidraw0")
        second.open_path.assert_called_once_with(b"/dev/hidraw0")
        first.get_report_descriptor.assert_not_called()

    def test_no_oled_role(self, oled_entries, make_handle) -> None:
        """Should fail and close handles when no descriptor marks the OLED."""
        a = make_handle([0x06, 0x00])
        b = make_handle([0x06, 0x00])
        with (
            patch("ggoled.device.hid.enumerate", return_value=oled_entries),
            patch("ggoled.device.hid.device", side_effect=[a, b]),
            pytest.raises(DeviceNotFoundError, match="No OLED device"),
        ):
            Device.connect()
        a.close.assert_called_once()
        b.close.assert_called_once()

    def test_no_info_role(self, oled_entries, make_handle) -> None:
        """Should fail when the second endpoint is not the info endpoint."""
        a = make_handle([0x06, 0xC0])
        b = make_handle([0x06, 0x42])
        with (
            patch("ggoled.device.hid.enumerate", return_value=oled_entries),
            patch("ggoled.device.hid.device", side_effect=[a, b]),
            pytest.raises(DeviceNotFoundError, match="No info device"),
        ):
            Device.connect()
        a.close.assert_called_once()
        b.close.assert_called_once()

    def test_open_failure(self, oled_entries, make_handle) -> None:
        """OSError from open_path should become DeviceCommunicationError."""
        a = make_handle()
        b = make_handle()
        b.open_path.side_effect = OSError("permission denied")
        with (
            patch("ggoled.device.hid.enumerate", return_value=oled_entries),
            patch("ggoled.device.hid.device", side_effect=[a, b]),
            pytest.raises(DeviceCommunicationError),
        ):
            Device.connect()
        a.close.assert_called_once()


class TestReconnect:
    """Tests for Device.reconnect."""

    def test_replaces_handles_by_role(self, oled_entries, make_handle) -> None:
        """Fresh handles should be assigned by descriptor and the old ones closed."""
        old_oled = make_handle([0x06, 0xC0])
        old_info = make_handle([0x06, 0x00])
        device = Device(old_oled, old_info, product_id=0x12E0)

        new_oled = make_handle([0x06, 0xC0])
        new_info = make_handle([0x06, 0x00])
        with (
            patch("ggoled.device.hid.enumerate", return_value=oled_entries),
            patch("ggoled.device.hid.device", side_effect=[new_info, new_oled]),
        ):
            device.reconnect()

        assert device._oled is new_oled
        assert device._info is new_info
        old_oled.close.assert_called_once()
        old_info.close.assert_called_once()
        new_oled.close.assert_not_called()
        new_info.close.assert_not_called()

        device.return_to_ui()
        new_oled.write.assert_called_once()
        old_oled.write.assert_not_called()

    def test_device_missing_keeps_handles(self, make_handle) -> None:
        """A failed rediscovery should leave the current handles untouched."""
        old_oled = make_handle([0x06, 0xC0])
        old_info = make_handle([0x06, 0x00])
        device = Device(old_oled, old_info, product_id=0x12E0)

        with (
            patch("ggoled.device.hid.enumerate", return_value=[]),
            pytest.raises(DeviceNotFoundError),
        ):
            device.reconnect()

        assert device._oled is old_oled
        assert device._info is old_info
        old_oled.close.assert_not_called()
        old_info.close.assert_not_called()


class TestDescribeDevices:
    """Tests for describe_devices."""

    def test_lists_every_interface(self, make_entry, make_handle) -> None:
        """Should describe openable and unopenable interfaces."""
        good = make_handle(list(range(20)))
        bad = make_handle()
        bad.open_path.side_effect = OSError("busy")
        entries = [make_entry(b"a"), make_entry(b"b", interface_number=0)]
        with (
            patch("ggoled.device.hid.enumerate", return_value=entries),
            patch("ggoled.device.hid.device", side_effect=[good, bad]),
        ):
            described = describe_devices()

        assert described[0]["descriptor_head"] == bytes(range(16))
        assert described[1]["interface_number"] == 0
        assert "busy" in described[1]["error"]
        good.close.assert_called_once()


class TestSplitForReport:
    """Tests for split_for_report."""

    def test_full_screen_splits_in_two(self) -> None:
        """A full screen bitmap should become two 64-column chunks."""
        chunks = split_for_report(128, 64, 0, 0)
        assert chunks == [
            ReportChunk(dst_x=0, dst_y=0, src_x=0, src_y=0, width=64, height=64),
            ReportChunk(dst_x=64, dst_y=0, src_x=64, src_y=0, width=64, height=64),
        ]

    def test_negative_offset_moves_source(self) -> None:
        """Off-screen columns and rows should be skipped in the source."""
        chunks = split_for_report(20, 10, -5, -3)
        assert chunks == [
            ReportChunk(dst_x=0, dst_y=0, src_x=5, src_y=3, width=15, height=7),
        ]

    def test_clipped_at_right_and_bottom(self) -> None:
        """Chunks should not extend past the screen."""
        chunks = split_for_report(20, 20, 120, 60)
        assert chunks == [
            ReportChunk(dst_x=120, dst_y=60, src_x=0, src_y=0, width=8, height=4),
        ]

    @pytest.mark.parametrize(
        ("x", "y"), [(128, 0), (0, 64), (-20, 0), (0, -10), (500, 500)]
    )
    def test_fully_outside(self, x: int, y: int) -> None:
        """A bitmap with no visible part produces no chunks."""
        assert split_for_report(20, 10, x, y) == []

    def test_wide_bitmap_chunks_cover_screen(self) -> None:
        """Chunk widths should add up to the visible width."""
        chunks = split_for_report(300, 8, -30, 0)
        assert sum(c.width for c in chunks) == 128
        assert all(c.width <= 64 for c in chunks)


class TestEncodeDrawReport:
    """Tests for encode_draw_report."""

    def test_header(self) -> None:
        """The report should start with report id, opcode and geometry."""
        chunk = ReportChunk(dst_x=3, dst_y=5, src_x=0, src_y=0, width=2, height=2)
        report = encode_draw_report(bytes(4), 2, chunk)
        assert len(report) == DRAW_REPORT_SIZE
        assert report[:DRAW_HEADER_SIZE] == bytes([REPORT_ID, CMD_DRAW, 3, 5, 2, 2])

    def test_single_pixel_bit_position(self) -> None:
        """Pixel (0, 0) at dst_y 0 should be bit 0 of the first data byte."""
        chunk = ReportChunk(dst_x=0, dst_y=0, src_x=0, src_y=0, width=1, height=1)
        report = encode_draw_report(bytes([255]), 1, chunk)
        assert report[DRAW_HEADER_SIZE] == 0x01
        assert not any(report[DRAW_HEADER_SIZE + 1 :])

    def test_column_stride_padding(self) -> None:
        """Each column should be padded to whole bytes after the row offset."""
        # dst_y % 8 == 5 and h == 4 spans two pages, so stride is 16 bits
        chunk = ReportChunk(dst_x=0, dst_y=5, src_x=0, src_y=0, width=2, height=4)
        pixels = bytes([0, 255, 0, 0, 0, 0, 0, 0])
        report = encode_draw_report(pixels, 2, chunk)
        assert report[DRAW_HEADER_SIZE + 2] == 0x01

    def test_field_out_of_range(self) -> None:
        """Geometry values must fit in one byte."""
        chunk = ReportChunk(dst_x=256, dst_y=0, src_x=0, src_y=0, width=1, height=1)
        with pytest.raises(ValueError):
            encode_draw_report(bytes([0]), 1, chunk)

    def test_chunk_too_large(self) -> None:
        """A chunk too wide for one report should be rejected."""
        chunk = ReportChunk(dst_x=0, dst_y=0, src_x=0, src_y=0, width=200, height=64)
        with pytest.raises(ValueError):
            encode_draw_report(bytes(200 * 64), 200, chunk)

    def test_round_trip_all_alignments(self) -> None:
        """Decoding a report should give back the source region for any alignment."""
        rng = random.Random(1234)
        for dst_x in range(8):
            for dst_y in range(8):
                for w, h in [(1, 1), (7, 3), (13, 9), (64, 64 - dst_y)]:
                    source = Bitmap.from_pixels(
                        w + 3, h + 2, [rng.random() < 0.5 for _ in range((w + 3) * (h + 2))]
                    )
                    chunk = ReportChunk(dst_x, dst_y, 2, 1, w, h)
                    report = encode_draw_report(source.to_pixels(), source.width, chunk)
                    x, y, decoded = _decode_draw_report(report)
                    assert (x, y) == (dst_x, dst_y)
                    assert decoded == source.crop(2, 1, w, h)


class TestDeviceCommands:
    """Tests for Device output methods."""

    def test_draw_sends_one_report_per_chunk(self, mock_hid_device: MagicMock) -> None:
        """A full screen draw should send two feature reports."""
        device = Device(mock_hid_device, MagicMock())
        device.draw(Bitmap(128, 64, on=True))
        assert mock_hid_device.send_feature_report.call_count == 2

    def test_draw_offscreen_sends_nothing(self, mock_hid_device: MagicMock) -> None:
        """Nothing should be sent for an invisible bitmap."""
        device = Device(mock_hid_device, MagicMock())
        device.draw(Bitmap(10, 10, on=True), 200, 0)
        mock_hid_device.send_feature_report.assert_not_called()

    def test_draw_failure(self, mock_hid_device: MagicMock) -> None:
        """A negative result should raise DeviceCommunicationError."""
        mock_hid_device.send_feature_report.return_value = -1
        device = Device(mock_hid_device, MagicMock())
        with pytest.raises(DeviceCommunicationError):
            device.draw(Bitmap(8, 8))

    def test_draw_oserror(self, mock_hid_device: MagicMock) -> None:
        """OSError from hidapi should raise DeviceCommunicationError."""
        mock_hid_device.send_feature_report.side_effect = OSError("gone")
        device = Device(mock_hid_device, MagicMock())
        with pytest.raises(DeviceCommunicationError, match="gone"):
            device.draw(Bitmap(8, 8))

    @pytest.mark.parametrize("value", [1, 5, 10])
    def test_set_brightness(self, mock_hid_device: MagicMock, value: int) -> None:
        """Brightness should be written as a command report."""
        device = Device(mock_hid_device, MagicMock())
        device.set_brightness(value)
        report = mock_hid_device.write.call_args[0][0]
        assert len(report) == COMMAND_REPORT_SIZE
        assert report[:3] == bytes([REPORT_ID, CMD_BRIGHTNESS, value])

    @pytest.mark.parametrize("value", [0, 11, -1])
    def test_set_brightness_out_of_range(self, mock_hid_device: MagicMock, value: int) -> None:
        """Should raise ValueError without writing anything."""
        device = Device(mock_hid_device, MagicMock())
        with pytest.raises(ValueError):
            device.set_brightness(value)
        mock_hid_device.write.assert_not_called()

    def test_return_to_ui(self, mock_hid_device: MagicMock) -> None:
        """Should write the return-to-UI command."""
        device = Device(mock_hid_device, MagicMock())
        device.return_to_ui()
        report = mock_hid_device.write.call_args[0][0]
        assert report[:2] == bytes([REPORT_ID, CMD_RETURN_TO_UI])
        assert not any(report[2:])

    def test_closed_device(self, mock_hid_device: MagicMock) -> None:
        """Using a closed device should raise DeviceCommunicationError."""
        device = Device(mock_hid_device, MagicMock())
        device.close()
        with pytest.raises(DeviceCommunicationError, match="not opened"):
            device.return_to_ui()

    def test_context_manager_closes(self, make_handle) -> None:
        """Leaving the context should close both handles."""
        oled, info = make_handle(), make_handle()
        with Device(oled, info):
            pass
        oled.close.assert_called_once()
        info.close.assert_called_once()


class TestParseEvent:
    """Tests for parse_event."""

    def test_volume(self) -> None:
        """Volume is reported as an attenuation from the maximum."""
        assert parse_event([7, 0x25, 0x10]) == VolumeEvent(volume=0x28)

    def test_volume_clamped(self) -> None:
        """Attenuation beyond the maximum clamps to zero."""
        assert parse_event([7, 0x25, 0x50]) == VolumeEvent(volume=0)

    @pytest.mark.parametrize(("state", "connected"), [(8, True), (2, False), (0, False)])
    def test_headset_connection(self, state: int, connected: bool) -> None:
        """Only state 8 means connected."""
        assert parse_event([7, 0xB5, 0, 0, state]) == HeadsetConnectionEvent(connected)

    def test_battery(self) -> None:
        """Battery reports carry the level and charging byte."""
        event = parse_event([7, 0xB7, 6, 1])
        assert event == BatteryEvent(headset=6, charging=1)
        assert event.is_charging

    def test_short_report_padded(self) -> None:
        """Missing bytes should read as zero."""
        assert parse_event([7, 0x25]) == VolumeEvent(volume=0x38)

    @pytest.mark.parametrize("buf", [[6, 0x25, 0], [7, 0x99, 0], []])
    def test_ignored_reports(self, buf: list[int]) -> None:
        """Unknown or unmarked reports should be ignored."""
        assert parse_event(buf) is None


class TestDeviceEvents:
    """Tests for reading status reports."""

    def test_get_events_drains_queue(self, make_handle) -> None:
        """Should read until empty and skip unknown reports."""
        info = make_handle()
        info.read.side_effect = [[7, 0x25, 0x38], [7, 0x99], [7, 0xB5, 0, 0, 8], []]
        device = Device(make_handle(), info)
        assert device.get_events() == [
            VolumeEvent(volume=0),
            HeadsetConnectionEvent(connected=True),
        ]
        info.set_nonblocking.assert_called_once_with(1)

    def test_get_events_read_error(self, make_handle) -> None:
        """A failing read should raise DeviceCommunicationError."""
        info = make_handle()
        info.read.side_effect = OSError("read error")
        device = Device(make_handle(), info)
        with pytest.raises(DeviceCommunicationError):
            device.get_events()

    def test_poll_event_blocks(self, make_handle) -> None:
        """poll_event should switch to blocking reads."""
        info = make_handle()
        info.read.return_value = [7, 0xB7, 3, 0]
        device = Device(make_handle(), info)
        assert device.poll_event() == BatteryEvent(headset=3, charging=0)
        info.set_nonblocking.assert_called_once_with(0)
