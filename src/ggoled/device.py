"""Device discovery and HID protocol for the Arctis Nova Pro OLED.

The base station exposes two HID endpoints on interface 4: one accepts
drawing and brightness commands, the other emits status reports (volume,
battery, headset connection).
"""

import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

import hid

from ggoled.bitmap import Bitmap
from ggoled.constants import (
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    CMD_BRIGHTNESS,
    CMD_DRAW,
    CMD_RETURN_TO_UI,
    COMMAND_REPORT_SIZE,
    DESCRIPTOR_INFO,
    DESCRIPTOR_OLED,
    DESCRIPTOR_ROLE_INDEX,
    DRAW_HEADER_SIZE,
    DRAW_REPORT_SIZE,
    EVENT_BATTERY,
    EVENT_HEADSET_CONNECTION,
    EVENT_MARKER,
    EVENT_REPORT_SIZE,
    EVENT_VOLUME,
    HEADSET_CONNECTED,
    INTERFACE_NUMBER,
    OLED_HEIGHT,
    OLED_WIDTH,
    REPORT_ID,
    REPORT_SPLIT_WIDTH,
    SUPPORTED_PIDS,
    VENDOR_ID,
    VOLUME_MAX,
)
from ggoled.exceptions import DeviceCommunicationError, DeviceNotFoundError
from ggoled.models import BatteryEvent, DeviceEvent, HeadsetConnectionEvent, VolumeEvent

logger = logging.getLogger(__name__)

# Largest descriptor hidapi will return
MAX_REPORT_DESCRIPTOR_SIZE = 4096


def get_device_name(product_id: int) -> str:
    """Get the human-readable name for a device.

    Args:
        product_id: The USB product ID.

    Returns:
        The device name or "Unknown" if not recognized.
    """
    names = {
        0x12CB: "Arctis Nova Pro Wired",
        0x12CD: "Arctis Nova Pro Wired (Xbox)",
        0x12E0: "Arctis Nova Pro Wireless",
        0x12E5: "Arctis Nova Pro Wireless (Xbox)",
    }
    return names.get(product_id, f"Unknown (0x{product_id:04X})")


def enumerate_devices() -> list[dict[str, Any]]:
    """Return the hidapi entries of every supported OLED interface."""
    return [
        dev
        for dev in hid.enumerate(VENDOR_ID, 0)
        if dev["product_id"] in SUPPORTED_PIDS
        and dev["interface_number"] == INTERFACE_NUMBER
    ]


def describe_devices() -> list[dict[str, Any]]:
    """Describe every SteelSeries HID interface, for troubleshooting.

    Each entry carries the hidapi fields plus ``descriptor_head`` (the first
    16 bytes of the report descriptor) or ``error`` if the interface could not
    be opened.
    """
    described: list[dict[str, Any]] = []
    for info in hid.enumerate(VENDOR_ID, 0):
        entry = {
            "product": info.get("product_string") or "?",
            "product_id": info["product_id"],
            "interface_number": info.get("interface_number"),
            "path": info["path"],
            "usage_page": info.get("usage_page"),
            "usage": info.get("usage"),
        }
        try:
            dev = _open_path(info["path"])
        except DeviceCommunicationError as e:
            entry["error"] = str(e)
        else:
            try:
                entry["descriptor_head"] = bytes(_report_descriptor(dev)[:16])
            except DeviceCommunicationError as e:
                entry["error"] = str(e)
            finally:
                dev.close()
        described.append(entry)
    return described


def _open_path(path: bytes) -> Any:
    dev = hid.device()
    try:
        dev.open_path(path)
    except OSError as e:
        msg = f"Failed to open device: {e}"
        raise DeviceCommunicationError(msg) from e
    return dev


def _report_descriptor(dev: Any) -> list[int]:
    try:
        return list(dev.get_report_descriptor(MAX_REPORT_DESCRIPTOR_SIZE))
    except OSError as e:
        msg = f"Failed to get HID report descriptor: {e}"
        raise DeviceCommunicationError(msg) from e


def _close_all(devices: Sequence[Any]) -> None:
    for dev in devices:
        with contextlib.suppress(OSError):
            dev.close()


def _open_roles(infos: list[dict[str, Any]]) -> tuple[Any, Any]:
    """Open the OLED and info endpoints from exactly two hidapi entries."""
    # On Linux both roles can share one hidraw node
    if infos[0]["path"] == infos[1]["path"]:
        oled_dev = _open_path(infos[0]["path"])
        try:
            info_dev = _open_path(infos[0]["path"])
        except DeviceCommunicationError:
            _close_all([oled_dev])
            raise
        return oled_dev, info_dev

    devices: list[Any] = []
    try:
        for info in infos:
            devices.append(_open_path(info["path"]))
        descriptors = [_report_descriptor(dev) for dev in devices]
    except DeviceCommunicationError:
        _close_all(devices)
        raise

    roles: list[int | None] = [
        desc[DESCRIPTOR_ROLE_INDEX] if len(desc) > DESCRIPTOR_ROLE_INDEX else None
        for desc in descriptors
    ]
    if DESCRIPTOR_OLED not in roles:
        _close_all(devices)
        msg = "No OLED device found"
        raise DeviceNotFoundError(msg)
    oled_dev = devices.pop(roles.index(DESCRIPTOR_OLED))
    roles.remove(DESCRIPTOR_OLED)

    if DESCRIPTOR_INFO not in roles:
        _close_all([oled_dev, *devices])
        msg = "No info device found"
        raise DeviceNotFoundError(msg)
    info_dev = devices.pop(roles.index(DESCRIPTOR_INFO))
    return oled_dev, info_dev


@dataclass(frozen=True, slots=True)
class ReportChunk:
    """A screen-clipped slice of a bitmap that fits in one draw report."""

    dst_x: int
    dst_y: int
    src_x: int
    src_y: int
    width: int
    height: int


def split_for_report(
    bitmap_width: int,
    bitmap_height: int,
    x: int,
    y: int,
    screen_width: int = OLED_WIDTH,
    screen_height: int = OLED_HEIGHT,
) -> list[ReportChunk]:
    """Clip a bitmap placed at (x, y) to the screen and split it into chunks.

    Negative offsets move the source origin into the bitmap so the visible
    part is still drawn. Chunks are at most ``REPORT_SPLIT_WIDTH`` columns
    wide and ordered left to right.
    """
    w, h = bitmap_width, bitmap_height
    src_x = src_y = 0
    if x < 0:
        w += x
        src_x = -x
        x = 0
    if y < 0:
        h += y
        src_y = -y
        y = 0

    x = min(x, screen_width)
    y = min(y, screen_height)
    w = min(w, screen_width - x)
    h = min(h, screen_height - y)
    if w <= 0 or h <= 0:
        return []

    return [
        ReportChunk(
            dst_x=x + offset,
            dst_y=y,
            src_x=src_x + offset,
            src_y=src_y,
            width=min(REPORT_SPLIT_WIDTH, w - offset),
            height=h,
        )
        for offset in range(0, w, REPORT_SPLIT_WIDTH)
    ]


def encode_draw_report(pixels: bytes, bitmap_width: int, chunk: ReportChunk) -> bytes:
    """Encode one chunk as a draw feature report.

    Pixel data is column-major. Each column is padded so that it starts on
    the same bit offset within a byte as the destination row
    (``dst_y % 8``), which is how the panel's 8-pixel pages are addressed.

    Args:
        pixels: Bitmap pixels from ``Bitmap.to_pixels()``.
        bitmap_width: Width of the bitmap the pixels belong to.
        chunk: Region to encode, from ``split_for_report``.

    Returns:
        ``DRAW_REPORT_SIZE`` bytes ready for ``send_feature_report``.

    Raises:
        ValueError: If the chunk does not fit in one report.
    """
    header = (chunk.dst_x, chunk.dst_y, chunk.width, chunk.height)
    if any(not 0 <= v <= 0xFF for v in header):
        msg = f"Draw report fields must fit in one byte, got {header}"
        raise ValueError(msg)

    stride = (chunk.dst_y % 8 + chunk.height + 7) // 8 * 8
    if DRAW_HEADER_SIZE + (chunk.width * stride + 7) // 8 > DRAW_REPORT_SIZE:
        msg = f"Chunk {chunk.width}x{chunk.height} does not fit in a draw report"
        raise ValueError(msg)

    report = bytearray(DRAW_REPORT_SIZE)
    report[0] = REPORT_ID
    report[1] = CMD_DRAW
    report[2:DRAW_HEADER_SIZE] = bytes(header)
    for y in range(chunk.height):
        row = (chunk.src_y + y) * bitmap_width + chunk.src_x
        for x in range(chunk.width):
            if pixels[row + x]:
                ri = x * stride + y
                report[DRAW_HEADER_SIZE + ri // 8] |= 1 << (ri % 8)
    return bytes(report)


def parse_event(buf: Sequence[int]) -> DeviceEvent | None:
    """Decode a status report from the info endpoint.

    Returns:
        The decoded event, or None for reports this module does not know.
    """
    # Short reads are zero padded like the fixed-size report buffer
    buf = list(buf[:EVENT_REPORT_SIZE])
    buf += [0] * (EVENT_REPORT_SIZE - len(buf))
    if buf[0] != EVENT_MARKER:
        return None
    kind = buf[1]
    if kind == EVENT_VOLUME:
        return VolumeEvent(volume=max(0, VOLUME_MAX - buf[2]))
    if kind == EVENT_HEADSET_CONNECTION:
        return HeadsetConnectionEvent(connected=buf[4] == HEADSET_CONNECTED)
    if kind == EVENT_BATTERY:
        return BatteryEvent(headset=buf[2], charging=buf[3])
    logger.debug("Ignoring status report 0x%02X", kind)
    return None


class Device:
    """Open connection to an Arctis Nova Pro base station.

    Example:
        with Device.connect() as device:
            device.draw(Bitmap(device.width, device.height, on=True))
    """

    def __init__(
        self,
        oled_dev: Any,
        info_dev: Any,
        product_id: int | None = None,
        width: int = OLED_WIDTH,
        height: int = OLED_HEIGHT,
    ) -> None:
        """Wrap two already opened hidapi handles.

        Args:
            oled_dev: Handle that accepts draw and brightness commands.
            info_dev: Handle that emits status reports.
            product_id: USB product ID of the base station.
            width: Screen width in pixels.
            height: Screen height in pixels.
        """
        self._oled = oled_dev
        self._info = info_dev
        self.product_id = product_id
        self.width = width
        self.height = height

    @classmethod
    def connect(cls) -> Self:
        """Discover and open the base station.

        Raises:
            DeviceNotFoundError: If there are not exactly two matching
                interfaces, or their roles cannot be identified.
            DeviceCommunicationError: If an interface cannot be opened.
        """
        infos = enumerate_devices()
        if not infos:
            raise DeviceNotFoundError
        if len(infos) < 2:
            msg = "Too few matching devices connected"
            raise DeviceNotFoundError(msg)
        if len(infos) > 2:
            msg = "Too many matching devices connected"
            raise DeviceNotFoundError(msg)

        oled_dev, info_dev = _open_roles(infos)
        product_id = infos[0]["product_id"]
        logger.debug("Connected to %s", get_device_name(product_id))
        return cls(oled_dev, info_dev, product_id=product_id)

    def reconnect(self) -> None:
        """Rediscover the device and replace the open handles.

        Raises:
            DeviceNotFoundError: If the device is not present.
            DeviceCommunicationError: If it cannot be opened.
        """
        fresh = self.connect()
        self.close()
        self._oled = fresh._oled
        self._info = fresh._info
        self.product_id = fresh.product_id
        self.width = fresh.width
        self.height = fresh.height

    def close(self) -> None:
        """Release both HID handles."""
        handles = [self._oled] if self._oled is self._info else [self._oled, self._info]
        _close_all([h for h in handles if h is not None])
        self._oled = None
        self._info = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def product_name(self) -> str:
        if self.product_id is None:
            return "Unknown"
        return get_device_name(self.product_id)

    def draw(self, bitmap: Bitmap, x: int = 0, y: int = 0) -> None:
        """Draw a bitmap with its top-left corner at screen position (x, y).

        Anything outside the screen is clipped.

        Raises:
            DeviceCommunicationError: If a report cannot be sent. Later
                chunks are not sent.
        """
        chunks = split_for_report(bitmap.width, bitmap.height, x, y, self.width, self.height)
        if not chunks:
            return
        pixels = bitmap.to_pixels()
        for chunk in chunks:
            self._send_feature_report(encode_draw_report(pixels, bitmap.width, chunk))

    def set_brightness(self, value: int) -> None:
        """Set screen brightness.

        Args:
            value: Brightness from 1 to 10 inclusive.

        Raises:
            ValueError: If value is out of range.
            DeviceCommunicationError: If sending fails.
        """
        if not BRIGHTNESS_MIN <= value <= BRIGHTNESS_MAX:
            msg = (
                f"Brightness must be between {BRIGHTNESS_MIN} and "
                f"{BRIGHTNESS_MAX}, got {value}"
            )
            raise ValueError(msg)
        self._write(self._command_report(CMD_BRIGHTNESS, value))

    def return_to_ui(self) -> None:
        """Hand the screen back to the base station's own UI."""
        self._write(self._command_report(CMD_RETURN_TO_UI))

    def poll_event(self) -> DeviceEvent | None:
        """Block until a status report arrives and decode it.

        Returns:
            The decoded event, or None if the report was not recognized.
        """
        info = self._require(self._info)
        try:
            info.set_nonblocking(0)
            buf = info.read(EVENT_REPORT_SIZE)
        except OSError as e:
            msg = f"Failed to read status report: {e}"
            raise DeviceCommunicationError(msg) from e
        return parse_event(buf)

    def get_events(self) -> list[DeviceEvent]:
        """Return every pending status report without blocking."""
        info = self._require(self._info)
        events: list[DeviceEvent] = []
        try:
            info.set_nonblocking(1)
            while True:
                buf = info.read(EVENT_REPORT_SIZE)
                if not buf:
                    break
                event = parse_event(buf)
                if event is not None:
                    events.append(event)
        except OSError as e:
            msg = f"Failed to read status report: {e}"
            raise DeviceCommunicationError(msg) from e
        return events

    @staticmethod
    def _command_report(command: int, value: int = 0) -> bytes:
        report = bytearray(COMMAND_REPORT_SIZE)
        report[0] = REPORT_ID
        report[1] = command
        report[2] = value
        return bytes(report)

    @staticmethod
    def _require(handle: Any) -> Any:
        if handle is None:
            msg = "Device not opened"
            raise DeviceCommunicationError(msg)
        return handle

    def _send_feature_report(self, data: bytes) -> None:
        oled = self._require(self._oled)
        try:
            result = oled.send_feature_report(data)
        except OSError as e:
            msg = f"Failed to send feature report: {e}"
            raise DeviceCommunicationError(msg) from e
        if result < 0:
            msg = f"Feature report rejected by device (result={result})"
            raise DeviceCommunicationError(msg)

    def _write(self, data: bytes) -> None:
        oled = self._require(self._oled)
        try:
            result = oled.write(data)
        except OSError as e:
            msg = f"Failed to write report: {e}"
            raise DeviceCommunicationError(msg) from e
        if result < 0:
            msg = f"Report rejected by device (result={result})"
            raise DeviceCommunicationError(msg)
