"""Clock display with headset connection notifications.

Runs until interrupted with Ctrl+C or SIGTERM, then hands the screen back to
the base station's own UI.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from PIL import Image, ImageDraw

from ggoled._signal import ShutdownFlag, shutdown_guard
from ggoled.bitmap import Bitmap
from ggoled.constants import DEFAULT_FPS
from ggoled.device import Device
from ggoled.engine import DrawDevice
from ggoled.exceptions import DeviceCommunicationError
from ggoled.models import (
    NO_LAYER,
    BatteryEvent,
    DeviceDisconnected,
    DeviceEvent,
    DeviceEventReceived,
    DeviceReconnected,
    DrawEvent,
    HeadsetConnectionEvent,
    ImageLayer,
    LayerId,
    ShiftMode,
    VolumeEvent,
)
from ggoled.text import DEFAULT_FONT_SIZE, TextRenderer

logger = logging.getLogger(__name__)

# Main loop poll interval (seconds)
POLL_INTERVAL = 0.01

ICON_SIZE = 16
ICON_POSITION = (8, 8)


@dataclass(frozen=True, slots=True)
class ClockConfig:
    """Settings for the clock display."""

    fps: int = DEFAULT_FPS
    shift_mode: ShiftMode = ShiftMode.SIMPLE
    time_format: str = "%H:%M:%S"
    show_notifications: bool = True
    notification_seconds: float = 5.0
    font_path: Path | None = None
    font_size: int = DEFAULT_FONT_SIZE


def draw_headset_icon(connected: bool) -> Bitmap:
    """Draw a small headset glyph, struck through when disconnected."""
    im = Image.new("1", (ICON_SIZE, ICON_SIZE), color=0)
    draw = ImageDraw.Draw(im)
    last = ICON_SIZE - 1

    # Headband and ear cups
    draw.arc([2, 1, last - 2, last - 2], start=180, end=360, fill=255)
    draw.line([2, 7, 2, 9], fill=255)
    draw.line([last - 2, 7, last - 2, 9], fill=255)
    draw.rectangle([0, 9, 4, last - 1], fill=255)
    draw.rectangle([last - 4, 9, last, last - 1], fill=255)

    if not connected:
        draw.line([0, last, last, 0], fill=255, width=2)
    return Bitmap.from_image(im)


class ClockApp:
    """Keep the time and notification layers of a DrawDevice up to date."""

    def __init__(
        self,
        dev: DrawDevice,
        config: ClockConfig,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._dev = dev
        self._config = config
        self._now = now
        self._icons = {
            True: draw_headset_icon(connected=True),
            False: draw_headset_icon(connected=False),
        }
        self._time_layers: list[LayerId] = []
        self._last_text: str | None = None
        self._notification: LayerId = NO_LAYER
        self._notification_expiry: datetime | None = None
        self._headset_connected: bool | None = None
        self.device_connected = True

    def handle_event(self, event: DrawEvent) -> None:
        """React to one event from the render thread."""
        if isinstance(event, DeviceDisconnected):
            self.device_connected = False
            logger.warning("Base station disconnected, waiting for it to return")
        elif isinstance(event, DeviceReconnected):
            self.device_connected = True
            logger.info("Base station reconnected")
        elif isinstance(event, DeviceEventReceived):
            self._handle_device_event(event.event)

    def _handle_device_event(self, event: DeviceEvent) -> None:
        if isinstance(event, HeadsetConnectionEvent):
            if event.connected == self._headset_connected:
                return
            self._headset_connected = event.connected
            logger.info("Headset %s", "connected" if event.connected else "disconnected")
            if self._config.show_notifications:
                self._show_notification(self._icons[event.connected])
        elif isinstance(event, BatteryEvent):
            logger.info(
                "Headset battery %d%s", event.headset, " (charging)" if event.is_charging else ""
            )
        elif isinstance(event, VolumeEvent):
            logger.debug("Volume %d", event.volume)

    def _show_notification(self, icon: Bitmap) -> None:
        x, y = ICON_POSITION
        remove = [self._notification] if self._notification != NO_LAYER else []
        (self._notification,) = self._dev.replace_layers(remove, [ImageLayer(icon, x=x, y=y)])
        self._notification_expiry = self._now() + timedelta(
            seconds=self._config.notification_seconds
        )

    def update(self) -> None:
        """Refresh the time text and expire old notifications."""
        now = self._now()
        if self._notification_expiry is not None and now >= self._notification_expiry:
            self._dev.remove_layer(self._notification)
            self._notification = NO_LAYER
            self._notification_expiry = None

        text = now.strftime(self._config.time_format)
        if text == self._last_text:
            return
        self._last_text = text
        self._time_layers = self._dev.replace_layers(
            self._time_layers, self._dev.text_layers(text)
        )

    def run(self, flag: ShutdownFlag) -> None:
        """Process events and redraw until shutdown is requested."""
        while flag.running:
            while True:
                event = self._dev.try_event()
                if event is None:
                    break
                self.handle_event(event)
            self.update()
            flag.wait(POLL_INTERVAL)


def run_clock(config: ClockConfig) -> None:
    """Show a clock on the OLED until interrupted.

    Raises:
        DeviceNotFoundError: If the base station is not connected.
        DeviceCommunicationError: If it cannot be opened.
        ImageError: If a custom font cannot be loaded.
    """
    if config.font_path is not None:
        texter = TextRenderer.load_from_file(config.font_path, config.font_size)
    else:
        texter = TextRenderer(size=config.font_size)

    device = Device.connect()
    logger.info("Using %s", device.product_name)
    dev = DrawDevice(device, fps=config.fps, texter=texter)
    dev.set_shift_mode(config.shift_mode)
    app = ClockApp(dev, config)

    try:
        with shutdown_guard() as flag:
            app.update()
            dev.play()
            app.run(flag)
    finally:
        device = dev.stop()
        try:
            device.return_to_ui()
        except DeviceCommunicationError as e:
            logger.warning("Could not return to the base station UI: %s", e)
        finally:
            device.close()
