"""ggoled - Draw on the OLED screen of SteelSeries Arctis Nova Pro base stations.

This package provides direct HID access to the 128x64 OLED screen and a
layered, threaded draw engine with anti burn-in shifting and automatic
reconnects.

Example:
    from ggoled import Device, DrawDevice

    with DrawDevice(Device.connect()) as dev:
        dev.add_text("Hello world")
        dev.play()
        dev.await_frame()
"""

from ggoled.bitmap import Bitmap, Frame
from ggoled.constants import (
    OLED_HEIGHT,
    OLED_WIDTH,
    SUPPORTED_PIDS,
    VENDOR_ID,
)
from ggoled.device import Device, get_device_name
from ggoled.engine import DrawDevice
from ggoled.exceptions import (
    DeviceCommunicationError,
    DeviceNotFoundError,
    GGOledError,
    ImageError,
)
from ggoled.frames import decode_frames
from ggoled.models import (
    NO_LAYER,
    AnimationLayer,
    BatteryEvent,
    DeviceDisconnected,
    DeviceEventReceived,
    DeviceReconnected,
    HeadsetConnectionEvent,
    ImageLayer,
    LayerId,
    ScrollLayer,
    ShiftMode,
    VolumeEvent,
)
from ggoled.text import Alignment, TextRenderer

__version__ = "0.1.0"

__all__ = [
    "NO_LAYER",
    "OLED_HEIGHT",
    "OLED_WIDTH",
    "SUPPORTED_PIDS",
    "VENDOR_ID",
    "Alignment",
    "AnimationLayer",
    "BatteryEvent",
    "Bitmap",
    "Device",
    "DeviceCommunicationError",
    "DeviceDisconnected",
    "DeviceEventReceived",
    "DeviceNotFoundError",
    "DeviceReconnected",
    "DrawDevice",
    "Frame",
    "GGOledError",
    "HeadsetConnectionEvent",
    "ImageError",
    "ImageLayer",
    "LayerId",
    "ScrollLayer",
    "ShiftMode",
    "TextRenderer",
    "VolumeEvent",
    "__version__",
    "decode_frames",
    "get_device_name",
]
