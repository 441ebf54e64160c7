"""Data models for ggoled.

Layer, device event and draw event kinds are small closed sets of frozen
dataclasses; consumers dispatch on them with ``isinstance``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType, TypeAlias

from ggoled.bitmap import Bitmap, Frame

LayerId = NewType("LayerId", int)

# Never handed out by a layer store
NO_LAYER = LayerId(0)


class ShiftMode(Enum):
    """Anti burn-in strategy."""

    OFF = "off"
    SIMPLE = "simple"


# Layers


@dataclass(frozen=True, slots=True)
class ImageLayer:
    """Static bitmap at a fixed position."""

    bitmap: Bitmap
    x: int = 0
    y: int = 0


@dataclass(frozen=True, slots=True)
class AnimationLayer:
    """Sequence of frames at a fixed position.

    With ``follow_fps`` the animation advances one frame per render tick,
    otherwise each frame is held for its own delay.
    """

    frames: tuple[Frame, ...]
    x: int = 0
    y: int = 0
    follow_fps: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "frames", tuple(self.frames))


@dataclass(frozen=True, slots=True)
class ScrollLayer:
    """Bitmap scrolling right to left, tiled across the screen width."""

    bitmap: Bitmap
    y: int = 0


DrawLayer: TypeAlias = ImageLayer | AnimationLayer | ScrollLayer


# Device events (decoded status reports)


@dataclass(frozen=True, slots=True)
class VolumeEvent:
    volume: int


@dataclass(frozen=True, slots=True)
class BatteryEvent:
    """Headset battery report.

    Attributes:
        headset: Headset battery level as reported by the firmware.
        charging: Raw charging byte; non-zero while charging.
    """

    headset: int
    charging: int

    @property
    def is_charging(self) -> bool:
        return self.charging != 0


@dataclass(frozen=True, slots=True)
class HeadsetConnectionEvent:
    connected: bool


DeviceEvent: TypeAlias = VolumeEvent | BatteryEvent | HeadsetConnectionEvent


# Draw events (published by the render thread)


@dataclass(frozen=True, slots=True)
class DeviceDisconnected:
    """The render thread lost the device."""


@dataclass(frozen=True, slots=True)
class DeviceReconnected:
    """The render thread reconnected to the device."""


@dataclass(frozen=True, slots=True)
class DeviceEventReceived:
    """A status report forwarded from the device."""

    event: DeviceEvent


DrawEvent: TypeAlias = DeviceDisconnected | DeviceReconnected | DeviceEventReceived
