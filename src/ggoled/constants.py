"""Constants for SteelSeries Arctis Nova Pro OLED communication."""

from typing import Final

# SteelSeries USB Vendor ID
VENDOR_ID: Final[int] = 0x1038

# Product IDs of base stations with a 128x64 OLED
SUPPORTED_PIDS: Final[tuple[int, ...]] = (
    0x12CB,  # Arctis Nova Pro Wired
    0x12CD,  # Arctis Nova Pro Wired (Xbox)
    0x12E0,  # Arctis Nova Pro Wireless
    0x12E5,  # Arctis Nova Pro Wireless (Xbox)
)

# Both the OLED and the info endpoints live on this USB interface
INTERFACE_NUMBER: Final[int] = 4

# Report descriptor byte 1 tells the two endpoints apart
DESCRIPTOR_ROLE_INDEX: Final[int] = 1
DESCRIPTOR_OLED: Final[int] = 0xC0
DESCRIPTOR_INFO: Final[int] = 0x00

# OLED display dimensions
OLED_WIDTH: Final[int] = 128
OLED_HEIGHT: Final[int] = 64

# HID report ID and command opcodes
REPORT_ID: Final[int] = 0x06
CMD_DRAW: Final[int] = 0x93
CMD_BRIGHTNESS: Final[int] = 0x85
CMD_RETURN_TO_UI: Final[int] = 0x95

# Report sizes (in bytes)
DRAW_REPORT_SIZE: Final[int] = 1024
DRAW_HEADER_SIZE: Final[int] = 6
COMMAND_REPORT_SIZE: Final[int] = 64
EVENT_REPORT_SIZE: Final[int] = 64

# Widest chunk a single draw report can carry
REPORT_SPLIT_WIDTH: Final[int] = 64

# Brightness range accepted by the firmware (inclusive)
BRIGHTNESS_MIN: Final[int] = 1
BRIGHTNESS_MAX: Final[int] = 10

# Status reports from the info endpoint
EVENT_MARKER: Final[int] = 7
EVENT_VOLUME: Final[int] = 0x25
EVENT_HEADSET_CONNECTION: Final[int] = 0xB5
EVENT_BATTERY: Final[int] = 0xB7
VOLUME_MAX: Final[int] = 0x38
HEADSET_CONNECTED: Final[int] = 8

# Render loop timing (seconds)
DEFAULT_FPS: Final[int] = 30
RECONNECT_PERIOD: Final[float] = 1.0
HEARTBEAT_PERIOD: Final[float] = 1.0
DEFAULT_FRAME_DELAY: Final[float] = 1.0

# Anti burn-in shift ring, advanced once per period
OLED_SHIFT_PERIOD: Final[float] = 90.0
OLED_SHIFTS: Final[tuple[tuple[int, int], ...]] = (
    (0, 0),
    (0, -1),
    (1, -1),
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
)

# Gap between repeats of a scrolling layer
SCROLL_MARGIN: Final[int] = 30
