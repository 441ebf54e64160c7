"""Custom exceptions for ggoled."""


class GGOledError(Exception):
    """Base exception for ggoled errors."""


class DeviceNotFoundError(GGOledError):
    """Raised when the headset base station cannot be discovered."""

    def __init__(self, message: str = "No matching devices connected") -> None:
        super().__init__(message)


class DeviceCommunicationError(GGOledError):
    """Raised when reading from or writing to an open device fails."""


class ImageError(GGOledError):
    """Raised when an image or font cannot be loaded."""
