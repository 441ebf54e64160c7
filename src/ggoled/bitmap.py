"""1-bit raster used for every drawable on the OLED.

A Bitmap wraps a Pillow mode "1" image. Pixels are either on or off; the
image always holds exactly ``width * height`` of them.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Self

from PIL import Image, ImageChops

_ON = 255
_OFF = 0


class Bitmap:
    """Monochrome bitmap with compositing primitives.

    Example:
        screen = Bitmap(128, 64)
        screen.blit(icon, 8, 8, opaque=False)
    """

    __slots__ = ("_image",)

    def __init__(self, width: int, height: int, on: bool = False) -> None:
        if width < 0 or height < 0:
            msg = f"Bitmap size must be non-negative, got {width}x{height}"
            raise ValueError(msg)
        self._image = Image.new("1", (width, height), _ON if on else _OFF)

    @classmethod
    def from_image(cls, image: Image.Image) -> Self:
        """Create a bitmap from any Pillow image.

        Non "1" images are thresholded without dithering.
        """
        if image.mode != "1":
            image = image.convert("1", dither=Image.Dither.NONE)
        bitmap = cls.__new__(cls)
        bitmap._image = image.copy()
        return bitmap

    @classmethod
    def from_pixels(cls, width: int, height: int, pixels: Iterable[object]) -> Self:
        """Create a bitmap from row-major truthy pixel values."""
        data = bytes(_ON if p else _OFF for p in pixels)
        if len(data) != width * height:
            msg = f"Expected {width * height} pixels, got {len(data)}"
            raise ValueError(msg)
        if not data:
            return cls(width, height)
        return cls.from_image(Image.frombytes("L", (width, height), data))

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def size(self) -> tuple[int, int]:
        return self._image.size

    def __len__(self) -> int:
        return self.width * self.height

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitmap):
            return NotImplemented
        return self.size == other.size and self.to_pixels() == other.to_pixels()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Bitmap({self.width}x{self.height})"

    def get(self, x: int, y: int) -> bool:
        """Return whether the pixel at (x, y) is on."""
        return bool(self._image.getpixel((x, y)))

    def set(self, x: int, y: int, on: bool = True) -> None:
        """Turn the pixel at (x, y) on or off."""
        self._image.putpixel((x, y), _ON if on else _OFF)

    def to_pixels(self) -> bytes:
        """Return one byte per pixel (0 or 255), row-major."""
        if not len(self):
            return b""
        return self._image.convert("L").tobytes()

    def to_image(self) -> Image.Image:
        """Return a copy of the bitmap as a mode "1" Pillow image."""
        return self._image.copy()

    def copy(self) -> "Bitmap":
        return Bitmap.from_image(self._image)

    def crop(self, x: int, y: int, w: int, h: int) -> "Bitmap":
        """Return the sub-rectangle at (x, y) of size w x h.

        Raises:
            ValueError: If the rectangle does not lie inside the bitmap.
        """
        if x < 0 or y < 0 or w < 0 or h < 0:
            msg = f"Crop rectangle must be non-negative: ({x}, {y}, {w}, {h})"
            raise ValueError(msg)
        if x + w > self.width or y + h > self.height:
            msg = (
                f"Crop rectangle ({x}, {y}, {w}, {h}) exceeds "
                f"{self.width}x{self.height} bitmap"
            )
            raise ValueError(msg)
        return Bitmap.from_image(self._image.crop((x, y, x + w, y + h)))

    def blit(self, other: "Bitmap", x: int, y: int, opaque: bool) -> None:
        """Draw another bitmap onto this one at a signed offset.

        The bounds of this bitmap are never expanded; anything outside is
        clipped.

        Args:
            other: Source bitmap.
            x: Horizontal offset of the source's left edge.
            y: Vertical offset of the source's top edge.
            opaque: Overwrite every covered pixel when True. When False only
                set source pixels are drawn (logical OR).
        """
        if not len(other) or not len(self):
            return
        if opaque:
            self._image.paste(other._image, (x, y))
        else:
            self._image.paste(_ON, (x, y), mask=other._image)

    def invert(self) -> None:
        """Flip every pixel."""
        if len(self):
            self._image = ImageChops.invert(self._image)


@dataclass(frozen=True, slots=True)
class Frame:
    """One image of an animation.

    Attributes:
        bitmap: Frame content, shared between layers.
        delay: Seconds to show the frame, or None to use the default.
    """

    bitmap: Bitmap
    delay: float | None = None
