"""Text rasterization into bitmaps."""

from enum import Enum
from pathlib import Path
from typing import Self

from PIL import Image, ImageDraw, ImageFont
from PIL.ImageFont import FreeTypeFont

from ggoled.bitmap import Bitmap
from ggoled.exceptions import ImageError

DEFAULT_FONT_SIZE = 16


class Alignment(Enum):
    """Horizontal alignment of lines within a text block."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class TextRenderer:
    """Render text with a TrueType font into 1-bit bitmaps.

    Glyphs are drawn on mode "1" images, so Pillow renders them without
    anti-aliasing.
    """

    def __init__(
        self, font: FreeTypeFont | None = None, size: int = DEFAULT_FONT_SIZE
    ) -> None:
        """Initialize the renderer.

        Args:
            font: Pre-loaded PIL font to use. Defaults to Pillow's bundled
                font at ``size``.
            size: Font size if no font is given.
        """
        self._font = font if font is not None else ImageFont.load_default(size)

    @classmethod
    def load_from_file(cls, path: Path, size: int = DEFAULT_FONT_SIZE) -> Self:
        """Create a renderer from a TrueType font file.

        Raises:
            ImageError: If the font cannot be loaded.
        """
        try:
            return cls(ImageFont.truetype(str(path), size))
        except OSError as e:
            msg = f"Failed to load font: {path}"
            raise ImageError(msg) from e

    @property
    def font(self) -> FreeTypeFont:
        return self._font

    def line_height(self) -> int:
        ascent, descent = self._font.getmetrics()
        return ascent + descent

    def render_lines(self, text: str) -> list[Bitmap]:
        """Render each line of text into its own tightly cropped bitmap.

        Blank lines produce empty (0x0) bitmaps.
        """
        return [self._render_line(line) for line in text.replace("\r", "").split("\n")]

    def render(self, text: str, alignment: Alignment = Alignment.LEFT) -> Bitmap:
        """Render multi-line text into one bitmap.

        Lines are spaced by ``line_height()`` and aligned horizontally within
        the widest line.
        """
        lines = self.render_lines(text)
        line_height = self.line_height()
        block = Bitmap(max(line.width for line in lines), line_height * len(lines))
        for i, line in enumerate(lines):
            if alignment == Alignment.CENTER:
                x = (block.width - line.width) // 2
            elif alignment == Alignment.RIGHT:
                x = block.width - line.width
            else:
                x = 0
            block.blit(line, x, i * line_height, opaque=False)
        return block

    def _render_line(self, line: str) -> Bitmap:
        left, top, right, bottom = self._font.getbbox(line)
        width, height = right - left, bottom - top
        if not line or width <= 0 or height <= 0:
            return Bitmap(0, 0)
        image = Image.new("1", (width, height), color=0)
        ImageDraw.Draw(image).text((-left, -top), line, font=self._font, fill=255)
        return Bitmap.from_image(image)
