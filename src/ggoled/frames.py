"""Image and GIF decoding into 1-bit frames."""

import io
from pathlib import Path

from PIL import Image, ImageSequence

from ggoled.bitmap import Bitmap, Frame
from ggoled.exceptions import ImageError

# Grayscale level at or above which a pixel is on
DEFAULT_THRESHOLD = 100

# Minimum 16ms (~60fps) to prevent CPU spike on malformed GIFs
MIN_FRAME_DELAY = 0.016


def bitmap_from_image(image: Image.Image, threshold: int = DEFAULT_THRESHOLD) -> Bitmap:
    """Threshold an image into a bitmap.

    A pixel is on when the mean of its red, green and blue channels is at
    least ``threshold``. Alpha is ignored.
    """
    rgb = image.convert("RGB").tobytes()
    return Bitmap.from_pixels(
        image.width,
        image.height,
        ((rgb[i] + rgb[i + 1] + rgb[i + 2]) // 3 >= threshold for i in range(0, len(rgb), 3)),
    )


def bitmap_from_bytes(data: bytes, threshold: int = DEFAULT_THRESHOLD) -> Bitmap:
    """Decode an in-memory image file into a bitmap.

    Raises:
        ImageError: If the data is not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as im:
            return bitmap_from_image(im, threshold)
    except Image.DecompressionBombError as e:
        msg = "Image too large (potential decompression bomb)"
        raise ImageError(msg) from e
    except OSError as e:
        msg = "Failed to decode image data"
        raise ImageError(msg) from e


def decode_frames(image_path: Path | str, threshold: int = DEFAULT_THRESHOLD) -> list[Frame]:
    """Load an image or GIF as a list of frames.

    GIF frames carry their own display delay; other images yield a single
    frame with no delay.

    Args:
        image_path: Path to the image or GIF file.
        threshold: Grayscale threshold for converting to 1-bit.

    Raises:
        ImageError: If the image cannot be opened or processed.
    """
    try:
        with Image.open(image_path) as im:
            if im.format != "GIF":
                return [Frame(bitmap_from_image(im, threshold))]

            frames: list[Frame] = []
            for frame in ImageSequence.Iterator(im):
                duration = frame.info.get("duration", 0) / 1000.0
                frames.append(
                    Frame(bitmap_from_image(frame, threshold), max(duration, MIN_FRAME_DELAY))
                )
            return frames
    except FileNotFoundError as e:
        msg = f"Image file not found: {image_path}"
        raise ImageError(msg) from e
    except Image.DecompressionBombError as e:
        msg = f"Image too large (potential decompression bomb): {image_path}"
        raise ImageError(msg) from e
    except OSError as e:
        msg = f"Failed to open image: {image_path}"
        raise ImageError(msg) from e
