"""
Pillow-backed image loading: turns a path, bytes or open image into an RGBA
pixel buffer for the extraction core.
"""

import io
import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from PIL import Image, UnidentifiedImageError

from errors import DecodeError

logger = logging.getLogger(__name__)

# Image size limits (security: prevent decompression bombs)
MAX_IMAGE_PIXELS = 50_000_000  # 50 megapixels
MAX_IMAGE_DIMENSION = 10_000  # 10k pixels per side

DEFAULT_MAX_SIZE = 1000  # Longer side after downscaling


@dataclass
class Canvas:
    """Decoded pixels ready for sampling."""
    width: int
    height: int
    pixels: np.ndarray  # flat row-major RGBA, length width * height * 4


class ImageSource(Protocol):
    """Collaborator that decodes images for the extraction core."""

    def load_image(self, source): ...

    def prepare_canvas(self, image) -> Canvas: ...


def scaled_size(width: int, height: int, max_size: int) -> tuple[int, int]:
    """Fit (width, height) inside max_size on the longer side, keeping aspect."""
    if width <= max_size and height <= max_size:
        return width, height
    ratio = min(max_size / width, max_size / height)
    return int(width * ratio), int(height * ratio)


def check_image_size(img: Image.Image) -> None:
    """Reject images over the dimension or pixel-count limits."""
    width, height = img.size
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise DecodeError(
            f"Image dimensions {width}x{height} exceed maximum "
            f"{MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION}",
            operation="load_image",
        )
    if width * height > MAX_IMAGE_PIXELS:
        raise DecodeError(
            f"Image has {width * height:,} pixels, exceeding maximum {MAX_IMAGE_PIXELS:,}",
            operation="load_image",
        )


class PillowImageSource:
    """Decode images with Pillow, downscaling large ones before sampling."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        self.max_size = max_size

    def load_image(self, source) -> Image.Image:
        """
        Open an image from a path, raw bytes, a binary file object or an
        already-open PIL image.

        Size limits are checked on the header before any pixel data is
        decoded.

        Raises:
            DecodeError: If the file is missing, not a valid image, or
                exceeds size limits
        """
        if isinstance(source, Image.Image):
            check_image_size(source)
            return source

        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        try:
            img = Image.open(source)
        except FileNotFoundError as e:
            raise DecodeError(f"Image not found: {source}",
                              operation="load_image") from e
        except (UnidentifiedImageError, OSError, ValueError,
                Image.DecompressionBombError) as e:
            raise DecodeError(f"Could not open image: {e}",
                              operation="load_image") from e

        try:
            check_image_size(img)
            img.load()
        except DecodeError:
            img.close()
            raise
        except (OSError, ValueError) as e:
            img.close()
            raise DecodeError(f"Could not decode image: {e}",
                              operation="load_image") from e
        return img

    def prepare_canvas(self, image: Image.Image) -> Canvas:
        """Convert to RGBA, downscale to max_size, and flatten the pixels."""
        width, height = scaled_size(image.width, image.height, self.max_size)
        img = image.convert('RGBA')
        if (width, height) != img.size:
            logger.debug("Downscaling %dx%d to %dx%d", img.width, img.height, width, height)
            img = img.resize((max(width, 1), max(height, 1)), Image.Resampling.BILINEAR)
            width, height = img.size

        pixels = np.asarray(img, dtype=np.uint8).reshape(-1)
        return Canvas(width=width, height=height, pixels=pixels)

