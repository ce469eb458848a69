"""
Pixel sampling: reduce an RGBA buffer to a set of RGB points for clustering.

Systematic sampling walks a regular grid so repeated runs over the same image
see exactly the same points. Random sampling is available for callers that
want run-to-run variation, and is reproducible for a given seed.
"""

import logging
import math
import numbers
from typing import Optional

import numpy as np

from errors import ConfigurationError

logger = logging.getLogger(__name__)

SAMPLING_METHODS = ('systematic', 'random')


def as_pixel_buffer(pixels) -> np.ndarray:
    """
    Flatten bytes, arrays or integer sequences into a uint8 RGBA buffer.

    Raises:
        ConfigurationError: If a channel value lies outside 0-255
    """
    if isinstance(pixels, (bytes, bytearray, memoryview)):
        return np.frombuffer(pixels, dtype=np.uint8)
    array = np.asarray(pixels).reshape(-1)
    if array.dtype != np.uint8 and array.size and (array.min() < 0 or array.max() > 255):
        raise ConfigurationError(
            f"pixel values must lie in 0-255, got range {array.min()}..{array.max()}",
            operation="sample_pixels", parameter="pixels",
        )
    return array.astype(np.uint8, copy=False)


def validate_geometry(width: int, height: int) -> None:
    if width < 0 or height < 0:
        raise ConfigurationError(
            f"image geometry must be non-negative, got {width}x{height}",
            operation="sample_pixels", parameter="width" if width < 0 else "height",
        )


def sample_step(sample_rate: float) -> int:
    """Grid stride for a sample rate: round(1 / rate), at least 1."""
    if not isinstance(sample_rate, numbers.Real) or math.isnan(sample_rate) or sample_rate <= 0:
        raise ConfigurationError(
            f"sample rate must be greater than 0, got {sample_rate!r}",
            operation="sample_pixels", parameter="sample_rate",
        )
    # Half-up: a rate of 0.4 gives stride 3
    return max(1, int(math.floor(1 / sample_rate + 0.5)))


def _gather(buffer: np.ndarray, offsets: np.ndarray) -> np.ndarray:
    # Drop offsets whose blue channel falls outside the buffer
    offsets = offsets[offsets + 2 < len(buffer)]
    if len(offsets) == 0:
        return np.empty((0, 3), dtype=np.uint8)
    return np.column_stack([buffer[offsets], buffer[offsets + 1], buffer[offsets + 2]])


def systematic_sample(pixels, width: int, height: int, sample_rate: float) -> np.ndarray:
    """
    Sample pixels on a regular grid.

    Args:
        pixels: Row-major RGBA buffer of length width * height * 4
        width: Image width in pixels
        height: Image height in pixels
        sample_rate: Fraction in (0, 1]; values >= 1 sample every pixel

    Returns:
        uint8 array of shape (n, 3) with the sampled RGB values in
        row-major order.
    """
    validate_geometry(width, height)
    step = sample_step(sample_rate)
    buffer = as_pixel_buffer(pixels)

    ys = np.arange(0, height, step, dtype=np.int64)
    xs = np.arange(0, width, step, dtype=np.int64)
    offsets = ((ys[:, None] * width + xs[None, :]) * 4).reshape(-1)

    samples = _gather(buffer, offsets)
    logger.debug("Systematic sampling: step=%d, %d of %d pixels",
                 step, len(samples), width * height)
    return samples


def random_sample(pixels, width: int, height: int, sample_rate: float,
                  seed: Optional[int] = None) -> np.ndarray:
    """Bernoulli sample: keep each pixel independently with probability sample_rate."""
    validate_geometry(width, height)
    sample_step(sample_rate)
    buffer = as_pixel_buffer(pixels)

    rng = np.random.default_rng(seed)
    keep = rng.random(width * height) < min(sample_rate, 1.0)
    offsets = np.flatnonzero(keep).astype(np.int64) * 4

    samples = _gather(buffer, offsets)
    logger.debug("Random sampling: rate=%.3f seed=%s, %d of %d pixels",
                 sample_rate, seed, len(samples), width * height)
    return samples


def sample_pixels(pixels, width: int, height: int, sample_rate: float,
                  method: str = 'systematic', seed: Optional[int] = None) -> np.ndarray:
    """Dispatch to the requested sampling method."""
    if method == 'systematic':
        return systematic_sample(pixels, width, height, sample_rate)
    if method == 'random':
        return random_sample(pixels, width, height, sample_rate, seed=seed)
    raise ConfigurationError(
        f"unknown sampling method {method!r}, expected one of {SAMPLING_METHODS}",
        operation="sample_pixels", parameter="sampling",
    )
