"""
Color conversions and perceptual measures used by the extraction pipeline.
"""

import numpy as np
from skimage.color import deltaE_ciede2000, rgb2lab


def relative_luminance(rgb: tuple) -> float:
    """WCAG relative luminance of an (r, g, b) triple in 0-255."""
    def channel(c):
        c = c / 255.0
        return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4

    r, g, b = rgb
    return 0.2126 * channel(r) + 0.7152 * channel(g) + 0.0722 * channel(b)


def delta_e(rgb: tuple, others: np.ndarray) -> np.ndarray:
    """
    CIEDE2000 distance from one RGB color to each row of `others`.

    Args:
        rgb: A single (r, g, b) triple
        others: Array of shape (n, 3) of RGB colors

    Returns:
        Array of shape (n,) with perceptual distances.
    """
    others = np.asarray(others, dtype=np.float64).reshape(-1, 3)
    if len(others) == 0:
        return np.empty(0)
    lab = rgb2lab(np.asarray(rgb, dtype=np.float64).reshape(1, 1, 3) / 255.0).reshape(-1, 3)
    others_lab = rgb2lab(others.reshape(-1, 1, 3) / 255.0).reshape(-1, 3)
    return deltaE_ciede2000(
        np.repeat(lab, len(others_lab), axis=0), others_lab
    ).reshape(-1)


def round_channels(centroid: np.ndarray) -> tuple:
    """Round a real-valued centroid half-up to integer channels in 0-255."""
    rounded = np.clip(np.floor(np.asarray(centroid, dtype=np.float64) + 0.5), 0, 255)
    return tuple(int(c) for c in rounded)


def format_rgb(rgb: tuple) -> str:
    return f"rgb({rgb[0]},{rgb[1]},{rgb[2]})"


def rgb_to_hex(rgb: tuple) -> str:
    return f"#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}"


def parse_color(color: str) -> tuple:
    """Parse an "rgb(r,g,b)" or "#rrggbb" string back to an (r, g, b) tuple."""
    text = color.strip().lower()
    if text.startswith('#') and len(text) == 7:
        return tuple(int(text[i:i + 2], 16) for i in (1, 3, 5))
    if text.startswith('rgb(') and text.endswith(')'):
        parts = [p.strip() for p in text[4:-1].split(',')]
        if len(parts) == 3:
            return tuple(int(p) for p in parts)
    raise ValueError(f"Unrecognized color string: {color!r}")
