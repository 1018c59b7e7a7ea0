"""
Color space math shared by the analyzer and the comparators.

Array functions take (n, 3) RGB arrays in 0-255; scalar helpers take a Color
(or any r, g, b triple) and return plain floats.
"""

import math

import numpy as np


# =============================================================================
# Constants
# =============================================================================

# BT.709 relative luminance weights
LUMINANCE_WEIGHTS = np.array([0.2126, 0.7152, 0.0722])

# Lab reference white (D65), scaled to Y = 100
XN, YN, ZN = 95.047, 100.0, 108.883
LAB_EPSILON = 0.008856

# Perceptual difference weights
WEIGHT_LIGHTNESS = 1.0
WEIGHT_CHROMA = 1.2
WEIGHT_HUE = 0.8

DEFAULT_GRAYSCALE_THRESHOLD = 0.05


# =============================================================================
# Rounding / Validity
# =============================================================================

def round_half_up(values):
    """Round halves away from zero for positive values (JavaScript Math.round)."""
    rounded = np.floor(np.asarray(values, dtype=np.float64) + 0.5)
    if rounded.ndim == 0:
        return int(rounded)
    return rounded.astype(np.int64)


def valid_pixel_mask(rgb: np.ndarray) -> np.ndarray:
    """Rows whose three channels are all integers in 0-255."""
    pixels = np.asarray(rgb, dtype=np.float64).reshape(-1, 3)
    finite = np.isfinite(pixels)
    safe = np.where(finite, pixels, -1)
    return np.all(finite & (safe >= 0) & (safe <= 255) & (safe == np.floor(safe)), axis=1)


def _rgb(color) -> np.ndarray:
    r, g, b = color
    return np.array([r, g, b], dtype=np.float64)


# =============================================================================
# Luminance
# =============================================================================

def srgb_to_linear(values: np.ndarray) -> np.ndarray:
    """WCAG sRGB transfer function on 0-1 values (0.03928 threshold)."""
    values = np.asarray(values, dtype=np.float64)
    return np.where(values <= 0.03928, values / 12.92, ((values + 0.055) / 1.055) ** 2.4)


def relative_luminance(rgb: np.ndarray) -> np.ndarray:
    """Relative luminance (0-1) for an (n, 3) RGB array."""
    rgb_linear = srgb_to_linear(np.asarray(rgb, dtype=np.float64) / 255.0)
    return rgb_linear @ LUMINANCE_WEIGHTS


def calculate_pixel_brightness(r: float, g: float, b: float) -> float:
    """Perceived brightness of a single pixel as relative luminance."""
    return float(relative_luminance(np.array([[r, g, b]]))[0])


# =============================================================================
# HSL / Saturation
# =============================================================================

def rgb_to_hsl(color) -> tuple[float, float, float]:
    """Convert an RGB color to (h, s, l), each in 0-1. Hue is 0 for grays."""
    r, g, b = (c / 255 for c in color)

    max_c = max(r, g, b)
    min_c = min(r, g, b)
    h = 0.0
    s = 0.0
    l = (max_c + min_c) / 2

    if max_c != min_c:
        d = max_c - min_c
        s = d / (2 - max_c - min_c) if l > 0.5 else d / (max_c + min_c)

        if max_c == r:
            h = (g - b) / d + (6 if g < b else 0)
        elif max_c == g:
            h = (b - r) / d + 2
        else:
            h = (r - g) / d + 4
        h /= 6

    return h, s, l


def saturation_array(rgb: np.ndarray) -> np.ndarray:
    """HSV-style saturation (max - min) / max per row, 0 where max is 0."""
    rgb = np.asarray(rgb, dtype=np.float64)
    max_c = rgb.max(axis=1)
    min_c = rgb.min(axis=1)
    out = np.zeros_like(max_c)
    nonzero = max_c > 0
    out[nonzero] = (max_c[nonzero] - min_c[nonzero]) / max_c[nonzero]
    return out


def saturation_of(color) -> float:
    """Saturation (0-1) of a single color."""
    return float(saturation_array(_rgb(color).reshape(1, 3))[0])


def is_grayscale(color, threshold: float = DEFAULT_GRAYSCALE_THRESHOLD) -> bool:
    """True if every pairwise channel difference is below threshold * 255."""
    r, g, b = color
    limit = threshold * 255
    return abs(r - g) < limit and abs(g - b) < limit and abs(r - b) < limit


def sort_colors_by_hsl(colors: list) -> list:
    """Sort by hue ascending, then saturation and lightness descending."""
    def key(color):
        h, s, l = rgb_to_hsl(color)
        return (h, -s, -l)

    return sorted(colors, key=key)


# =============================================================================
# Lab / Perceptual Difference
# =============================================================================

def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert RGB array (0-255) to LAB color space."""
    rgb_norm = np.asarray(rgb, dtype=np.float64).reshape(-1, 3) / 255.0

    # Apply gamma correction
    mask = rgb_norm > 0.04045
    rgb_linear = np.where(mask, ((rgb_norm + 0.055) / 1.055) ** 2.4, rgb_norm / 12.92)

    # RGB to XYZ matrix
    r, g, b = rgb_linear[:, 0], rgb_linear[:, 1], rgb_linear[:, 2]
    x = (r * 0.4124 + g * 0.3576 + b * 0.1805) * 100
    y = (r * 0.2126 + g * 0.7152 + b * 0.0722) * 100
    z = (r * 0.0193 + g * 0.1192 + b * 0.9505) * 100

    x, y, z = x / XN, y / YN, z / ZN

    fx = np.where(x > LAB_EPSILON, np.cbrt(x), 7.787 * x + 16 / 116)
    fy = np.where(y > LAB_EPSILON, np.cbrt(y), 7.787 * y + 16 / 116)
    fz = np.where(z > LAB_EPSILON, np.cbrt(z), 7.787 * z + 16 / 116)

    L = 116 * fy - 16
    a = 500 * (fx - fy)
    b_val = 200 * (fy - fz)

    return np.column_stack([L, a, b_val])


def color_to_lab(color) -> tuple[float, float, float]:
    """Convert a single color to an (L, a, b) tuple."""
    L, a, b = rgb_to_lab(_rgb(color))[0]
    return float(L), float(a), float(b)


def perceptual_color_difference(c1, c2) -> float:
    """
    Cheap perceptual distance between two colors.

    Not a true Delta E: combines the Lab lightness delta, the squared chroma
    delta and an |da * db| hue approximation with fixed weights.
    """
    lab = rgb_to_lab(np.array([_rgb(c1), _rgb(c2)]))
    dL, dA, dB = lab[0] - lab[1]

    return math.sqrt(
        WEIGHT_LIGHTNESS * dL * dL
        + WEIGHT_CHROMA * (dA * dA + dB * dB)
        + WEIGHT_HUE * abs(dA * dB)
    )
