"""
Rank images by their visual fingerprints.

Every comparator takes two VisualMetadata values and returns a signed score:
negative puts a before b. No pixels are read; everything works from the
stored fingerprint, falling back to the average color when a palette is
missing.
"""

import math
from functools import cmp_to_key
from itertools import combinations
from typing import Callable, Optional

import numpy as np

from color_space import (
    DEFAULT_GRAYSCALE_THRESHOLD, calculate_pixel_brightness, is_grayscale,
    perceptual_color_difference, rgb_to_hsl,
)
from visual_metadata import Color, Histogram, VisualMetadata

# Luma weights for combining per-channel histogram scores
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

SIGNIFICANT_BIN_RATIO = 0.005  # Bin share needed to count toward color range
GRAYSCALE_SPREAD = 8  # Max channel spread of a grayscale color
SIGNIFICANT_COLOR_WEIGHT = 0.2  # Rank weight above which a color decides grayscale-ness


# =============================================================================
# Fallback Helpers
# =============================================================================

def get_average_color(metadata: VisualMetadata) -> Color:
    """Average color, or black if missing."""
    return metadata.average_color or Color(0, 0, 0)


def colors_or_average(metadata: VisualMetadata, *fields: str) -> list[Color]:
    """
    First non-empty palette among fields, else the average color alone.

    This is the single fallback policy used by every comparator.
    """
    for name in fields:
        colors = getattr(metadata, name, None)
        if colors:
            return list(colors)
    return [get_average_color(metadata)]


def get_dominant_color(metadata: VisualMetadata) -> Color:
    return colors_or_average(metadata, 'dominant_colors')[0]


def get_representative_color(metadata: VisualMetadata) -> Color:
    return colors_or_average(metadata, 'representative_palette_colors')[0]


def get_histogram(metadata: VisualMetadata) -> Optional[Histogram]:
    """Histogram, or None if missing or computed from no pixels."""
    histogram = metadata.histogram
    if histogram is None or histogram.total_pixels == 0:
        return None
    return histogram


# =============================================================================
# Weighted Aggregates
# =============================================================================

def rank_weights(count: int) -> np.ndarray:
    """1, 1/2, 1/3, ... so earlier (more dominant) colors count more."""
    return 1 / np.arange(1, count + 1)


def get_weighted_brightness(colors: Optional[list]) -> float:
    if not colors:
        return 0.0
    weights = rank_weights(len(colors))
    brightness = np.array([calculate_pixel_brightness(*c) for c in colors])
    return float((brightness * weights).sum() / weights.sum())


def get_weighted_hue(colors: list, grayscale_threshold: float = DEFAULT_GRAYSCALE_THRESHOLD) -> float:
    """
    Rank- and saturation-weighted mean hue (0-1), skipping grayscale colors.

    Returns -1 when no chromatic color is present.
    """
    total_weight = 0.0
    weighted_hue = 0.0

    for i, color in enumerate(colors):
        if is_grayscale(color, grayscale_threshold):
            continue
        h, s, _ = rgb_to_hsl(color)
        effective_weight = s / (i + 1)
        weighted_hue += h * effective_weight
        total_weight += effective_weight

    if total_weight == 0:
        return -1
    return weighted_hue / total_weight


def get_weighted_saturation(colors: list) -> tuple[float, bool]:
    """
    Rank-weighted saturation and whether the image reads as grayscale.

    Colors with a channel spread under 8 contribute zero saturation. The
    image is grayscale unless a color with rank weight above 0.2 (one of the
    first four) is chromatic.
    """
    if not colors:
        return 0.0, True

    total_weight = 0.0
    weighted_sum = 0.0
    image_is_grayscale = True

    for i, color in enumerate(colors):
        weight = 1 / (i + 1)
        r, g, b = color
        max_diff = max(abs(r - g), abs(g - b), abs(r - b))
        color_is_grayscale = max_diff < GRAYSCALE_SPREAD

        if not color_is_grayscale and weight > SIGNIFICANT_COLOR_WEIGHT:
            image_is_grayscale = False

        saturation = 0.0 if color_is_grayscale else rgb_to_hsl(color)[1]
        weighted_sum += saturation * weight
        total_weight += weight

    return weighted_sum / total_weight, image_is_grayscale


def get_weighted_average(values: list, decay_factor: float = 1) -> float:
    """Average with exponentially decaying weights exp(-i * decay_factor)."""
    if len(values) == 0:
        return 0.0
    weights = np.exp(-np.arange(len(values)) * decay_factor)
    return float((np.asarray(values, dtype=np.float64) * weights).sum() / weights.sum())


def get_color_score(colors: list, saturation_weight: float = 1,
                    lightness_weight: float = 1, hue_weight: float = 1) -> float:
    """Combined HSL score (0-1) of a palette; hue is averaged on the circle."""
    if not colors:
        return 0.0

    hsl = [rgb_to_hsl(c) for c in colors]
    hues = np.array([h for h, _, _ in hsl])

    saturation_score = get_weighted_average([s for _, s, _ in hsl]) * saturation_weight
    lightness_score = get_weighted_average([l for _, _, l in hsl]) * lightness_weight

    x = get_weighted_average(np.cos(hues * 2 * math.pi))
    y = get_weighted_average(np.sin(hues * 2 * math.pi))
    hue_score = ((math.atan2(y, x) / (2 * math.pi) + 1) % 1) * hue_weight

    return (saturation_score + lightness_score + hue_score) / (
        saturation_weight + lightness_weight + hue_weight
    )


def get_channel_stats(values: list) -> dict:
    """Range, population variance and mean of a list of values."""
    if len(values) == 0:
        return {'range': 0.0, 'variance': 0.0, 'mean': 0.0}

    values = np.asarray(values, dtype=np.float64)
    return {
        'range': float(values.max() - values.min()),
        'variance': float(values.var()),
        'mean': float(values.mean()),
    }


def _luma_combine(r: float, g: float, b: float) -> float:
    wr, wg, wb = LUMA_WEIGHTS
    return r * wr + g * wg + b * wb


# =============================================================================
# Comparators
# =============================================================================

def compare_by_luminance(a: VisualMetadata, b: VisualMetadata) -> float:
    """Brighter images first."""
    a_brightness = get_weighted_brightness(colors_or_average(a, 'dominant_colors'))
    b_brightness = get_weighted_brightness(colors_or_average(b, 'dominant_colors'))
    return b_brightness - a_brightness


def compare_by_hue(a: VisualMetadata, b: VisualMetadata) -> float:
    """Ascending hue; grayscale images last, ordered by luminance."""
    a_hue = get_weighted_hue(colors_or_average(a, 'dominant_colors'))
    b_hue = get_weighted_hue(colors_or_average(b, 'dominant_colors'))

    if a_hue == -1 and b_hue == -1:
        return compare_by_luminance(a, b)
    if a_hue == -1:
        return 1
    if b_hue == -1:
        return -1

    return a_hue - b_hue


def compare_by_saturation(a: VisualMetadata, b: VisualMetadata) -> float:
    """More saturated images first; grayscale images last, ordered by luminance."""
    a_saturation, a_grayscale = get_weighted_saturation(colors_or_average(a, 'dominant_colors'))
    b_saturation, b_grayscale = get_weighted_saturation(colors_or_average(b, 'dominant_colors'))

    if a_grayscale and not b_grayscale:
        return 1
    if b_grayscale and not a_grayscale:
        return -1
    if a_grayscale and b_grayscale:
        return compare_by_luminance(a, b)

    return b_saturation - a_saturation


def histogram_range_score(histogram: Histogram) -> float:
    """Luma-weighted span between the darkest and brightest significant bins."""
    threshold = histogram.total_pixels * SIGNIFICANT_BIN_RATIO

    def channel_range(bins):
        significant = [b.value for b in bins if b.count >= threshold]
        if not significant:
            return 0
        return max(significant) - min(significant)

    return _luma_combine(*(channel_range(bins) for bins in (histogram.r, histogram.g, histogram.b)))


def palette_range_score(colors: list) -> float:
    """Spread of relative luminance across a palette."""
    if len(colors) <= 1:
        return 0.0
    brightness = [calculate_pixel_brightness(*c) for c in colors]
    return max(brightness) - min(brightness)


def compare_by_color_range(a: VisualMetadata, b: VisualMetadata) -> float:
    """Wider tonal range first."""
    a_hist = get_histogram(a)
    b_hist = get_histogram(b)

    if a_hist and b_hist:
        return histogram_range_score(b_hist) - histogram_range_score(a_hist)

    fields = ('distinct_palette_colors', 'dominant_colors')
    return (palette_range_score(colors_or_average(b, *fields))
            - palette_range_score(colors_or_average(a, *fields)))


def histogram_darkness_score(histogram: Histogram) -> float:
    """Share of pixels in the darkest quarter of bins, darkest bins weighted most."""
    dark_bins = max(1, len(histogram.r) // 4)

    def channel_score(bins):
        return sum(b.count * (1 - i / dark_bins) for i, b in enumerate(bins[:dark_bins]))

    return _luma_combine(
        channel_score(histogram.r), channel_score(histogram.g), channel_score(histogram.b)
    ) / histogram.total_pixels


def histogram_brightness_score(histogram: Histogram) -> float:
    """Share of pixels in the brightest quarter of bins, brightest bins weighted most."""
    start = (3 * len(histogram.r)) // 4

    def channel_score(bins):
        span = len(bins) - start
        return sum(b.count * ((i + 1) / span) for i, b in enumerate(bins[start:]))

    return _luma_combine(
        channel_score(histogram.r), channel_score(histogram.g), channel_score(histogram.b)
    ) / histogram.total_pixels


def _lightness_emphasis_score(colors: list) -> float:
    return get_color_score(colors, saturation_weight=0.5, lightness_weight=2, hue_weight=0.5)


def compare_by_dark_colors(a: VisualMetadata, b: VisualMetadata) -> float:
    """Images with more dark content first."""
    a_hist = get_histogram(a)
    b_hist = get_histogram(b)

    if a_hist and b_hist:
        return histogram_darkness_score(b_hist) - histogram_darkness_score(a_hist)

    # Lower lightness score means darker
    return (_lightness_emphasis_score(colors_or_average(a, 'dominant_colors'))
            - _lightness_emphasis_score(colors_or_average(b, 'dominant_colors')))


def compare_by_bright_colors(a: VisualMetadata, b: VisualMetadata) -> float:
    """Images with more bright content first."""
    a_hist = get_histogram(a)
    b_hist = get_histogram(b)

    if a_hist and b_hist:
        return histogram_brightness_score(b_hist) - histogram_brightness_score(a_hist)

    return (_lightness_emphasis_score(colors_or_average(b, 'dominant_colors'))
            - _lightness_emphasis_score(colors_or_average(a, 'dominant_colors')))


def diversity_score(colors: list) -> float:
    """Mean pairwise perceptual difference of a palette."""
    pairs = list(combinations(colors, 2))
    if not pairs:
        return 0.0
    return sum(perceptual_color_difference(c1, c2) for c1, c2 in pairs) / len(pairs)


def compare_by_color_diversity(a: VisualMetadata, b: VisualMetadata) -> float:
    """More diverse palettes first."""
    fields = ('distinct_palette_colors', 'representative_palette_colors')
    return (diversity_score(colors_or_average(b, *fields))
            - diversity_score(colors_or_average(a, *fields)))


def color_temperature(colors: list) -> float:
    """Rank-weighted warmth, (r - b) / 255, in [-1, 1]."""
    weights = rank_weights(len(colors))
    warmth = np.array([(c.r - c.b) / 255 for c in colors])
    return float((warmth * weights).sum() / weights.sum())


def compare_by_color_temperature(a: VisualMetadata, b: VisualMetadata) -> float:
    """Warmer images first."""
    return (color_temperature(colors_or_average(b, 'dominant_colors'))
            - color_temperature(colors_or_average(a, 'dominant_colors')))


# =============================================================================
# Sorting
# =============================================================================

SORT_MODES: dict[str, Callable[[VisualMetadata, VisualMetadata], float]] = {
    'luminance': compare_by_luminance,
    'hue': compare_by_hue,
    'saturation': compare_by_saturation,
    'color_range': compare_by_color_range,
    'dark_colors': compare_by_dark_colors,
    'bright_colors': compare_by_bright_colors,
    'diversity': compare_by_color_diversity,
    'temperature': compare_by_color_temperature,
}


def sort_metadata(items: list, mode: str, key: Optional[Callable] = None) -> list:
    """
    Sort items by one of the SORT_MODES comparators.

    Args:
        items: VisualMetadata values, or arbitrary items if key is given
        mode: Name in SORT_MODES
        key: Maps an item to its VisualMetadata

    Raises:
        ValueError: If mode is unknown
    """
    try:
        comparator = SORT_MODES[mode]
    except KeyError:
        raise ValueError(f"Unknown sort mode {mode!r}; expected one of {sorted(SORT_MODES)}") from None

    if key is None:
        return sorted(items, key=cmp_to_key(comparator))
    return sorted(items, key=cmp_to_key(lambda x, y: comparator(key(x), key(y))))
