#!/usr/bin/env python3
"""
Visual fingerprint pipeline.

Turns a decoded RGBA pixel buffer into a VisualMetadata fingerprint: average
color, dominant colors, representative and distinct palettes, histogram,
brightness and block color variance.
Stages: Pixel Pass → Clustering → Quantization → Variance
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from block_variance import BLOCK_SIZE, VARIANCE_PERCENTILE, calculate_color_variance
from color_histogram import HISTOGRAM_BINS, build_histogram
from color_space import relative_luminance, round_half_up, valid_pixel_mask
from distinct_palette import DEFAULT_CANDIDATE_SIZE_FACTOR, extract_distinct_color_palette
from extract_colors import (
    DEFAULT_MAX_ITERATIONS, extract_dominant_colors, extract_weighted_points,
)
from median_cut import extract_color_palette
from visual_metadata import Brightness, Color, VisualMetadata

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DOMINANT_COLORS_COUNT = 5  # k for weighted k-means
PALETTE_COLORS_COUNT = 8  # Representative and distinct palette size
SATURATION_FACTOR = 1.0  # Weight boost for saturated colors in palettes
BYTES_PER_PIXEL = 4  # RGBA


# =============================================================================
# Errors
# =============================================================================

class ColorAnalysisError(Exception):
    """Base class for analysis failures."""


class ContextUnavailableError(ColorAnalysisError):
    """The pixel source could not be read."""


class InvalidPixelBufferError(ColorAnalysisError, ValueError):
    """The pixel buffer does not match its declared dimensions."""


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    """Tunable parameters of the pipeline."""
    histogram_bins: int = HISTOGRAM_BINS
    dominant_colors_count: int = DOMINANT_COLORS_COUNT
    palette_colors_count: int = PALETTE_COLORS_COUNT
    candidate_size_factor: int = DEFAULT_CANDIDATE_SIZE_FACTOR
    saturation_factor: float = SATURATION_FACTOR
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    variance_block_size: int = BLOCK_SIZE
    variance_percentile: float = VARIANCE_PERCENTILE
    skip_zero_channel_pixels: bool = True

    def __post_init__(self):
        for name in ('histogram_bins', 'dominant_colors_count', 'palette_colors_count',
                     'candidate_size_factor', 'max_iterations', 'variance_block_size'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")
        if not 0 <= self.variance_percentile < 1:
            raise ValueError(f"variance_percentile must be in [0, 1), got {self.variance_percentile}")
        if self.saturation_factor < 0:
            raise ValueError(f"saturation_factor must be >= 0, got {self.saturation_factor}")


# =============================================================================
# Pixel Source
# =============================================================================

@dataclass(frozen=True)
class PixelBuffer:
    """A decoded RGBA image, 4 values per pixel, row-major."""
    data: object  # bytes-like, numpy array or sequence of ints
    width: int
    height: int

    def get_image_data(self):
        return self.data

    def rgba(self) -> np.ndarray:
        """
        Pixels as an array of shape (height, width, 4).

        Raises:
            InvalidPixelBufferError: If dimensions are negative or the buffer
                length is not width * height * 4
        """
        if self.width < 0 or self.height < 0:
            raise InvalidPixelBufferError(
                f"Invalid dimensions {self.width}x{self.height}"
            )

        if isinstance(self.data, (bytes, bytearray, memoryview)):
            pixels = np.frombuffer(self.data, dtype=np.uint8)
        else:
            pixels = np.asarray(self.data)

        expected = self.width * self.height * BYTES_PER_PIXEL
        if pixels.size != expected:
            raise InvalidPixelBufferError(
                f"Pixel buffer has {pixels.size} values, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )

        return pixels.reshape(self.height, self.width, BYTES_PER_PIXEL)


# =============================================================================
# Analysis
# =============================================================================

def measure_brightness(rgb: np.ndarray, total_pixels: int) -> Brightness:
    """Average and range of relative luminance over the given pixels."""
    if len(rgb) == 0 or total_pixels == 0:
        return Brightness(0.0, (0.0, 0.0))

    luminance = relative_luminance(rgb)
    return Brightness(
        average_brightness=float(luminance.sum() / total_pixels),
        brightness_range=(float(luminance.min()), float(luminance.max())),
    )


def average_color(rgb: np.ndarray, total_pixels: int) -> Color:
    """Per-channel mean over total_pixels, rounded."""
    if total_pixels == 0:
        return Color(0, 0, 0)
    totals = np.asarray(rgb, dtype=np.float64).sum(axis=0)
    return Color.from_rgb(round_half_up(totals / total_pixels))


def analyze_pixels(data, width: int, height: int,
                   config: Optional[AnalysisConfig] = None,
                   rng: Optional[np.random.Generator] = None,
                   log: Optional[logging.Logger] = None) -> VisualMetadata:
    """
    Analyze an RGBA pixel buffer.

    Args:
        data: RGBA values, row-major
        width: Image width in pixels
        height: Image height in pixels
        config: Pipeline parameters (defaults if None)
        rng: Random source for k-means seeding (fresh default_rng() if None)
        log: Logger for warnings and the debug summary (module logger if None)

    Returns:
        VisualMetadata for the image. An empty image yields zero values and
        empty palettes.

    Raises:
        InvalidPixelBufferError: If the buffer does not match width x height
    """
    config = config or AnalysisConfig()
    log = log or logger
    if rng is None:
        rng = np.random.default_rng()

    image = PixelBuffer(data, width, height).rgba()[..., :3]
    rgb = image.reshape(-1, 3)
    total_pixels = len(rgb)

    # Stage 1: pixel pass
    histogram = build_histogram(rgb, config.histogram_bins, log=log)
    valid = valid_pixel_mask(rgb)
    valid_rgb = rgb[valid].astype(np.float64)
    points = extract_weighted_points(rgb, log=log)

    # Stage 2: dominant colors
    dominant_colors = extract_dominant_colors(
        points, config.dominant_colors_count,
        max_iterations=config.max_iterations, rng=rng, log=log,
    )

    # Stage 3: palettes (both from the same frequency table)
    representative = extract_color_palette(
        points, config.palette_colors_count, config.saturation_factor
    )
    distinct = extract_distinct_color_palette(
        points, config.palette_colors_count,
        candidate_size_factor=config.candidate_size_factor,
        saturation_factor=config.saturation_factor,
    )

    # Stage 4: block variance
    color_variance = calculate_color_variance(
        image,
        block_size=config.variance_block_size,
        percentile=config.variance_percentile,
        skip_zero_channel_pixels=config.skip_zero_channel_pixels,
        valid_mask=valid.reshape(height, width),
    )

    metadata = VisualMetadata(
        average_color=average_color(valid_rgb, total_pixels),
        dominant_colors=tuple(dominant_colors),
        representative_palette_colors=tuple(representative),
        distinct_palette_colors=tuple(distinct),
        histogram=histogram,
        brightness=measure_brightness(valid_rgb, total_pixels),
        color_variance=color_variance,
    )

    log.debug(
        'Image color analysis complete: %dx%d, %d distinct colors, average %s, '
        '%d dominant colors, brightness %.3f, variance %s',
        width, height, len(points), tuple(metadata.average_color),
        len(dominant_colors), metadata.brightness.average_brightness,
        tuple(round(v, 2) for v in color_variance),
    )

    return metadata


def analyze_image_colors(source, config: Optional[AnalysisConfig] = None,
                         rng: Optional[np.random.Generator] = None,
                         log: Optional[logging.Logger] = None) -> VisualMetadata:
    """
    Analyze a pixel source exposing width, height and get_image_data().

    Raises:
        ContextUnavailableError: If the source cannot provide pixel data
    """
    get_image_data = getattr(source, 'get_image_data', None)
    if get_image_data is None:
        raise ContextUnavailableError(f"{type(source).__name__} has no get_image_data()")

    try:
        data = get_image_data()
    except OSError as e:
        raise ContextUnavailableError(f"Failed to read pixel data: {e}") from e

    if data is None:
        raise ContextUnavailableError('Failed to get pixel data')

    return analyze_pixels(data, source.width, source.height, config=config, rng=rng, log=log)


# =============================================================================
# CLI
# =============================================================================

if __name__ == '__main__':
    import argparse
    import json
    import sys
    from pathlib import Path

    parser = argparse.ArgumentParser(
        description='Fingerprint a raw RGBA pixel dump and print it as JSON.'
    )
    parser.add_argument('--input', '-i', required=True, help='Path to raw RGBA bytes')
    parser.add_argument('--width', type=int, required=True, help='Image width in pixels')
    parser.add_argument('--height', type=int, required=True, help='Image height in pixels')
    parser.add_argument('--seed', type=int, default=None, help='Seed for k-means')
    parser.add_argument('--dominant', type=int, default=DOMINANT_COLORS_COUNT,
                        help='Number of dominant colors')
    parser.add_argument('--palette', type=int, default=PALETTE_COLORS_COUNT,
                        help='Palette size')
    parser.add_argument(
        '--output', '-o',
        nargs='?',
        const=True,
        default=None,
        help='Write JSON to a file. Optionally specify path, otherwise auto-names from input.'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        config = AnalysisConfig(dominant_colors_count=args.dominant,
                                palette_colors_count=args.palette)
        raw = Path(args.input).read_bytes()
        metadata = analyze_pixels(raw, args.width, args.height, config=config,
                                  rng=np.random.default_rng(args.seed))
    except FileNotFoundError:
        print(f"Error: Pixel dump not found: {args.input}", file=sys.stderr)
        sys.exit(1)
    except (ColorAnalysisError, ValueError) as e:
        print(f"Error analyzing pixels: {e}", file=sys.stderr)
        sys.exit(1)

    output = json.dumps(metadata.to_dict(), indent=2)

    if args.output:
        input_path = Path(args.input)
        if args.output is True:
            output_path = input_path.with_name(f"{input_path.stem}-fingerprint.json")
        else:
            output_path = Path(args.output)
        output_path.write_text(output)
        print(f"Fingerprint written to: {output_path}")
    else:
        print(output)
