"""
Fixed-bin per-channel color histogram.

Bin boundaries depend only on the bin count, never on the image, so
histograms of different images can be compared bin by bin.
"""

import logging
from typing import Optional

import numpy as np

from color_space import valid_pixel_mask
from visual_metadata import Histogram, HistogramBin

logger = logging.getLogger(__name__)

HISTOGRAM_BINS = 32


def bin_values(bins: int = HISTOGRAM_BINS) -> np.ndarray:
    """Lower bound of every bin range."""
    return (np.arange(bins) * 256) // bins


def initialize_histogram(bins: int = HISTOGRAM_BINS) -> Histogram:
    """An empty histogram with zero counts."""
    def create_bins():
        return tuple(HistogramBin(int(v), 0) for v in bin_values(bins))

    return Histogram(r=create_bins(), g=create_bins(), b=create_bins(), total_pixels=0)


def bin_indices(rgb: np.ndarray, bins: int = HISTOGRAM_BINS) -> tuple[np.ndarray, np.ndarray]:
    """
    Map channel values to bin indices.

    Returns:
        (indices, valid) where indices has shape (n, 3) and valid marks pixels
        whose three channels are integers in 0-255. Invalid rows get index 0.
    """
    values = np.asarray(rgb, dtype=np.float64).reshape(-1, 3)
    valid = valid_pixel_mask(values)
    indices = np.floor(np.where(valid[:, None], values, 0) * bins / 256).astype(np.int64)
    return indices, valid


def build_histogram(rgb: np.ndarray, bins: int = HISTOGRAM_BINS,
                    log: Optional[logging.Logger] = None) -> Histogram:
    """
    Build the per-channel histogram in one pass over the pixels.

    Args:
        rgb: Array of shape (n, 3) with channel values
        bins: Number of bins per channel
        log: Receives a warning when pixels are skipped (module logger if None)

    Returns:
        Histogram whose total_pixels is n, including skipped pixels. A pixel
        with any channel that is not an integer in 0-255 is skipped on all
        three channels, matching the pixels the analyzer drops elsewhere.
    """
    log = log or logger
    rgb = np.asarray(rgb).reshape(-1, 3)
    total_pixels = len(rgb)

    indices, valid = bin_indices(rgb, bins)
    skipped = int(total_pixels - np.count_nonzero(valid))
    if skipped:
        log.warning('Invalid histogram bin index for %d of %d pixels', skipped, total_pixels)

    kept = indices[valid]
    values = bin_values(bins)

    channels = []
    for channel in range(3):
        counts = np.bincount(kept[:, channel], minlength=bins)
        channels.append(tuple(HistogramBin(int(v), int(c)) for v, c in zip(values, counts)))

    return Histogram(
        r=channels[0],
        g=channels[1],
        b=channels[2],
        total_pixels=total_pixels,
        skipped_pixels=skipped,
    )
