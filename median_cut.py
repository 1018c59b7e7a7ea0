"""
Median cut palette quantization over frequency-weighted colors.
"""

from dataclasses import dataclass

import numpy as np

from color_space import round_half_up
from extract_colors import boost_saturation
from visual_metadata import Color


@dataclass
class ColorBox:
    """A box in RGB space bounding a subset of weighted points."""
    points: np.ndarray  # [r, g, b, count] rows owned by this box
    mins: np.ndarray  # Per-channel minimum
    maxs: np.ndarray  # Per-channel maximum

    @classmethod
    def from_points(cls, points: np.ndarray) -> 'ColorBox':
        coords = points[:, :3]
        return cls(points=points, mins=coords.min(axis=0), maxs=coords.max(axis=0))

    @property
    def ranges(self) -> np.ndarray:
        return self.maxs - self.mins

    @property
    def largest_range(self) -> float:
        return float(self.ranges.max())

    def __len__(self) -> int:
        return len(self.points)


def split_channel(box: ColorBox) -> int:
    """Channel to split on; ties prefer g over r, and b over r."""
    r_range, g_range, b_range = box.ranges
    if g_range >= r_range and g_range >= b_range:
        return 1
    if b_range >= r_range and b_range >= g_range:
        return 2
    return 0


def split_box(box: ColorBox) -> tuple[ColorBox, ColorBox]:
    """
    Split a box at the weighted median of its longest channel.

    The cut index is the first point where the cumulative weight reaches half
    the box weight; index 0 is moved to 1 so neither half is empty.
    """
    channel = split_channel(box)
    order = np.argsort(box.points[:, channel], kind='stable')
    sorted_points = box.points[order]

    cumulative = np.cumsum(sorted_points[:, 3])
    median_index = int(np.searchsorted(cumulative, cumulative[-1] / 2, side='left'))
    median_index = min(max(median_index, 1), len(sorted_points) - 1)

    return (
        ColorBox.from_points(sorted_points[:median_index]),
        ColorBox.from_points(sorted_points[median_index:]),
    )


def compute_average_color(points: np.ndarray) -> Color:
    """Weighted average color of a set of points, rounded."""
    weights = points[:, 3]
    mean = (points[:, :3] * weights[:, None]).sum(axis=0) / weights.sum()
    return Color.from_rgb(round_half_up(mean))


def median_cut_quantize(points: np.ndarray, palette_size: int) -> list[Color]:
    """
    Quantize weighted colors into at most palette_size colors.

    Args:
        points: Array of shape (n, 4) with columns [r, g, b, count]
        palette_size: Number of colors desired

    Returns:
        One weighted-average Color per box, in box order (not sorted by
        weight).
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 4)
    if len(points) == 0:
        return []

    boxes = [ColorBox.from_points(points)]

    while len(boxes) < palette_size:
        # Widest box first; the earliest box wins ties
        box_index = max(range(len(boxes)), key=lambda i: (boxes[i].largest_range, -i))
        box = boxes[box_index]

        if len(box) <= 1:
            break

        boxes[box_index:box_index + 1] = split_box(box)

    return [compute_average_color(box.points) for box in boxes]


def extract_color_palette(points: np.ndarray, palette_size: int,
                          saturation_factor: float = 1.0) -> list[Color]:
    """
    Extract a representative palette from weighted colors.

    Counts are boosted by saturation before quantizing so accent colors keep
    their own box.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 4)
    if len(points) == 0:
        return []

    return median_cut_quantize(boost_saturation(points, saturation_factor), palette_size)
