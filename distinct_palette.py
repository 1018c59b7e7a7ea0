"""
Distinct palette selection: pick the most mutually different colors out of a
larger median-cut candidate palette.
"""

import numpy as np
from scipy.spatial.distance import cdist

from color_space import saturation_of
from median_cut import extract_color_palette
from visual_metadata import Color

DEFAULT_CANDIDATE_SIZE_FACTOR = 2


def select_distinct_colors(candidates: list[Color], distinct_count: int) -> list[Color]:
    """
    Greedy farthest-point selection.

    Seeds with the most saturated candidate, then repeatedly adds the
    candidate whose distance to its nearest selected color is largest.
    Ties keep the earlier candidate in saturation order.
    """
    candidates = list(candidates)
    if len(candidates) <= distinct_count:
        return candidates
    if distinct_count < 1:
        return []

    # Most saturated first; stable, so equal saturations keep palette order
    remaining = sorted(candidates, key=saturation_of, reverse=True)
    selected = [remaining.pop(0)]

    while len(selected) < distinct_count and remaining:
        distances = cdist(
            np.array([tuple(c) for c in remaining], dtype=np.float64),
            np.array([tuple(c) for c in selected], dtype=np.float64),
        )
        # argmax keeps the first maximum
        candidate_index = int(distances.min(axis=1).argmax())
        selected.append(remaining.pop(candidate_index))

    return selected


def extract_distinct_color_palette(points: np.ndarray, distinct_count: int,
                                   candidate_size_factor: int = DEFAULT_CANDIDATE_SIZE_FACTOR,
                                   saturation_factor: float = 1.0) -> list[Color]:
    """
    Extract a palette of distinct_count maximally different colors.

    Args:
        points: Weighted points [r, g, b, count]
        distinct_count: Number of colors desired
        candidate_size_factor: Candidate palette is distinct_count * factor
        saturation_factor: Saturation boost used for the candidate palette

    Returns:
        Selected colors in selection order.
    """
    candidate_count = distinct_count * candidate_size_factor
    candidates = extract_color_palette(points, candidate_count, saturation_factor)
    return select_distinct_colors(candidates, distinct_count)
