"""
Block-based color variance: a robust per-channel "detail" signal.
"""

from typing import Optional

import numpy as np

from visual_metadata import ColorVariance

BLOCK_SIZE = 16
VARIANCE_PERCENTILE = 0.75


def block_variances(rgb_image: np.ndarray, block_size: int = BLOCK_SIZE,
                    skip_zero_channel_pixels: bool = True,
                    valid_mask: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Population variance per channel for every block of the image.

    Args:
        rgb_image: Array of shape (h, w, 3)
        block_size: Block edge in pixels; edge blocks are truncated
        skip_zero_channel_pixels: Exclude pixels with a 0 in any channel
        valid_mask: Optional (h, w) mask of pixels that may be used

    Returns:
        Array of shape (n_blocks, 3). Blocks without usable pixels are left
        out.
    """
    image = np.asarray(rgb_image, dtype=np.float64)
    h, w = image.shape[:2]

    usable = np.ones((h, w), dtype=bool) if valid_mask is None else np.asarray(valid_mask, dtype=bool)
    if skip_zero_channel_pixels:
        usable = usable & np.all(image != 0, axis=2)

    variances = []
    for y in range(0, h, block_size):
        for x in range(0, w, block_size):
            block = image[y:y + block_size, x:x + block_size]
            pixels = block[usable[y:y + block_size, x:x + block_size]]
            if len(pixels) == 0:
                continue

            # Two-pass: mean first, then squared deviations from it
            mean = pixels.mean(axis=0)
            variances.append(((pixels - mean) ** 2).mean(axis=0))

    return np.array(variances, dtype=np.float64).reshape(-1, 3)


def calculate_color_variance(rgb_image: np.ndarray, block_size: int = BLOCK_SIZE,
                             percentile: float = VARIANCE_PERCENTILE,
                             skip_zero_channel_pixels: bool = True,
                             valid_mask: Optional[np.ndarray] = None) -> ColorVariance:
    """
    Per-channel block variance at a fixed percentile.

    Each channel's block variances are sorted ascending and the value at
    index floor(n * percentile) is reported, so a few noisy blocks cannot
    dominate the result. Returns zeros when no block has usable pixels.
    """
    variances = block_variances(rgb_image, block_size, skip_zero_channel_pixels, valid_mask)
    if len(variances) == 0:
        return ColorVariance(0.0, 0.0, 0.0)

    ordered = np.sort(variances, axis=0)
    index = min(int(np.floor(len(ordered) * percentile)), len(ordered) - 1)
    r, g, b = ordered[index]

    return ColorVariance(float(r), float(g), float(b))
