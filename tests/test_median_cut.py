import numpy as np

from median_cut import (
    ColorBox, compute_average_color, extract_color_palette, median_cut_quantize,
    split_box, split_channel,
)
from visual_metadata import Color


def box(rows):
    return ColorBox.from_points(np.array(rows, dtype=float))


def test_single_color_image_quantizes_to_that_color():
    points = np.array([[30, 60, 90, 64 * 64]], dtype=float)
    for palette_size in (1, 2, 8):
        assert median_cut_quantize(points, palette_size) == [Color(30, 60, 90)]


def test_palette_never_exceeds_requested_size(rng):
    points = np.column_stack([rng.integers(0, 256, size=(50, 3)), rng.integers(1, 20, size=50)])
    palette = median_cut_quantize(points, 6)
    assert len(palette) == 6


def test_one_point_boxes_are_not_split():
    points = np.array([[0, 0, 0, 1], [100, 0, 0, 1], [0, 200, 0, 1]], dtype=float)
    palette = median_cut_quantize(points, 10)
    assert sorted(palette, key=tuple) == [Color(0, 0, 0), Color(0, 200, 0), Color(100, 0, 0)]


def test_split_channel_prefers_green_then_blue_on_ties():
    assert split_channel(box([[0, 0, 0, 1], [10, 10, 0, 1]])) == 1
    assert split_channel(box([[0, 0, 0, 1], [10, 0, 10, 1]])) == 2
    assert split_channel(box([[0, 0, 0, 1], [20, 10, 5, 1]])) == 0


def test_split_at_weighted_median():
    left, right = split_box(box([[20, 0, 0, 10], [0, 0, 0, 1], [10, 0, 0, 1]]))

    assert left.points[:, 0].tolist() == [0, 10]
    assert right.points[:, 0].tolist() == [20]
    assert left.maxs.tolist() == [10, 0, 0]


def test_split_never_leaves_an_empty_half():
    left, right = split_box(box([[0, 0, 0, 10], [10, 0, 0, 1]]))
    assert len(left) == 1
    assert len(right) == 1


def test_compute_average_color_rounds_half_up():
    points = np.array([[0, 0, 0, 1], [255, 0, 0, 1]], dtype=float)
    assert compute_average_color(points) == Color(128, 0, 0)


def test_widest_box_is_split_first():
    points = np.array([
        [0, 0, 0, 1], [4, 0, 0, 1],
        [100, 0, 0, 1], [250, 0, 0, 3],
    ], dtype=float)
    # First split gives {0, 4} and {100, 250}; the wider {100, 250} goes next
    palette = median_cut_quantize(points, 3)
    assert palette == [Color(2, 0, 0), Color(100, 0, 0), Color(250, 0, 0)]


def test_saturation_boost_pulls_palette_toward_accent():
    points = np.array([[255, 0, 0, 1], [100, 100, 100, 1]], dtype=float)

    assert extract_color_palette(points, 1, saturation_factor=1.0) == [Color(203, 33, 33)]
    assert extract_color_palette(points, 1, saturation_factor=0) == [Color(178, 50, 50)]


def test_empty_input():
    assert median_cut_quantize(np.empty((0, 4)), 4) == []
    assert extract_color_palette(np.empty((0, 4)), 4) == []
