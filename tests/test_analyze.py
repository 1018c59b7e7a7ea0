import json
import logging
import runpy
import sys
from pathlib import Path

import numpy as np
import pytest

from analyze import (
    AnalysisConfig, ContextUnavailableError, InvalidPixelBufferError, PixelBuffer,
    analyze_image_colors, analyze_pixels,
)
from visual_metadata import Color, ColorVariance, VisualMetadata

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)

ANALYZE_SCRIPT = Path(__file__).resolve().parents[1] / 'analyze.py'


# =============================================================================
# Pipeline
# =============================================================================

def test_two_by_two_scenario(make_rgba, rng):
    data = make_rgba([RED, RED, GREEN, BLUE])
    metadata = analyze_pixels(data, 2, 2, rng=rng)

    assert metadata.histogram.total_pixels == 4
    assert metadata.average_color == Color(128, 64, 64)
    assert metadata.dominant_colors[0] == Color(*RED)
    assert set(metadata.dominant_colors) == {Color(*RED), Color(*GREEN), Color(*BLUE)}

    low, high = metadata.brightness.brightness_range
    assert low == pytest.approx(0.0722)
    assert high == pytest.approx(0.7152)
    assert metadata.brightness.average_brightness == pytest.approx(
        (2 * 0.2126 + 0.7152 + 0.0722) / 4
    )

    # Every pixel has a zero channel, so no block contributes
    assert metadata.color_variance == ColorVariance(0.0, 0.0, 0.0)


def test_random_image_invariants(rng):
    data = rng.integers(0, 256, size=24 * 20 * 4, dtype=np.uint8).tobytes()
    metadata = analyze_pixels(data, 24, 20, rng=rng)

    assert len(metadata.dominant_colors) <= 5
    assert len(metadata.representative_palette_colors) <= 8
    assert len(metadata.distinct_palette_colors) <= 8

    histogram = metadata.histogram
    for bins in histogram.channels().values():
        assert sum(b.count for b in bins) == histogram.total_pixels == 480

    low, high = metadata.brightness.brightness_range
    assert 0 <= low <= metadata.brightness.average_brightness <= high <= 1

    for color in metadata.dominant_colors + metadata.representative_palette_colors:
        assert all(0 <= c <= 255 for c in color)


def test_seeded_analysis_is_reproducible():
    data = np.random.default_rng(5).integers(0, 256, size=16 * 16 * 4, dtype=np.uint8).tobytes()

    first = analyze_pixels(data, 16, 16, rng=np.random.default_rng(99))
    second = analyze_pixels(data, 16, 16, rng=np.random.default_rng(99))
    assert first == second


def test_single_color_image(make_rgba, rng):
    metadata = analyze_pixels(make_rgba([(30, 60, 90)] * 64 * 64), 64, 64, rng=rng)
    color = Color(30, 60, 90)

    assert metadata.average_color == color
    assert metadata.dominant_colors == (color,)
    assert metadata.representative_palette_colors == (color,)
    assert metadata.distinct_palette_colors == (color,)
    assert metadata.color_variance == ColorVariance(0.0, 0.0, 0.0)


def test_empty_image():
    metadata = analyze_pixels(b'', 0, 0)

    assert metadata.average_color == Color(0, 0, 0)
    assert metadata.dominant_colors == ()
    assert metadata.representative_palette_colors == ()
    assert metadata.histogram.total_pixels == 0
    assert metadata.brightness.average_brightness == 0
    assert metadata.color_variance == ColorVariance(0.0, 0.0, 0.0)


def test_buffer_length_mismatch(make_rgba):
    with pytest.raises(InvalidPixelBufferError, match="expected 16"):
        analyze_pixels(make_rgba([RED, RED, RED]), 2, 2)

    # Also catchable as a plain ValueError
    with pytest.raises(ValueError):
        analyze_pixels(b'\x00' * 4, -1, -4)


def test_numpy_input(rng):
    image = np.zeros((2, 3, 4), dtype=np.uint8)
    image[..., 0] = 200
    metadata = analyze_pixels(image, 3, 2, rng=rng)

    assert metadata.average_color == Color(200, 0, 0)
    assert metadata.histogram.total_pixels == 6


def test_out_of_range_values_are_skipped(caplog, rng):
    data = [300, 0, 0, 255, 10, 10, 10, 255]

    with caplog.at_level(logging.WARNING):
        metadata = analyze_pixels(data, 2, 1, rng=rng)

    assert metadata.histogram.total_pixels == 2
    assert metadata.histogram.skipped_pixels == 1
    # Mean is over all pixels, skipped ones contribute nothing
    assert metadata.average_color == Color(5, 5, 5)
    assert metadata.dominant_colors == (Color(10, 10, 10),)
    assert "Invalid histogram bin index" in caplog.text
    assert "Invalid color key" in caplog.text


def test_histogram_skips_match_dropped_pixels(rng):
    data = [12.5, 0, 0, 255, 10, 10, 10, 255]
    metadata = analyze_pixels(data, 2, 1, rng=rng)

    assert metadata.histogram.skipped_pixels == 1
    assert sum(b.count for b in metadata.histogram.r) == 1
    assert metadata.average_color == Color(5, 5, 5)
    assert metadata.dominant_colors == (Color(10, 10, 10),)

def test_custom_config(rng):
    data = rng.integers(0, 256, size=16 * 16 * 4, dtype=np.uint8).tobytes()
    config = AnalysisConfig(dominant_colors_count=2, palette_colors_count=3, histogram_bins=8)
    metadata = analyze_pixels(data, 16, 16, config=config, rng=rng)

    assert len(metadata.dominant_colors) == 2
    assert len(metadata.representative_palette_colors) == 3
    assert len(metadata.distinct_palette_colors) == 3
    assert len(metadata.histogram.r) == 8


@pytest.mark.parametrize("kwargs", [
    {'dominant_colors_count': 0},
    {'histogram_bins': 0},
    {'variance_percentile': 1.0},
    {'saturation_factor': -0.5},
])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        AnalysisConfig(**kwargs)


def test_metadata_survives_dict_roundtrip(make_rgba, rng):
    metadata = analyze_pixels(make_rgba([RED, (10, 20, 30), GREEN, (10, 20, 30)]), 2, 2, rng=rng)
    restored = VisualMetadata.from_dict(json.loads(json.dumps(metadata.to_dict())))

    assert restored == metadata


# =============================================================================
# Pixel Sources
# =============================================================================

class BrokenSource:
    width = 2
    height = 2

    def get_image_data(self):
        raise OSError("device lost")


class EmptySource:
    width = 2
    height = 2

    def get_image_data(self):
        return None


def test_pixel_buffer_is_a_source(make_rgba, rng):
    source = PixelBuffer(make_rgba([BLUE] * 4), 2, 2)
    metadata = analyze_image_colors(source, rng=rng)
    assert metadata.average_color == Color(*BLUE)


def test_source_without_pixel_access():
    with pytest.raises(ContextUnavailableError, match="get_image_data"):
        analyze_image_colors(object())


def test_source_read_failure_is_chained():
    with pytest.raises(ContextUnavailableError) as excinfo:
        analyze_image_colors(BrokenSource())
    assert isinstance(excinfo.value.__cause__, OSError)


def test_source_returning_nothing():
    with pytest.raises(ContextUnavailableError):
        analyze_image_colors(EmptySource())


# =============================================================================
# CLI
# =============================================================================

def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, 'argv', ['analyze.py', *args])
    runpy.run_path(str(ANALYZE_SCRIPT), run_name='__main__')


def test_cli_prints_json(tmp_path, monkeypatch, capsys, make_rgba):
    dump = tmp_path / 'pixels.rgba'
    dump.write_bytes(make_rgba([RED, RED, GREEN, BLUE]))

    run_cli(monkeypatch, '-i', str(dump), '--width', '2', '--height', '2', '--seed', '1')
    output = json.loads(capsys.readouterr().out)

    assert output['averageColor'] == {'r': 128, 'g': 64, 'b': 64}
    assert output['histogram']['totalPixels'] == 4


def test_cli_reports_bad_dimensions(tmp_path, monkeypatch, capsys, make_rgba):
    dump = tmp_path / 'pixels.rgba'
    dump.write_bytes(make_rgba([RED]))

    with pytest.raises(SystemExit) as excinfo:
        run_cli(monkeypatch, '-i', str(dump), '--width', '2', '--height', '2')

    assert excinfo.value.code == 1
    assert capsys.readouterr().err.startswith("Error")


def test_cli_writes_output_file(tmp_path, monkeypatch, capsys, make_rgba):
    dump = tmp_path / 'tile.rgba'
    dump.write_bytes(make_rgba([BLUE] * 4))

    run_cli(monkeypatch, '-i', str(dump), '--width', '2', '--height', '2', '-o')

    written = tmp_path / 'tile-fingerprint.json'
    assert str(written) in capsys.readouterr().out
    assert json.loads(written.read_text())['averageColor'] == {'r': 0, 'g': 0, 'b': 255}
