"""
Visual fingerprint data model.

VisualMetadata is the only artifact the analyzer exports. It is immutable and
holds no reference to the pixels it was computed from, so it can be stored
(via to_dict) and compared later without the source image.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Color:
    """An 8-bit sRGB color."""
    r: int
    g: int
    b: int

    def __iter__(self):
        return iter((self.r, self.g, self.b))

    @classmethod
    def from_rgb(cls, rgb) -> 'Color':
        r, g, b = rgb
        return cls(int(r), int(g), int(b))

    def to_dict(self) -> dict:
        return {'r': self.r, 'g': self.g, 'b': self.b}

    @classmethod
    def from_dict(cls, data: dict) -> 'Color':
        return cls(int(data['r']), int(data['g']), int(data['b']))


@dataclass(frozen=True)
class ColorVariance:
    """Per-channel variance (squared 8-bit units, not bounded to 255)."""
    r: float
    g: float
    b: float

    def __iter__(self):
        return iter((self.r, self.g, self.b))

    def to_dict(self) -> dict:
        return {'r': self.r, 'g': self.g, 'b': self.b}

    @classmethod
    def from_dict(cls, data: dict) -> 'ColorVariance':
        return cls(float(data['r']), float(data['g']), float(data['b']))


@dataclass(frozen=True)
class HistogramBin:
    value: int  # Lower bound of the bin range
    count: int


@dataclass(frozen=True)
class Histogram:
    """Per-channel frequency table with fixed, image-independent bins."""
    r: tuple  # HistogramBin per bin
    g: tuple
    b: tuple
    total_pixels: int
    skipped_pixels: int = 0  # Pixels with an out-of-range channel

    def channels(self) -> dict:
        return {'r': self.r, 'g': self.g, 'b': self.b}

    def to_dict(self) -> dict:
        def bins_to_list(bins):
            return [{'value': b.value, 'count': b.count} for b in bins]

        return {
            'r': bins_to_list(self.r),
            'g': bins_to_list(self.g),
            'b': bins_to_list(self.b),
            'totalPixels': self.total_pixels,
            'skippedPixels': self.skipped_pixels,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Histogram':
        def bins_from_list(items):
            return tuple(HistogramBin(int(i['value']), int(i['count'])) for i in items)

        return cls(
            r=bins_from_list(data['r']),
            g=bins_from_list(data['g']),
            b=bins_from_list(data['b']),
            total_pixels=int(data['totalPixels']),
            skipped_pixels=int(data.get('skippedPixels', 0)),
        )


@dataclass(frozen=True)
class Brightness:
    average_brightness: float  # 0-1 relative luminance
    brightness_range: tuple  # (min, max)

    def to_dict(self) -> dict:
        low, high = self.brightness_range
        return {
            'averageBrightness': self.average_brightness,
            'brightnessRange': {'min': low, 'max': high},
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Brightness':
        rng = data['brightnessRange']
        return cls(float(data['averageBrightness']), (float(rng['min']), float(rng['max'])))


@dataclass(frozen=True)
class VisualMetadata:
    """Output of the analyzer: the visual fingerprint of one image."""
    average_color: Optional[Color]
    dominant_colors: Optional[tuple] = None  # Color, most represented first
    representative_palette_colors: tuple = field(default_factory=tuple)
    distinct_palette_colors: tuple = field(default_factory=tuple)
    histogram: Optional[Histogram] = None
    brightness: Optional[Brightness] = None
    color_variance: Optional[ColorVariance] = None

    def to_dict(self) -> dict:
        """Serialize to the camelCase JSON shape used by stored fingerprints."""
        def colors(values):
            return None if values is None else [c.to_dict() for c in values]

        return {
            'averageColor': self.average_color.to_dict() if self.average_color else None,
            'dominantColors': colors(self.dominant_colors),
            'representativePaletteColors': colors(self.representative_palette_colors),
            'distinctPaletteColors': colors(self.distinct_palette_colors),
            'histogram': self.histogram.to_dict() if self.histogram else None,
            'brightness': self.brightness.to_dict() if self.brightness else None,
            'colorVariance': self.color_variance.to_dict() if self.color_variance else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'VisualMetadata':
        """Inverse of to_dict. Missing keys become None (or empty palettes)."""
        def colors(values):
            return None if values is None else tuple(Color.from_dict(c) for c in values)

        average = data.get('averageColor')
        histogram = data.get('histogram')
        brightness = data.get('brightness')
        variance = data.get('colorVariance')

        return cls(
            average_color=Color.from_dict(average) if average else None,
            dominant_colors=colors(data.get('dominantColors')),
            representative_palette_colors=colors(data.get('representativePaletteColors')) or (),
            distinct_palette_colors=colors(data.get('distinctPaletteColors')) or (),
            histogram=Histogram.from_dict(histogram) if histogram else None,
            brightness=Brightness.from_dict(brightness) if brightness else None,
            color_variance=ColorVariance.from_dict(variance) if variance else None,
        )
