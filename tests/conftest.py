import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def make_rgba():
    """Build a row-major RGBA byte buffer from a list of (r, g, b) pixels."""
    def build(pixels, alpha=255):
        data = bytearray()
        for r, g, b in pixels:
            data.extend((r, g, b, alpha))
        return bytes(data)

    return build
