"""Tests for apply_matte and composite_over_background."""

import numpy as np
import pytest

from flagmatte.compositing import apply_matte, composite_over_background
from flagmatte.errors import DimensionMismatchError
from flagmatte.raster import CompositeImage, Mask, MattedImage, RasterImage


def _random_image(rng, width, height):
    return RasterImage(rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))


def _random_mask(rng, width, height):
    return Mask(rng.integers(0, 256, size=(height, width), dtype=np.uint8))


@pytest.mark.parametrize("width,height", [(1, 1), (7, 3), (64, 48)])
def test_apply_matte_copies_rgb_and_sets_alpha(width, height):
    rng = np.random.default_rng(width * 100 + height)
    image = _random_image(rng, width, height)
    mask = _random_mask(rng, width, height)

    matted = apply_matte(image, mask)

    assert isinstance(matted, MattedImage)
    assert np.array_equal(matted.alpha, mask.intensity)
    assert np.array_equal(matted.rgb, image.rgb)


def test_apply_matte_does_not_touch_input():
    rng = np.random.default_rng(1)
    image = _random_image(rng, 5, 5)
    before = np.array(image.pixels)

    apply_matte(image, Mask(np.zeros((5, 5), dtype=np.uint8)))

    assert np.array_equal(image.pixels, before)


def test_apply_matte_is_idempotent():
    rng = np.random.default_rng(2)
    image = _random_image(rng, 6, 4)
    mask = _random_mask(rng, 6, 4)

    once = apply_matte(image, mask)
    twice = apply_matte(once, mask)

    assert np.array_equal(once.pixels, twice.pixels)


def test_apply_matte_rejects_size_mismatch(solid):
    image = RasterImage(solid(4, 4, (0, 0, 0, 255)))
    with pytest.raises(DimensionMismatchError):
        apply_matte(image, Mask(np.zeros((4, 5), dtype=np.uint8)))


def test_transparent_foreground_yields_background(solid):
    rng = np.random.default_rng(3)
    image = _random_image(rng, 20, 10)
    matted = apply_matte(image, Mask(np.zeros((10, 20), dtype=np.uint8)))
    background = RasterImage(solid(5, 5, (0, 128, 255, 255))).resample(40, 40)

    composite = composite_over_background(matted, background)

    assert isinstance(composite, CompositeImage)
    assert composite.size == (20, 10)
    assert np.array_equal(composite.pixels, background.resample(20, 10).pixels)


def test_opaque_foreground_yields_foreground(solid):
    rng = np.random.default_rng(4)
    image = _random_image(rng, 12, 9)
    matted = apply_matte(image, Mask(np.full((9, 12), 255, dtype=np.uint8)))
    background = RasterImage(rng.integers(0, 256, size=(30, 30, 4), dtype=np.uint8))
    background = apply_matte(background, Mask(np.full((30, 30), 255, dtype=np.uint8)))

    composite = composite_over_background(matted, background)

    assert np.array_equal(composite.rgb, image.rgb)
    assert np.all(composite.alpha == 255)


def test_red_square_over_any_background_is_unchanged(solid):
    red = RasterImage(solid(100, 100, (255, 0, 0, 255)))
    matted = apply_matte(red, Mask(np.full((100, 100), 255, dtype=np.uint8)))

    for color in [(0, 0, 0, 255), (0, 255, 0, 255), (12, 34, 56, 255)]:
        composite = composite_over_background(matted, RasterImage(solid(3, 2, color)))
        assert np.array_equal(composite.pixels, red.pixels)


def test_half_alpha_pixel_blends_evenly(solid):
    image = RasterImage(solid(10, 10, (200, 0, 0, 255)))
    intensity = np.full((10, 10), 255, dtype=np.uint8)
    intensity[0, 0] = 128
    matted = apply_matte(image, Mask(intensity))
    background = RasterImage(solid(10, 10, (0, 0, 200, 255)))

    assert matted.get_pixel(0, 0)[3] == 128

    composite = composite_over_background(matted, background)
    r, g, b, a = composite.get_pixel(0, 0)
    assert abs(r - 100) <= 1
    assert g == 0
    assert abs(b - 100) <= 1
    assert a == 255
    assert composite.get_pixel(5, 5) == (200, 0, 0, 255)


def test_explicit_target_size_stretches_both_layers(solid):
    matted = MattedImage(solid(4, 4, (255, 255, 255, 0)))
    background = RasterImage(solid(2, 8, (9, 8, 7, 255)))

    composite = composite_over_background(matted, background, 16, 6)

    assert composite.size == (16, 6)
    assert np.all(composite.pixels == (9, 8, 7, 255))


def test_transparent_background_keeps_foreground_alpha(solid):
    matted = MattedImage(solid(3, 3, (50, 60, 70, 64)))
    background = RasterImage(solid(3, 3, (255, 255, 255, 0)))

    composite = composite_over_background(matted, background)

    assert composite.get_pixel(1, 1) == (50, 60, 70, 64)


def test_rejects_non_positive_target(solid):
    matted = MattedImage(solid(3, 3, (0, 0, 0, 255)))
    with pytest.raises(ValueError):
        composite_over_background(matted, matted, 0, 3)


def test_stretching_ignores_colour_of_transparent_pixels():
    """Hidden RGB under alpha 0 must not bleed into neighbours when stretched."""
    pixels = np.array([[[255, 0, 0, 0], [0, 0, 255, 255]]], dtype=np.uint8)
    matted = MattedImage(pixels)
    background = RasterImage(np.array([[[0, 255, 0, 255]]], dtype=np.uint8))

    composite = composite_over_background(matted, background, 4, 1)

    assert composite.size == (4, 1)
    assert np.all(composite.pixels[..., 0] == 0)
    assert np.all(composite.alpha == 255)
    assert composite.get_pixel(0, 0) == (0, 255, 0, 255)
    assert composite.get_pixel(3, 0) == (0, 0, 255, 255)
    greens = [composite.get_pixel(x, 0)[1] for x in range(4)]
    assert greens == sorted(greens, reverse=True)


def test_stretched_edge_keeps_subject_colour(solid):
    pixels = solid(2, 2, (0, 0, 0, 0))
    pixels[:, 1] = (200, 100, 50, 255)
    background = RasterImage(solid(1, 1, (0, 0, 0, 0)))

    composite = composite_over_background(MattedImage(pixels), background, 8, 2)

    for x in range(8):
        r, g, b, a = composite.get_pixel(x, 0)
        if a > 0:
            assert (r, g, b) == (200, 100, 50)
