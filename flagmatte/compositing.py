"""Apply mattes and flatten cut-outs over backgrounds with source-over blending."""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from .errors import DimensionMismatchError
from .raster import CompositeImage, Mask, MattedImage, RasterImage

logger = logging.getLogger(__name__)


def apply_matte(image: RasterImage, mask: Mask) -> MattedImage:
    """Return a copy of `image` whose alpha channel is `mask`; RGB is untouched."""
    if mask.size != image.size:
        raise DimensionMismatchError(
            f"Mask is {mask.width}x{mask.height} but image is {image.width}x{image.height}"
        )
    rgba = np.array(image.pixels)
    rgba[..., 3] = mask.intensity
    return MattedImage(rgba)


def _premultiplied(image: RasterImage, width: int, height: int) -> np.ndarray:
    """Float RGBA in [0, 1] with RGB scaled by alpha, stretched to width x height."""
    rgba = image.pixels.astype(np.float32) / 255.0
    rgba[..., :3] *= rgba[..., 3:4]
    if (width, height) != image.size:
        # Filter premultiplied values so fully transparent pixels add no colour.
        rgba = cv2.resize(rgba, (width, height), interpolation=cv2.INTER_LINEAR)
    return rgba


def composite_over_background(
    matted: RasterImage,
    background: RasterImage,
    target_width: Optional[int] = None,
    target_height: Optional[int] = None,
) -> CompositeImage:
    """
    Draw `background` then `matted` onto a target-sized canvas.

    Both layers are stretched to the target, which defaults to the matted
    image's size. Blending is source-over in premultiplied space, so an
    opaque background yields an opaque result.
    """
    target_width = matted.width if target_width is None else target_width
    target_height = matted.height if target_height is None else target_height
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"Target size must be positive, got {target_width}x{target_height}")

    fg = _premultiplied(matted, target_width, target_height)
    bg = _premultiplied(background, target_width, target_height)

    out = fg + bg * (1.0 - fg[..., 3:4])
    out_a = out[..., 3:4]
    out_rgb = np.divide(out[..., :3], out_a, out=np.zeros_like(out[..., :3]), where=out_a > 0)

    logger.debug("composite: %dx%d over background %dx%d", matted.width, matted.height, background.width, background.height)
    out = np.concatenate([out_rgb, out_a], axis=-1) * 255.0
    return CompositeImage(np.clip(np.rint(out), 0, 255).astype(np.uint8))
