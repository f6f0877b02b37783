"""
Synchronous one-shot pipeline.

`process_image_bytes` keeps orchestration simple for scripts and batch use:
bytes in -> decode -> matte -> apply -> optional background -> PNG bytes out.
Interactive callers should prefer `MattingSession`.
"""

from __future__ import annotations

import logging
from typing import Optional

from . import config
from .backgrounds import fetch_background
from .compositing import apply_matte, composite_over_background
from .export import encode_png
from .matting import extract_matte
from .model_loader import ModelRuntime, get_runtime
from .raster import RasterImage

logger = logging.getLogger(__name__)


def process_image_bytes(
    image_bytes: bytes,
    quality_mode: Optional[str] = None,
    background: Optional[str] = None,
    runtime: Optional[ModelRuntime] = None,
) -> bytes:
    """
    Full pipeline from raw bytes to PNG bytes.

    Raises:
        DecodeError: when the input is not an image.
        ModelUnavailableError: when the model cannot be loaded.
        BackgroundFetchError: when `background` cannot be resolved.
    """
    settings = config.get_settings()
    quality_mode = quality_mode or settings.default_quality_mode

    image = RasterImage.decode(image_bytes)
    handles = (runtime or get_runtime()).load()
    mask = extract_matte(image, handles, quality_mode=quality_mode)
    result = apply_matte(image, mask)

    if background:
        result = composite_over_background(result, fetch_background(background, settings))
    logger.debug("pipeline: %dx%d mode=%s background=%s", image.width, image.height, quality_mode, background)
    return encode_png(result)
