"""
Matte extraction: image in, single-channel mask at the image's size out.

Inference is delegated to the runtime's model/processor pair; this module
only invokes them and turns the output tensor into a resampled Mask.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import torch

from . import config
from .model_loader import MatteHandles, ModelRuntime, get_runtime
from .raster import Mask, RasterImage

logger = logging.getLogger(__name__)


def mask_from_tensor(output: torch.Tensor) -> Mask:
    """Convert a (B, 1, H, W) / (1, H, W) / (H, W) matte in [0, 1] to a byte Mask."""
    matte = output.detach()
    while matte.dim() > 2:
        matte = matte[0]
    matte = matte.clamp(0.0, 1.0).mul(255).to(torch.uint8)
    return Mask(matte.cpu().numpy())


def extract_matte(
    image: RasterImage,
    handles: Optional[MatteHandles] = None,
    quality_mode: Optional[str] = None,
) -> Mask:
    """
    Run the matting model on `image` and return a Mask of the same size.

    Raises:
        ModelUnavailableError: when no handles are given and the shared
            runtime has not finished initializing.
    """
    handles = handles or get_runtime().require()
    settings = config.get_settings()

    processed = handles.processor(image, quality_mode=quality_mode)
    output = handles.model(processed.pixel_values)

    mask = mask_from_tensor(output)
    logger.debug(
        "extract: model-native mask %dx%d -> %dx%d (%s)",
        mask.width,
        mask.height,
        image.width,
        image.height,
        settings.mask_interpolation,
    )
    return mask.resample(image.width, image.height, interpolation=settings.mask_interpolation)


async def extract_matte_async(
    image: RasterImage,
    runtime: Optional[ModelRuntime] = None,
    quality_mode: Optional[str] = None,
) -> Mask:
    """Await the shared model initialization, then extract off the event loop."""
    runtime = runtime or get_runtime()
    handles = await runtime.get()
    return await asyncio.to_thread(extract_matte, image, handles, quality_mode)
