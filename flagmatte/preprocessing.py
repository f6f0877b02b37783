"""
Image preprocessing for the matting model.

The processor normalizes images into MODNet's expected input space and
resizes by the longest edge for a speed/quality balance.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Dict, Optional, Tuple

import cv2
import numpy as np
import torch

from .raster import RasterImage

logger = logging.getLogger(__name__)

# Both sides are snapped to the model's down/up sampling stride.
MODEL_STRIDE = 32


@dataclass
class ProcessorOutput:
    pixel_values: torch.Tensor  # (1, 3, H, W) float32
    native_size: Tuple[int, int]  # (width, height) fed to the model
    source_size: Tuple[int, int]


def compute_native_size(width: int, height: int, max_long_edge: int) -> Tuple[int, int]:
    """Preserve aspect ratio while constraining the longest edge."""
    new_w, new_h = width, height
    long_edge = max(width, height)
    if 0 < max_long_edge < long_edge:
        scale = max_long_edge / long_edge
        new_w = int(width * scale)
        new_h = int(height * scale)
    new_w = max(MODEL_STRIDE, math.ceil(new_w / MODEL_STRIDE) * MODEL_STRIDE)
    new_h = max(MODEL_STRIDE, math.ceil(new_h / MODEL_STRIDE) * MODEL_STRIDE)
    return new_w, new_h


class MatteProcessor:
    """Callable turning a RasterImage into the model's `pixel_values` tensor."""

    def __init__(
        self,
        long_edges: Dict[str, int],
        default_mode: str = "standard",
        mean: float = 0.5,
        std: float = 0.5,
        device: Optional[torch.device] = None,
    ):
        if default_mode not in long_edges:
            raise ValueError(f"Unknown default quality mode '{default_mode}'")
        self.long_edges = dict(long_edges)
        self.default_mode = default_mode
        self.mean = mean
        self.std = std
        self.device = device or torch.device("cpu")

    def __call__(self, image: RasterImage, quality_mode: Optional[str] = None) -> ProcessorOutput:
        mode = quality_mode or self.default_mode
        if mode not in self.long_edges:
            raise ValueError("qualityMode must be one of " + " | ".join(sorted(self.long_edges)))

        native_w, native_h = compute_native_size(image.width, image.height, self.long_edges[mode])
        rgb = np.ascontiguousarray(image.rgb)
        if (native_w, native_h) != image.size:
            rgb = cv2.resize(rgb, (native_w, native_h), interpolation=cv2.INTER_LINEAR)

        im_np = rgb.astype("float32") / 255.0
        im_np = (im_np - self.mean) / self.std
        im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW

        tensor = torch.from_numpy(np.ascontiguousarray(im_np)).unsqueeze(0).to(self.device)
        logger.debug(
            "preprocess: mode=%s source=%dx%d native=%dx%d", mode, image.width, image.height, native_w, native_h
        )
        return ProcessorOutput(pixel_values=tensor, native_size=(native_w, native_h), source_size=image.size)
