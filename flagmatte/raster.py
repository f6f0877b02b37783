"""
Raster value types used across the matting pipeline.

Images and masks wrap read-only numpy buffers; every operation returns a new
value so artifacts held for display are never mutated behind the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Tuple, Type, TypeVar

import cv2
import numpy as np
from PIL import Image

from .errors import DecodeError

_INTERPOLATION = {
    "bilinear": cv2.INTER_LINEAR,
    "nearest": cv2.INTER_NEAREST,
}

T = TypeVar("T", bound="RasterImage")


def _frozen_copy(array: np.ndarray) -> np.ndarray:
    out = np.array(array, dtype=np.uint8, copy=True, order="C")
    out.setflags(write=False)
    return out


def _resize(array: np.ndarray, width: int, height: int, interpolation: str) -> np.ndarray:
    if width <= 0 or height <= 0:
        raise ValueError(f"Resample target must be positive, got {width}x{height}")
    try:
        flag = _INTERPOLATION[interpolation]
    except KeyError:
        raise ValueError(f"Unknown interpolation '{interpolation}'") from None
    if array.shape[1] == width and array.shape[0] == height:
        return array
    resized = cv2.resize(np.array(array), (width, height), interpolation=flag)
    # cv2 drops a trailing singleton channel axis
    if array.ndim == 3 and resized.ndim == 2:
        resized = resized[..., None]
    return resized


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Dense row-major RGBA pixels, shape (height, width, 4), uint8."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) RGBA array, got shape {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Image must be non-empty")
        object.__setattr__(self, "pixels", _frozen_copy(pixels))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), matching PIL's convention."""
        return self.width, self.height

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[..., :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def get_pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def with_pixel(self: T, x: int, y: int, rgba: Tuple[int, int, int, int]) -> T:
        pixels = np.array(self.pixels)
        pixels[y, x] = rgba
        return type(self)(pixels)

    def resample(self: T, width: int, height: int, interpolation: str = "bilinear") -> T:
        """Stretch (never crop) to width x height."""
        return type(self)(_resize(self.pixels, width, height, interpolation))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.array(self.pixels))

    @classmethod
    def from_pil(cls: Type[T], image: Image.Image) -> T:
        return cls(np.asarray(image.convert("RGBA")))

    @classmethod
    def decode(cls: Type[T], data: bytes) -> T:
        """Decode any Pillow-readable image into RGBA."""
        if not data:
            raise DecodeError("Invalid image data: empty input")
        try:
            with Image.open(BytesIO(data)) as image:
                rgba = image.convert("RGBA")
        except Exception as exc:  # noqa: BLE001
            raise DecodeError("Invalid image data") from exc
        return cls.from_pil(rgba)

    @classmethod
    def solid(cls: Type[T], width: int, height: int, rgba: Tuple[int, int, int, int]) -> T:
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = rgba
        return cls(pixels)


class MattedImage(RasterImage):
    """RasterImage whose alpha channel came from a Mask."""


class CompositeImage(RasterImage):
    """MattedImage flattened over a background."""


@dataclass(frozen=True, eq=False)
class Mask:
    """Single-channel opacities, shape (height, width), uint8; 0 is transparent."""

    intensity: np.ndarray

    def __post_init__(self) -> None:
        intensity = np.asarray(self.intensity)
        if intensity.ndim != 2:
            raise ValueError(f"Expected an (H, W) mask, got shape {intensity.shape}")
        if intensity.shape[0] == 0 or intensity.shape[1] == 0:
            raise ValueError("Mask must be non-empty")
        object.__setattr__(self, "intensity", _frozen_copy(intensity))

    @property
    def width(self) -> int:
        return int(self.intensity.shape[1])

    @property
    def height(self) -> int:
        return int(self.intensity.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def get(self, x: int, y: int) -> int:
        return int(self.intensity[y, x])

    def resample(self, width: int, height: int, interpolation: str = "bilinear") -> "Mask":
        return Mask(_resize(self.intensity, width, height, interpolation))

    @classmethod
    def from_float(cls, values: np.ndarray) -> "Mask":
        """Scale [0, 1] floats to bytes; out-of-range values are clipped, fractions truncated."""
        values = np.clip(np.asarray(values, dtype=np.float32), 0.0, 1.0)
        return cls((values * 255.0).astype(np.uint8))
