"""PNG export for matted and composited images."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePath
from typing import Optional

from . import config
from .errors import EncodeError
from .raster import RasterImage


@dataclass(frozen=True)
class ExportedFile:
    filename: str
    data: bytes
    media_type: str = "image/png"


def encode_png(image: RasterImage) -> bytes:
    buf = BytesIO()
    try:
        image.to_pil().save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeError("Could not encode PNG") from exc
    data = buf.getvalue()
    if not data:
        raise EncodeError("PNG encoder produced an empty buffer")
    return data


def export_filename(original_name: str, suffix: Optional[str] = None) -> str:
    """`holiday.photo.jpg` -> `holiday-bg-removed.png`."""
    if suffix is None:
        suffix = config.get_settings().export_suffix
    # Windows-style paths
    base = PurePath((original_name or "").replace("\\", "/")).name
    stem = base.split(".")[0] or "image"
    return f"{stem}{suffix}.png"


def export_image(image: RasterImage, original_name: str) -> ExportedFile:
    return ExportedFile(filename=export_filename(original_name), data=encode_png(image))
