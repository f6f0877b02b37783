"""
Background sources: country flags, image URLs and solid colours.

Every identifier resolves to a decodable RasterImage or raises
BackgroundFetchError.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

import requests

from . import config
from .errors import BackgroundFetchError, DecodeError
from .raster import RasterImage

logger = logging.getLogger(__name__)

_COUNTRY_CODE = re.compile(r"^[A-Za-z]{2}$")


def parse_hex_color(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    if not value:
        return None
    raw = value.strip()
    if raw.startswith("#"):
        raw = raw[1:]
    if len(raw) != 6:
        return None
    try:
        r = int(raw[0:2], 16)
        g = int(raw[2:4], 16)
        b = int(raw[4:6], 16)
    except ValueError:
        return None
    return (r, g, b)


def flag_url(country_code: str, settings: Optional[config.Settings] = None) -> str:
    """Resolve an ISO 3166-1 alpha-2 code to its flag image URL."""
    code = (country_code or "").strip()
    if not _COUNTRY_CODE.match(code):
        raise BackgroundFetchError(f"Unknown country code: {country_code!r}")
    settings = settings or config.get_settings()
    return settings.flag_url_template.format(code=code.lower())


def download_image(url: str, settings: config.Settings) -> bytes:
    resp = requests.get(url, timeout=(5, settings.request_timeout_seconds))
    resp.raise_for_status()
    return resp.content


def fetch_background(identifier: str, settings: Optional[config.Settings] = None) -> RasterImage:
    settings = settings or config.get_settings()
    identifier = (identifier or "").strip()

    if identifier.startswith("#"):
        color = parse_hex_color(identifier)
        if color is None:
            raise BackgroundFetchError(f"Invalid background colour: {identifier!r}")
        # 1x1 is stretched to the canvas at composite time
        return RasterImage.solid(1, 1, (*color, 255))

    if identifier.lower().startswith(("http://", "https://")):
        url = identifier
    else:
        url = flag_url(identifier, settings)

    try:
        data = download_image(url, settings)
    except requests.RequestException as exc:
        logger.warning("Failed to download background %s: %s", url, exc)
        raise BackgroundFetchError(f"Could not download background image from {url}") from exc

    try:
        return RasterImage.decode(data)
    except DecodeError as exc:
        raise BackgroundFetchError(f"Background at {url} is not a valid image") from exc
