"""
Per-upload session: decode -> extract matte -> apply matte -> optional composite.

Each upload or background selection bumps the session generation. A run only
publishes its results while its generation is still the latest, so a new
upload supersedes whatever was in flight (last upload wins).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable, Optional

from . import config
from .backgrounds import fetch_background
from .compositing import apply_matte, composite_over_background
from .errors import SessionStateError
from .export import ExportedFile, export_image
from .matting import extract_matte_async
from .model_loader import ModelRuntime, get_runtime
from .raster import CompositeImage, MattedImage, RasterImage

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    UPLOADED = "uploaded"
    MATTING = "matting"
    MATTED = "matted"
    BACKGROUND_SELECTED = "background_selected"
    COMPOSITED = "composited"


class MattingSession:
    def __init__(
        self,
        runtime: Optional[ModelRuntime] = None,
        settings: Optional[config.Settings] = None,
        background_fetcher: Optional[Callable[[str], RasterImage]] = None,
    ):
        self.runtime = runtime or get_runtime()
        self.settings = settings or config.get_settings()
        self._fetch_background = background_fetcher or (lambda ident: fetch_background(ident, self.settings))

        self.state = SessionState.IDLE
        self.busy = False
        self.error: Optional[str] = None
        self.generation = 0

        self.original: Optional[RasterImage] = None
        self.original_name: Optional[str] = None
        self.matted: Optional[MattedImage] = None
        self.composite: Optional[CompositeImage] = None

    def _begin(self) -> int:
        self.generation += 1
        self.busy = True
        self.error = None
        return self.generation

    def _is_current(self, generation: int) -> bool:
        return generation == self.generation

    async def upload(
        self, image_bytes: bytes, filename: str = "image", quality_mode: Optional[str] = None
    ) -> Optional[MattedImage]:
        """
        Run the full matting pipeline for a new upload.

        Returns the MattedImage, or None when a newer upload superseded this
        one before it finished. Failures set `error`, return the session to
        IDLE and re-raise; artifacts already on display are left alone.
        """
        generation = self._begin()
        # Background picks are refused until this upload settles.
        self.state = SessionState.UPLOADED
        try:
            image = await asyncio.to_thread(RasterImage.decode, image_bytes)
            if not self._is_current(generation):
                logger.debug("upload %d superseded after decode", generation)
                return None

            self.original, self.original_name = image, filename
            self.matted, self.composite = None, None

            self.state = SessionState.MATTING
            mask = await extract_matte_async(image, self.runtime, quality_mode=quality_mode)
            if not self._is_current(generation):
                logger.debug("upload %d superseded after matting", generation)
                return None

            matted = apply_matte(image, mask)
            self.matted = matted
            self.state = SessionState.MATTED
            logger.info("matted %s (%dx%d)", filename, image.width, image.height)
            return matted
        except Exception as exc:
            if not self._is_current(generation):
                logger.debug("discarding failure from superseded upload %d: %s", generation, exc)
                return None
            self.state = SessionState.IDLE
            self.error = f"Image processing failed: {exc}"
            raise
        finally:
            if self._is_current(generation):
                self.busy = False

    async def select_background(self, identifier: str) -> Optional[CompositeImage]:
        """Fetch a background and flatten the matted image over it."""
        selectable = (SessionState.MATTED, SessionState.BACKGROUND_SELECTED, SessionState.COMPOSITED)
        if self.matted is None or self.state not in selectable:
            raise SessionStateError(f"Cannot select a background while {self.state.value}")

        generation = self._begin()
        matted = self.matted
        self.state = SessionState.BACKGROUND_SELECTED
        try:
            background = await asyncio.to_thread(self._fetch_background, identifier)
            if not self._is_current(generation):
                logger.debug("background %d superseded", generation)
                return None

            composite = composite_over_background(matted, background)
            self.composite = composite
            self.state = SessionState.COMPOSITED
            return composite
        except Exception as exc:
            if not self._is_current(generation):
                logger.debug("discarding failure from superseded background %d: %s", generation, exc)
                return None
            self.state = SessionState.COMPOSITED if self.composite is not None else SessionState.MATTED
            self.error = f"Background failed: {exc}"
            raise
        finally:
            if self._is_current(generation):
                self.busy = False

    def download(self) -> ExportedFile:
        """Export the composite when there is one, else the matted image."""
        artifact = self.composite if self.composite is not None else self.matted
        if artifact is None:
            raise SessionStateError("Nothing to download yet")
        return export_image(artifact, self.original_name or "image")
