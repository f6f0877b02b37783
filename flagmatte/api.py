"""
FastAPI layer exposing background removal and flag compositing.

Endpoints:
 - GET /health
 - POST /remove-bg
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, HttpUrl
import requests

from . import config
from .backgrounds import download_image
from .errors import BackgroundFetchError, ModelUnavailableError
from .model_loader import get_runtime
from .session import MattingSession

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


class RemoveBgRequest(BaseModel):
    imageUrl: HttpUrl
    qualityMode: Optional[str] = None
    countryCode: Optional[str] = None
    backgroundImageUrl: Optional[HttpUrl] = None
    backgroundColor: Optional[str] = None  # "#RRGGBB"


def _filename_from_url(url: str) -> str:
    return PurePosixPath(urlparse(url).path).name or "image"


def _background_identifier(body: RemoveBgRequest) -> Optional[str]:
    if body.countryCode:
        return body.countryCode
    if body.backgroundImageUrl:
        return str(body.backgroundImageUrl)
    return body.backgroundColor or None


async def _preload_model() -> None:
    try:
        await get_runtime().get()
    except ModelUnavailableError as exc:
        logger.error("Model preload failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    preload = asyncio.create_task(_preload_model()) if settings.preload_model else None
    yield
    if preload is not None:
        await preload


app = FastAPI(title="flagmatte Background Removal Service", version="0.1.0", lifespan=lifespan)


@app.get("/health")
def health():
    return {"status": "ok", "model": get_runtime().state.value}


@app.post("/remove-bg")
async def remove_bg(body: RemoveBgRequest):
    image_url = str(body.imageUrl)
    try:
        image_bytes = await asyncio.to_thread(download_image, image_url, settings)
    except requests.RequestException as exc:
        logger.exception("Failed to download image: %s", exc)
        raise HTTPException(status_code=400, detail="Could not download image") from exc

    session = MattingSession(runtime=get_runtime(), settings=settings)
    try:
        await session.upload(
            image_bytes,
            filename=_filename_from_url(image_url),
            quality_mode=body.qualityMode or settings.default_quality_mode,
        )
        identifier = _background_identifier(body)
        if identifier:
            await session.select_background(identifier)
        exported = session.download()
    except ModelUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except (ValueError, BackgroundFetchError) as exc:
        raise HTTPException(status_code=400, detail=session.error or str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Background removal failed: %s", exc)
        raise HTTPException(status_code=500, detail="Background removal failed") from exc

    return Response(
        content=exported.data,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
