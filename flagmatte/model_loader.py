"""
Model loading utilities for the matting runtime.

The loader:
 - resolves a model id to a TorchScript MODNet checkpoint,
 - builds the matching preprocessor,
 - keeps a single shared runtime per process,
 - exposes `get_runtime()` for extraction callers, with an async accessor
   that lets concurrent callers share one in-flight load.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import enum
from functools import lru_cache
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Optional

import torch

from . import config
from .errors import ModelUnavailableError
from .preprocessing import MatteProcessor

logger = logging.getLogger(__name__)

# Prefer CUDA -> Apple MPS -> CPU to support both GPU servers and local macOS dev.
if torch.cuda.is_available():
    _DEVICE = torch.device("cuda")
elif torch.backends.mps.is_available():  # type: ignore[attr-defined]
    _DEVICE = torch.device("mps")
else:
    _DEVICE = torch.device("cpu")


def get_device() -> torch.device:
    """Return the inference device (prefers CUDA when available)."""
    return _DEVICE


class MatteModel:
    """Callable wrapper returning the fused matte tensor (B, 1, H, W) in [0, 1]."""

    def __init__(self, module: torch.nn.Module, device: torch.device, inference_flag: bool = True):
        self.module = module
        self.device = device
        self.inference_flag = inference_flag

    def __call__(self, pixel_values: torch.Tensor) -> torch.Tensor:
        with torch.no_grad():
            if self.inference_flag:
                output = self.module(pixel_values.to(self.device), True)
            else:
                output = self.module(pixel_values.to(self.device))
        # MODNet returns (semantic, detail, matte)
        if isinstance(output, (tuple, list)):
            output = output[-1]
        return output


def resolve_model_path(model_id: str, settings: Optional[config.Settings] = None) -> Path:
    candidate = Path(model_id)
    if candidate.suffix and candidate.exists():
        return candidate
    settings = settings or config.get_settings()
    return Path(settings.matte_model_dir) / f"{model_id}.pt"


def load_model(model_id: str, settings: Optional[config.Settings] = None) -> MatteModel:
    settings = settings or config.get_settings()
    model_path = resolve_model_path(model_id, settings)
    if not model_path.exists():
        raise FileNotFoundError(f"Matting checkpoint not found at {model_path}")

    logger.info("Loading TorchScript model from %s", model_path)
    module = torch.jit.load(str(model_path), map_location=_DEVICE)
    if hasattr(module, "eval"):
        module.eval()
    logger.info("Model %s loaded on device: %s", model_id, _DEVICE)
    return MatteModel(module, _DEVICE, inference_flag=settings.matte_model_inference_flag)


def load_processor(model_id: str, settings: Optional[config.Settings] = None) -> MatteProcessor:
    settings = settings or config.get_settings()
    long_edges = {mode: config.quality_to_long_edge(mode, settings) for mode in config.QUALITY_MODES}
    logger.info("Processor for %s: long edges %s", model_id, long_edges)
    return MatteProcessor(long_edges, default_mode=settings.default_quality_mode, device=_DEVICE)


@dataclass(frozen=True)
class MatteHandles:
    model: Callable[[torch.Tensor], Any]
    processor: Callable[..., Any]


class ModelState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class ModelRuntime:
    """
    Memoized model + processor pair with explicit initialization state.

    `load()` is the blocking, thread-safe path; `get()` is the async accessor.
    Concurrent `get()` callers await the same in-flight load. A failed load
    is reported to every waiter and the next explicit request starts over.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        model_loader: Callable[[str], Any] = load_model,
        processor_loader: Callable[[str], Any] = load_processor,
    ):
        self.model_id = model_id or config.get_settings().matte_model_id
        self._model_loader = model_loader
        self._processor_loader = processor_loader
        self._handles: Optional[MatteHandles] = None
        self._state = ModelState.UNINITIALIZED
        self._error: Optional[BaseException] = None
        self._pending: Optional[asyncio.Future] = None
        self._lock = Lock()

    @property
    def state(self) -> ModelState:
        return self._state

    def require(self) -> MatteHandles:
        """Return ready handles or raise ModelUnavailableError."""
        if self._handles is not None:
            return self._handles
        if self._state is ModelState.FAILED:
            raise ModelUnavailableError(f"Model '{self.model_id}' failed to initialize: {self._error}")
        raise ModelUnavailableError(f"Model '{self.model_id}' is not initialized ({self._state.value})")

    def load(self) -> MatteHandles:
        if self._handles is not None:
            return self._handles

        with self._lock:
            if self._handles is None:
                self._state = ModelState.INITIALIZING
                try:
                    model = self._model_loader(self.model_id)
                    processor = self._processor_loader(self.model_id)
                except Exception as exc:
                    self._state = ModelState.FAILED
                    self._error = exc
                    logger.exception("Failed to initialize model %s", self.model_id)
                    raise ModelUnavailableError(f"Failed to initialize model: {exc}") from exc
                self._handles = MatteHandles(model=model, processor=processor)
                self._error = None
                self._state = ModelState.READY
        return self._handles

    async def get(self) -> MatteHandles:
        if self._handles is not None:
            return self._handles

        if self._pending is None:
            self._state = ModelState.INITIALIZING
            self._pending = asyncio.ensure_future(asyncio.to_thread(self.load))
            self._pending.add_done_callback(self._forget_failed)
        # Shield so one cancelled waiter does not cancel the shared load.
        return await asyncio.shield(self._pending)

    def _forget_failed(self, future: asyncio.Future) -> None:
        if self._pending is future and (future.cancelled() or future.exception() is not None):
            self._pending = None
            if future.cancelled():
                self._state = ModelState.UNINITIALIZED


@lru_cache()
def get_runtime() -> ModelRuntime:
    """Return the process-wide runtime; the model itself loads lazily."""
    return ModelRuntime()
