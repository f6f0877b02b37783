"""Shared fixtures: fake model runtimes and in-memory test images."""

from io import BytesIO

import numpy as np
import pytest
import torch
from PIL import Image

from flagmatte import config, model_loader
from flagmatte.model_loader import ModelRuntime
from flagmatte.preprocessing import MatteProcessor


@pytest.fixture(autouse=True)
def _fresh_caches():
    config.get_settings.cache_clear()
    model_loader.get_runtime.cache_clear()
    yield
    config.get_settings.cache_clear()
    model_loader.get_runtime.cache_clear()


@pytest.fixture
def png_bytes():
    def _make(color=(255, 0, 0), size=(8, 8), mode="RGB"):
        buf = BytesIO()
        Image.new(mode, size, color).save(buf, format="PNG")
        return buf.getvalue()

    return _make


@pytest.fixture
def processor():
    return MatteProcessor({"fast": 64, "standard": 64, "high": 128})


@pytest.fixture
def constant_model():
    """Model returning a uniform matte at whatever resolution it is fed."""

    def _make(value=1.0):
        def model(pixel_values):
            _, _, h, w = pixel_values.shape
            return torch.full((1, 1, h, w), float(value))

        return model

    return _make


@pytest.fixture
def make_runtime(processor, constant_model):
    def _make(model=None, load_calls=None):
        model = model or constant_model(1.0)

        def model_loader(model_id):
            if load_calls is not None:
                load_calls.append(model_id)
            return model

        return ModelRuntime("test-model", model_loader=model_loader, processor_loader=lambda _id: processor)

    return _make


@pytest.fixture
def ready_runtime(make_runtime):
    def _make(model=None):
        runtime = make_runtime(model)
        runtime.load()
        return runtime

    return _make


@pytest.fixture
def solid():
    def _make(width, height, rgba):
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = rgba
        return pixels

    return _make
