"""
Configuration loader for the flagmatte background-removal tool.

Environment variables are centralized here to keep the rest of the code
focused on matting and compositing and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings

QUALITY_MODES = {"fast", "standard", "high"}
INTERPOLATIONS = {"bilinear", "nearest"}


class Settings(BaseSettings):
    # Model + preprocessing
    matte_model_id: str = Field("modnet", env="MATTE_MODEL_ID")
    matte_model_dir: Path = Field(Path("models"), env="MATTE_MODEL_DIR")
    matte_model_inference_flag: bool = Field(True, env="MATTE_MODEL_INFERENCE_FLAG")
    matte_long_edge_fast: int = Field(512, env="MATTE_LONG_EDGE_FAST")
    matte_long_edge: int = Field(1024, env="MATTE_LONG_EDGE")
    matte_long_edge_high_quality: int = Field(1536, env="MATTE_LONG_EDGE_HIGH_QUALITY")
    default_quality_mode: str = Field("standard", env="DEFAULT_QUALITY_MODE")
    preload_model: bool = Field(False, env="PRELOAD_MODEL")

    # Mask upscaling from model-native resolution
    mask_interpolation: str = Field("bilinear", env="MASK_INTERPOLATION")

    # Backgrounds
    flag_url_template: str = Field("https://flagcdn.com/w1280/{code}.png", env="FLAG_URL_TEMPLATE")
    request_timeout_seconds: int = Field(30, env="REQUEST_TIMEOUT_SECONDS")

    # Export
    export_suffix: str = Field("-bg-removed", env="EXPORT_SUFFIX")

    log_level: str = Field("INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @validator("default_quality_mode")
    def validate_quality_mode(cls, v: str) -> str:  # noqa: B902
        if v not in QUALITY_MODES:
            raise ValueError("DEFAULT_QUALITY_MODE must be one of fast|standard|high")
        return v

    @validator("mask_interpolation")
    def validate_interpolation(cls, v: str) -> str:  # noqa: B902
        v = v.lower()
        if v not in INTERPOLATIONS:
            raise ValueError("MASK_INTERPOLATION must be one of bilinear|nearest")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def quality_to_long_edge(quality_mode: str, settings: Optional[Settings] = None) -> int:
    """
    Translate a quality string into the resize target for the longest edge.

    Higher values give finer hair detail at the cost of speed/memory.
    """
    settings = settings or get_settings()
    if quality_mode not in QUALITY_MODES:
        raise ValueError("qualityMode must be one of fast | standard | high")
    if quality_mode == "high":
        return settings.matte_long_edge_high_quality
    if quality_mode == "fast":
        return settings.matte_long_edge_fast
    return settings.matte_long_edge
