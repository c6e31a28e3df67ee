"""
Pydantic settings for the room detector service
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_LOCATIONS
from .storage import DEFAULT_STORAGE_KEY

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Service settings with environment variable support."""

    app_name: str = Field(default="Room Detector", description="Application name")
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Root logging level")

    scan_interval_s: float = Field(default=1.0, gt=0, description="Delay between scan ticks in seconds")
    use_mock_scanner: Optional[bool] = Field(
        default=None, description="Force the synthetic scanner (None = use it only when nmcli is missing)"
    )
    scan_timeout_s: float = Field(default=10.0, gt=0, description="Timeout for a single nmcli call")

    storage_path: str = Field(default="./data/fingerprints.json", description="Fingerprint JSON file")
    storage_key: str = Field(default=DEFAULT_STORAGE_KEY, description="Key the fingerprint list is stored under")
    locations: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LOCATIONS), description="Calibration locations, in capture order"
    )

    model_config = SettingsConfigDict(
        env_prefix="ROOM_DETECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("locations")
    @classmethod
    def validate_locations(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one calibration location is required")
        if len(set(v)) != len(v):
            raise ValueError("calibration locations must be unique")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def setup_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
