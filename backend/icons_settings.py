"""
icons_settings.py
-----------------
Runtime configuration for the icons gateway.

Everything is read from the environment (after `backend/.env` is loaded by
python-dotenv) and validated once at startup. A bad value aborts startup
instead of surfacing later as a broken request.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

ROOT_DIR = Path(__file__).parent

DEFAULT_UPSTREAM_BASE_URL = "https://raw.githubusercontent.com/homarr-labs/dashboard-icons/main"
DEFAULT_BACKGROUND = "rgb(36, 41, 56)"


class IconSettings(BaseModel):
    upstream_base_url: str = DEFAULT_UPSTREAM_BASE_URL
    index_path: str = "tree.json"
    source_path: str = "svg/{name}.svg"
    fetch_timeout_seconds: float = Field(10.0, gt=0)

    cache_ttl_seconds: float = Field(7 * 24 * 60 * 60, gt=0)
    cache_sweep_seconds: float = Field(24 * 60 * 60, gt=0)
    cache_shards: int = Field(16, ge=1)

    display_size: int = Field(48, ge=1)  # side of one cell
    content_size: int = Field(36, ge=1)  # icon box inside the cell
    gap: int = Field(8, ge=0)
    background: str = DEFAULT_BACKGROUND
    radius: float = Field(10, ge=0)

    max_per_row: int = 15
    per_row_limit: int = Field(50, ge=1)
    layout: Literal["grid", "row"] = "grid"
    output_format: Literal["svg", "webp"] = "svg"
    webp_quality: int = Field(90, ge=0, le=100)
    webp_lossless: bool = False

    optimize: bool = True
    metrics_enabled: bool = True
    cors_origins: str = "*"

    @field_validator("upstream_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("upstream_base_url must not be empty")
        return value

    @field_validator("source_path")
    @classmethod
    def require_name_placeholder(cls, value: str) -> str:
        if "{name}" not in value:
            raise ValueError("source_path must contain a {name} placeholder")
        return value.lstrip("/")

    @model_validator(mode="after")
    def check_geometry(self) -> "IconSettings":
        if self.content_size > self.display_size:
            raise ValueError("content_size cannot exceed display_size")
        if not 1 <= self.max_per_row <= self.per_row_limit:
            raise ValueError(f"max_per_row must be a number between 1 and {self.per_row_limit}")
        return self

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "IconSettings":
        """Build settings from ICONS_* variables; unset variables keep their defaults."""
        env = os.environ if environ is None else environ
        values: Dict[str, object] = {}
        for field_name in cls.model_fields:
            key = "CORS_ORIGINS" if field_name == "cors_origins" else f"ICONS_{field_name.upper()}"
            raw = env.get(key)
            if raw is None or not raw.strip():
                continue
            values[field_name] = raw.strip()
        return cls(**values)


def load_settings() -> IconSettings:
    load_dotenv(ROOT_DIR / ".env")
    return IconSettings.from_env()
