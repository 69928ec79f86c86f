"""Configuration for the resolution pipeline.

Values come from the environment, optionally seeded from a .env file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_VISION_MODEL = "llama-3.2-90b-vision-preview"
DEFAULT_TEXT_MODEL = "llama-3.1-70b-versatile"

# Values shipped in example env files; never valid credentials
_PLACEHOLDER_KEYS = {
    "your_groq_api_key_here",
    "your_imgbb_api_key_here",
    "your_usda_api_key_here",
    "changeme",
}


def is_placeholder_key(value: Optional[str]) -> bool:
    """
    Check whether a credential is missing or a template placeholder.

    Example:
        >>> is_placeholder_key("your_groq_api_key_here")
        True
        >>> is_placeholder_key("gsk_live_123")
        False
    """
    if value is None or not value.strip():
        return True
    normalized = value.strip().lower()
    return normalized in _PLACEHOLDER_KEYS or normalized.startswith("your_")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


class Settings(BaseModel):
    """
    Pipeline settings.

    Example:
        >>> settings = Settings.from_env()
        >>> settings.has_llm_credential()
        False
    """

    model_config = ConfigDict(frozen=True)

    groq_api_key: Optional[str] = Field(None, description="Vision/reasoning provider key")
    groq_base_url: str = Field(GROQ_BASE_URL, description="OpenAI-compatible endpoint")
    vision_model: str = Field(DEFAULT_VISION_MODEL, description="Primary vision model")
    text_model: str = Field(DEFAULT_TEXT_MODEL, description="Reasoning-only model")
    imgbb_api_key: Optional[str] = Field(None, description="Image hosting key")
    usda_api_key: str = Field("DEMO_KEY", description="USDA FoodData Central key")

    http_timeout_s: float = Field(30.0, gt=0, description="Provider transport timeout")
    db_timeout_s: float = Field(8.0, gt=0, description="Per-database lookup timeout")
    cache_ttl_s: float = Field(24 * 60 * 60, gt=0, description="Result cache TTL")
    cache_dir: Optional[Path] = Field(None, description="File store directory (memory if None)")
    cache_prefix: str = Field("snapmeal", min_length=1, description="Result cache key prefix")
    edge_cache_entries: int = Field(256, gt=0, description="Responses kept per edge cache namespace")
    resolver_strategy: Literal["sequential", "concurrent"] = "sequential"
    log_level: str = "INFO"

    def has_llm_credential(self) -> bool:
        """Check provider key is present and not a placeholder."""
        return not is_placeholder_key(self.groq_api_key)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> Settings:
        """
        Load settings from environment.

        Args:
            env_file: Optional .env path (default: search from cwd)

        Returns:
            Settings instance
        """
        if env_file is not None:
            if env_file.exists():
                load_dotenv(env_file)
        else:
            load_dotenv()

        cache_dir = os.getenv("SNAPMEAL_CACHE_DIR")

        return cls(
            groq_api_key=os.getenv("GROQ_API_KEY"),
            groq_base_url=os.getenv("GROQ_BASE_URL", GROQ_BASE_URL),
            vision_model=os.getenv("GROQ_VISION_MODEL", DEFAULT_VISION_MODEL),
            text_model=os.getenv("GROQ_TEXT_MODEL", DEFAULT_TEXT_MODEL),
            imgbb_api_key=os.getenv("IMGBB_API_KEY"),
            usda_api_key=os.getenv("USDA_API_KEY") or "DEMO_KEY",
            http_timeout_s=_env_float("SNAPMEAL_HTTP_TIMEOUT_S", 30.0),
            db_timeout_s=_env_float("SNAPMEAL_DB_TIMEOUT_S", 8.0),
            cache_ttl_s=_env_float("SNAPMEAL_CACHE_TTL_S", 24 * 60 * 60),
            cache_dir=Path(cache_dir) if cache_dir else None,
            cache_prefix=os.getenv("SNAPMEAL_CACHE_PREFIX", "snapmeal"),
            edge_cache_entries=int(os.getenv("SNAPMEAL_EDGE_CACHE_ENTRIES") or 256),
            resolver_strategy=os.getenv("SNAPMEAL_RESOLVER_STRATEGY", "sequential"),  # type: ignore[arg-type]
            log_level=os.getenv("SNAPMEAL_LOG_LEVEL", "INFO"),
        )
