"""
Tests for settings loading and credential checks.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from snapmeal.config import DEFAULT_TEXT_MODEL, GROQ_BASE_URL, Settings, is_placeholder_key

ENV_KEYS = (
    "GROQ_API_KEY",
    "GROQ_BASE_URL",
    "GROQ_VISION_MODEL",
    "GROQ_TEXT_MODEL",
    "IMGBB_API_KEY",
    "USDA_API_KEY",
    "SNAPMEAL_HTTP_TIMEOUT_S",
    "SNAPMEAL_DB_TIMEOUT_S",
    "SNAPMEAL_CACHE_TTL_S",
    "SNAPMEAL_CACHE_DIR",
    "SNAPMEAL_CACHE_PREFIX",
    "SNAPMEAL_RESOLVER_STRATEGY",
    "SNAPMEAL_EDGE_CACHE_ENTRIES",
    "SNAPMEAL_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolated environment; .env loading writes into a throwaway copy."""
    monkeypatch.setattr(os, "environ", {k: v for k, v in os.environ.items() if k not in ENV_KEYS})


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, True),
        ("", True),
        ("   ", True),
        ("your_groq_api_key_here", True),
        ("YOUR_IMGBB_API_KEY_HERE", True),
        ("changeme", True),
        ("gsk_live_123", False),
        ("DEMO_KEY", False),
    ],
)
def test_is_placeholder_key(value, expected: bool) -> None:
    assert is_placeholder_key(value) is expected


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.groq_base_url == GROQ_BASE_URL
        assert settings.text_model == DEFAULT_TEXT_MODEL
        assert settings.usda_api_key == "DEMO_KEY"
        assert settings.cache_ttl_s == 24 * 60 * 60
        assert settings.resolver_strategy == "sequential"
        assert settings.edge_cache_entries == 256
        assert not settings.has_llm_credential()

    def test_invalid_strategy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(resolver_strategy="parallel")

    def test_from_env(self, clean_env: None, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("GROQ_API_KEY", "gsk_live_123")
        monkeypatch.setenv("SNAPMEAL_CACHE_DIR", str(tmp_path))
        monkeypatch.setenv("SNAPMEAL_DB_TIMEOUT_S", "2.5")
        monkeypatch.setenv("SNAPMEAL_RESOLVER_STRATEGY", "concurrent")
        monkeypatch.setenv("SNAPMEAL_EDGE_CACHE_ENTRIES", "32")

        settings = Settings.from_env(tmp_path / "missing.env")

        assert settings.has_llm_credential()
        assert settings.cache_dir == tmp_path
        assert settings.db_timeout_s == 2.5
        assert settings.resolver_strategy == "concurrent"
        assert settings.edge_cache_entries == 32
        assert settings.imgbb_api_key is None

    def test_from_env_file(self, clean_env: None, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("GROQ_API_KEY=your_groq_api_key_here\nIMGBB_API_KEY=imgbb_test\nUSDA_API_KEY=\n")

        settings = Settings.from_env(env_file)

        assert not settings.has_llm_credential()
        assert settings.imgbb_api_key == "imgbb_test"
        assert settings.usda_api_key == "DEMO_KEY"
