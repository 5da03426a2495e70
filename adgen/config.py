"""
Environment-driven configuration for the ad generation service.

Values are read once from the process environment after loading an optional
`.env` file at the repository root. Tests build `Settings` directly instead of
going through `get_settings()`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


ENV_PATH = Path(__file__).parent.parent / ".env"


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration shared by the API, job runner and services."""

    openai_api_key: str | None = None
    text_model: str = "gpt-4o"
    image_model: str = "dall-e-3"
    storage_dir: Path = Path("storage")
    media_url: str = "/media"
    # Single attempt timeout for background downloads, in seconds.
    fetch_timeout: float = 30.0
    # One bold sans-serif face for every render.
    font_path: str = "DejaVuSans-Bold.ttf"
    job_workers: int = 2
    log_level: str = "INFO"

    @property
    def image_dir(self) -> Path:
        return self.storage_dir / "images"


def load_settings(env_path: Path | None = None) -> Settings:
    """Load `.env` (if present) and build settings from the environment."""
    path = env_path or ENV_PATH
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)

    return Settings(
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        text_model=os.environ.get("OPENAI_TEXT_MODEL", "gpt-4o"),
        image_model=os.environ.get("OPENAI_IMAGE_MODEL", "dall-e-3"),
        storage_dir=Path(os.environ.get("ADGEN_STORAGE_DIR", "storage")),
        media_url=os.environ.get("ADGEN_MEDIA_URL", "/media").rstrip("/") or "/media",
        fetch_timeout=float(os.environ.get("ADGEN_FETCH_TIMEOUT", "30")),
        font_path=os.environ.get("ADGEN_FONT_PATH", "DejaVuSans-Bold.ttf"),
        job_workers=int(os.environ.get("ADGEN_JOB_WORKERS", "2")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
