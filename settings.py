"""Configuration loaded from environment variables, and logging setup."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from errors import ConfigurationError


def _load_env_file(path: str = ".env") -> None:
    """Populate os.environ from the provided .env file if it exists."""
    env_path = Path(path)
    if not env_path.exists():
        return

    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


@dataclass(frozen=True)
class Settings:
    """Process-wide defaults for extraction and the image collaborator."""

    log_level: str = "INFO"

    k: int = 10
    sample_rate: float = 0.1
    runs: int = 5
    seed: Optional[int] = 42
    workers: int = 1

    max_image_size: int = 1000
    cache_size: int = 128


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"expected an integer, got {raw!r}",
                                 operation="settings", parameter=name)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"expected a number, got {raw!r}",
                                 operation="settings", parameter=name)


def _env_seed(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is not None and raw.strip().lower() == "none":
        return None
    return _env_int(name, default)


def _build_settings() -> Settings:
    _load_env_file()

    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        k=_env_int("PALETTE_K", 10),
        sample_rate=_env_float("PALETTE_SAMPLE_RATE", 0.1),
        runs=_env_int("PALETTE_RUNS", 5),
        seed=_env_seed("PALETTE_SEED", 42),
        workers=_env_int("PALETTE_WORKERS", 1),
        max_image_size=_env_int("PALETTE_MAX_IMAGE_SIZE", 1000),
        cache_size=_env_int("PALETTE_CACHE_SIZE", 128),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""
    return _build_settings()


def configure_logging() -> None:
    """Configure the root logger for command-line use."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
