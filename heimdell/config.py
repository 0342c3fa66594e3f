"""
Centralized configuration for the Heimdell CLI.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from heimdell.config import get_config
    cfg = get_config()
    print(cfg.store.credentials_path)   # "<project>/.heimdell/credentials.json"
    print(cfg.http.timeout)             # 10.0
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    """Where credentials live on disk."""

    project_dir: Path = field(default_factory=Path.cwd)
    dirname: str = ".heimdell"
    global_dir: Path = field(default_factory=lambda: Path.home() / ".heimdell")

    @property
    def store_root(self) -> Path:
        return self.project_dir / self.dirname

    @property
    def credentials_path(self) -> Path:
        """The canonical (active) credentials file every command reads."""
        return self.store_root / "credentials.json"


@dataclass(frozen=True)
class HttpConfig:
    """Heimdell server HTTP settings."""

    timeout: float = 10.0
    user_agent: str = "heimdell-cli"


@dataclass(frozen=True)
class Config:
    """Top-level Heimdell configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    log_level: str = "WARNING"
    min_key_length: int = 7


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _env_float(name: str, default: float) -> float:
    """Read a positive number, falling back to the default on a bad value."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if not value > 0:
        logger.warning("Ignoring %s=%r, using %s", name, raw, default)
        return default
    return value


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    store = StoreConfig(
        project_dir=Path(os.environ.get("HEIMDELL_PROJECT_DIR", Path.cwd())),
        dirname=os.environ.get("HEIMDELL_STORE_DIRNAME", ".heimdell"),
        global_dir=Path(os.environ.get("HEIMDELL_HOME", Path.home() / ".heimdell")),
    )

    http = HttpConfig(
        timeout=_env_float("HEIMDELL_HTTP_TIMEOUT", 10.0),
    )

    return Config(
        store=store,
        http=http,
        log_level=os.environ.get("HEIMDELL_LOG_LEVEL", "WARNING").upper(),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
