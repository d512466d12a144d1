"""Runtime configuration from environment variables.

Environment Variables:
    VALIDATION_ASSETS_PATH: Asset root read by the validation engines
        (default ``./assets``). Live package trees live below it.
    VALIDATION_ASSETS_DATA_PATH: Where history and staging are kept
        (default ``<asset root>/.versions``).
    VALIDATION_ASSETS_PROFILES_FILE: Profile document
        (default ``<asset root>/validation-profiles.yml``).
    VALIDATION_ASSETS_SYNC_ENABLED: ``true``/``false``; disables fetching.
    VALIDATION_ASSETS_SYNC_ON_STARTUP: ``true`` stages every package on start.
    VALIDATION_ASSETS_BASE_URL_OVERRIDE: Replaces scheme/host of package URLs.
    VALIDATION_ASSETS_CONNECT_TIMEOUT_MS: Default 10000.
    VALIDATION_ASSETS_READ_TIMEOUT_MS: Default 60000.

Non-positive or non-numeric timeouts fall back to their defaults with a
warning.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .fetcher import DEFAULT_CONNECT_TIMEOUT_MS, DEFAULT_READ_TIMEOUT_MS
from .profiles import PROFILES_FILE

logger = logging.getLogger(__name__)

ENV_PREFIX = "VALIDATION_ASSETS_"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_timeout(name: str, default: int) -> int:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"{ENV_PREFIX}{name}={value!r} is not an integer; using {default}")
        return default
    if parsed <= 0:
        logger.warning(f"{ENV_PREFIX}{name} must be positive (got {parsed}); using {default}")
        return default
    return parsed


@dataclass
class AssetSettings:
    """Resolved settings for one service instance."""

    asset_root: Path
    data_dir: Path
    profiles_file: Path
    sync_enabled: bool = True
    sync_on_startup: bool = False
    base_url_override: Optional[str] = None
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS

    @property
    def history_dir(self) -> Path:
        return self.data_dir / "history"

    @property
    def staging_dir(self) -> Path:
        return self.data_dir / "staging"

    @classmethod
    def for_root(cls, asset_root: Path, **overrides) -> "AssetSettings":
        """Settings with every path derived from ``asset_root``."""
        asset_root = Path(asset_root)
        values = {
            "asset_root": asset_root,
            "data_dir": asset_root / ".versions",
            "profiles_file": asset_root / PROFILES_FILE,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(cls) -> "AssetSettings":
        asset_root = Path(os.getenv(ENV_PREFIX + "PATH", "assets")).expanduser()
        data_dir = os.getenv(ENV_PREFIX + "DATA_PATH")
        profiles_file = os.getenv(ENV_PREFIX + "PROFILES_FILE")
        base_url = os.getenv(ENV_PREFIX + "BASE_URL_OVERRIDE")
        return cls.for_root(
            asset_root,
            data_dir=Path(data_dir).expanduser() if data_dir else asset_root / ".versions",
            profiles_file=(
                Path(profiles_file).expanduser() if profiles_file else asset_root / PROFILES_FILE
            ),
            sync_enabled=_env_bool("SYNC_ENABLED", True),
            sync_on_startup=_env_bool("SYNC_ON_STARTUP", False),
            base_url_override=base_url.strip() if base_url and base_url.strip() else None,
            connect_timeout_ms=_env_timeout("CONNECT_TIMEOUT_MS", DEFAULT_CONNECT_TIMEOUT_MS),
            read_timeout_ms=_env_timeout("READ_TIMEOUT_MS", DEFAULT_READ_TIMEOUT_MS),
        )
