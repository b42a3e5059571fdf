"""Configuration loading helpers for starsync."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import GlobalConfig

GLOBAL_CONFIG_FILENAME = "config.yaml"
HOME_ENV = "STARSYNC_HOME"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix == ".json":
            json.dump(payload, stream, indent=2, ensure_ascii=False)
        else:
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)


def resolve_home(default: Path | None = None) -> Path:
    """STARSYNC_HOME wins; otherwise the given default or the checkout root."""

    env_root = os.environ.get(HOME_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (default or Path(__file__).resolve().parents[2]).resolve()


@dataclass(slots=True)
class ConfigLocator:
    """Resolve the data and log directories under the project home."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        self.project_root = resolve_home(self.project_root)
        self.data_dir = self.project_root / "data"
        self.logs_dir = self.project_root / "logs"
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME


class ConfigRepository:
    """Load, cache and persist the global config; derive store path and token."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cached: GlobalConfig | None = None

    def load_global_config(self) -> GlobalConfig:
        if self._cached is None:
            path = self.locator.global_config_path()
            if path.exists():
                self._cached = GlobalConfig.model_validate(_read_file(path))
            else:
                # first run writes the defaults to disk
                self.save_global_config(GlobalConfig())
        return self._cached

    def save_global_config(self, config: GlobalConfig) -> None:
        _write_file(self.locator.global_config_path(), config.model_dump(mode="json"))
        self._cached = config

    def reload(self) -> GlobalConfig:
        self._cached = None
        return self.load_global_config()

    def store_path(self, config: GlobalConfig | None = None) -> Path:
        config = config or self.load_global_config()
        return config.store.resolved_path(self.locator.project_root)

    def resolve_token(self, config: GlobalConfig | None = None) -> str | None:
        """Explicit config token wins over the environment variable."""

        config = config or self.load_global_config()
        if config.api.token:
            return config.api.token
        value = os.environ.get(config.api.token_env, "").strip()
        return value or None


__all__ = ["ConfigLocator", "ConfigRepository", "HOME_ENV", "resolve_home"]
