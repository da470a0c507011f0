"""Configuration loading helpers for jobbank-crawler."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import CrawlerConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_FILENAME = "crawler_config.yaml"
HOME_ENV_VAR = "JOBBANK_CRAWLER_HOME"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


def resolve_home(project_root: Path | None = None) -> Path:
    env_root = os.environ.get(HOME_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (project_root or Path(__file__).resolve().parents[2]).resolve()


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        root = resolve_home(self.project_root)
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: CrawlerConfig | None = None

    def load(self, path: Path | None = None) -> CrawlerConfig:
        """Load the configuration, writing defaults on first use.

        An explicit ``path`` (YAML or JSON) bypasses the cache and is never
        created when missing.
        """

        if path is not None:
            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {path}")
            if path.suffix not in CONFIG_EXTENSIONS:
                raise ValueError(f"Unsupported configuration format: {path.suffix}")
            return CrawlerConfig.model_validate(_read_file(path))
        if self._cache is not None:
            return self._cache
        default_path = self.locator.config_path()
        if default_path.exists():
            config = CrawlerConfig.model_validate(_read_file(default_path))
        else:
            config = CrawlerConfig()
            self.save(config)
        self._cache = config
        return config

    def save(self, config: CrawlerConfig, path: Path | None = None) -> Path:
        target = path or self.locator.config_path()
        _write_file(target, config.model_dump(mode="json"))
        if path is None:
            self._cache = config
        return target

    def database_path(self, config: CrawlerConfig) -> Path:
        return config.persistence.resolved_database_path(self.locator.project_root)


__all__ = [
    "CONFIG_EXTENSIONS",
    "CONFIG_FILENAME",
    "ConfigLocator",
    "ConfigRepository",
    "HOME_ENV_VAR",
    "resolve_home",
]
