from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from jobbank_crawler.config import ConfigLocator, ConfigRepository, CrawlerConfig, WorkerPoolConfig


def test_config_locator_uses_env_and_creates_directories(tmp_path: Path) -> None:
    locator = ConfigLocator()
    assert locator.project_root == tmp_path.resolve()
    assert locator.data_dir.exists()
    assert locator.logs_dir.exists()
    assert locator.config_path() == tmp_path.resolve() / "data" / "crawler_config.yaml"


def test_first_load_writes_defaults(temp_config_repository: ConfigRepository) -> None:
    config = temp_config_repository.load()
    path = temp_config_repository.locator.config_path()

    assert config == CrawlerConfig()
    assert path.exists()
    stored = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert stored["listing"]["page_size"] == 25
    assert stored["schedule"]["cron"] == "0 0 * * *"


def test_saved_config_roundtrip(tmp_path: Path) -> None:
    repo = ConfigRepository(ConfigLocator(project_root=tmp_path))
    config = CrawlerConfig(pool=WorkerPoolConfig(workers=4, stagger=0.25), enable_progress_bar=False)
    repo.save(config)

    fresh = ConfigRepository(ConfigLocator(project_root=tmp_path))
    assert fresh.load() == config


def test_explicit_json_path_bypasses_cache(temp_config_repository: ConfigRepository, tmp_path: Path) -> None:
    temp_config_repository.load()
    custom = tmp_path / "custom.json"
    custom.write_text(json.dumps({"listing": {"page_size": 50}}), encoding="utf-8")

    loaded = temp_config_repository.load(custom)

    assert loaded.listing.page_size == 50
    assert temp_config_repository.load().listing.page_size == 25


def test_explicit_missing_path_raises(temp_config_repository: ConfigRepository, tmp_path: Path) -> None:
    missing = tmp_path / "absent.yaml"
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load(missing)
    assert not missing.exists()


def test_invalid_file_contents_rejected(temp_config_repository: ConfigRepository, tmp_path: Path) -> None:
    bad_shape = tmp_path / "list.yaml"
    bad_shape.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        temp_config_repository.load(bad_shape)

    bad_value = tmp_path / "bad.yaml"
    bad_value.write_text("pool:\n  max_attempts: 0\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        temp_config_repository.load(bad_value)


def test_database_path_resolves_against_home(temp_config_repository: ConfigRepository, tmp_path: Path) -> None:
    config = temp_config_repository.load()
    assert temp_config_repository.database_path(config) == tmp_path.resolve() / "data" / "jobbank.db"

    absolute = tmp_path / "elsewhere" / "jobs.db"
    config.persistence.database_path = absolute
    assert temp_config_repository.database_path(config) == absolute
