from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from xml_ingest.config import ClaimBackend, ConfigLocator, ConfigRepository, IngestConfig, PollingConfig


def test_config_locator_uses_env_and_creates_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "service"
    monkeypatch.setenv("XML_INGEST_HOME", str(home))
    locator = ConfigLocator()
    assert locator.project_root == home.resolve()
    assert locator.data_dir.exists()
    assert locator.logs_dir.exists()
    assert locator.config_path() == home.resolve() / "data" / "ingest_config.yaml"


def test_explicit_root_wins_over_env(tmp_path: Path) -> None:
    locator = ConfigLocator(project_root=tmp_path / "explicit")
    assert locator.project_root == (tmp_path / "explicit").resolve()


def test_first_load_writes_defaults(temp_config_repository: ConfigRepository) -> None:
    assert not temp_config_repository.path.exists()
    config = temp_config_repository.load()
    assert config == IngestConfig()
    assert temp_config_repository.path.exists()
    raw = yaml.safe_load(temp_config_repository.path.read_text(encoding="utf-8"))
    assert raw["polling"]["filename_pattern"] == "*.xml"


def test_save_and_reload_roundtrip(temp_config_repository: ConfigRepository) -> None:
    config = IngestConfig(
        polling=PollingConfig(remote_directory="inbound", max_fetch_size=5),
        claim_store={"backend": "redis", "redis_url": "redis://cache:6379/1"},
    )
    temp_config_repository.save(config)
    loaded = temp_config_repository.reload()
    assert loaded == config
    assert loaded.claim_store.backend is ClaimBackend.REDIS


def test_load_reads_hand_written_yaml(tmp_path: Path) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text(
        "source: local\nlocal_directory: inbox\npolling:\n  poll_interval_ms: 200\n",
        encoding="utf-8",
    )
    repository = ConfigRepository(ConfigLocator(project_root=tmp_path), path=path)
    config = repository.load()
    assert config.local_directory == Path("inbox")
    assert config.polling.poll_interval_ms == 200
    assert repository.load() is config


def test_non_mapping_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    repository = ConfigRepository(ConfigLocator(project_root=tmp_path), path=path)
    with pytest.raises(ValueError):
        repository.load()


def test_unsupported_extension(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("x = 1\n", encoding="utf-8")
    repository = ConfigRepository(ConfigLocator(project_root=tmp_path), path=path)
    with pytest.raises(ValueError):
        repository.load()
