"""Configuration loading helpers for xml-ingest."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import IngestConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_FILENAME = "ingest_config.yaml"
HOME_ENV = "XML_INGEST_HOME"


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


@dataclass(slots=True)
class ConfigLocator:
    """Resolve the service home and its data/log directories."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV)
        if self.project_root is not None:
            root = Path(self.project_root)
        elif env_root:
            root = Path(env_root).expanduser()
        else:
            root = Path(__file__).resolve().parents[2]
        root = root.resolve()
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
    """Load, cache and persist the service configuration."""

    def __init__(self, locator: ConfigLocator | None = None, path: Path | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self.path = Path(path) if path is not None else self.locator.config_path()
        self._cache: IngestConfig | None = None

    def load(self) -> IngestConfig:
        if self._cache is not None:
            return self._cache
        if self.path.exists():
            if self.path.suffix not in CONFIG_EXTENSIONS:
                raise ValueError(f"Unsupported configuration format: {self.path.suffix}")
            config = IngestConfig.model_validate(_read_file(self.path))
        else:
            config = IngestConfig()
            self.save(config)
        self._cache = config
        return config

    def save(self, config: IngestConfig) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _write_file(self.path, config.model_dump(mode="json"))
        self._cache = config
        return self.path

    def reload(self) -> IngestConfig:
        self._cache = None
        return self.load()


__all__ = ["CONFIG_EXTENSIONS", "CONFIG_FILENAME", "ConfigLocator", "ConfigRepository", "HOME_ENV"]
