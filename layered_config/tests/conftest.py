"""
Pytest configuration for configuration service tests
"""

import json
from pathlib import Path

import pytest
import yaml

from layered_config import ConfigServiceSettings


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, config_dir: Path) -> ConfigServiceSettings:
    """Service settings isolated to a temporary directory, live reload off"""
    return ConfigServiceSettings(
        config_dir=config_dir,
        key_file=tmp_path / ".encryption-key",
        watch_overlays=False,
    )


@pytest.fixture
def write_overlay(config_dir: Path):
    """Write an overlay file into the config directory; strings are written verbatim"""
    def _write(filename: str, data) -> Path:
        path = config_dir / filename
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        elif path.suffix in (".yaml", ".yml"):
            path.write_text(yaml.safe_dump(data), encoding="utf-8")
        else:
            path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write
