"""Pytest fixtures and configuration for papersort tests.

Provides common fixtures for configuration, registries and recognizers.
"""

import os
from pathlib import Path
from typing import Any, Generator

import pytest

from papersort.config import reset_config
from papersort.config_schema import AppConfig
from papersort.registry.store import BucketRegistry


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

subjects:
  - code: "CIT 417"
    name: "CIT 417: Data Driven Websites"
  - code: "CIR 405"
    name: "CIR 405: Distributed Systems"

matching:
  min_significant_words: 2
  sticky_requires_marker: false
  default_year: 2024

ocr:
  lang: "eng"
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "subjects": [
            {"code": "CIT 417", "name": "CIT 417: Data Driven Websites"},
            {"code": "CIR 405", "name": "CIR 405: Distributed Systems"},
        ],
        "matching": {
            "min_significant_words": 2,
            "sticky_requires_marker": False,
            "default_year": 2024,
        },
        "ocr": {"lang": "eng"},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def empty_config() -> AppConfig:
    """Return a config with no seed subjects, so every bucket is detected."""
    return AppConfig(subjects=[])


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the PAPERSORT_CONFIG_PATH environment variable."""
    old_value = os.environ.get("PAPERSORT_CONFIG_PATH")
    os.environ["PAPERSORT_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["PAPERSORT_CONFIG_PATH"]
    else:
        os.environ["PAPERSORT_CONFIG_PATH"] = old_value


@pytest.fixture
def registry() -> BucketRegistry:
    """Return an empty registry."""
    return BucketRegistry()


@pytest.fixture
def seeded_registry(sample_config: AppConfig) -> BucketRegistry:
    """Return a registry seeded with CIT 417 and CIR 405."""
    reg = BucketRegistry()
    reg.seed(sample_config.subjects)
    return reg

