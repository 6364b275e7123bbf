"""Configuration loader.

This module provides configuration loading from YAML with automatic validation
against the Pydantic schema, plus a process-wide cached instance.

Usage:
    from papersort.config import get_config, load_config

    # Get current config (singleton)
    config = get_config()

    # Load a specific file, always fresh from disk
    config = load_config(Path("config/exams.yaml"))
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from papersort.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from papersort.core.errors import ConfigLoadError, ConfigValidationError
from papersort.core.logging import get_logger

logger = get_logger(__name__)

# Default config path - can be overridden via environment variable
DEFAULT_CONFIG_PATH = Path("config/config.yaml")

_config_lock = threading.Lock()
_current_config: AppConfig | None = None


def _get_config_path() -> Path:
    """Get the config file path from environment or default."""
    env_path = os.environ.get("PAPERSORT_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into actionable messages.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message with specific field errors
    """
    messages = []
    for err in error.errors():
        # Build field path (e.g., "subjects.0.code")
        field_path = ".".join(str(loc) for loc in err["loc"])
        msg = err["msg"]
        err_type = err["type"]

        if err_type == "missing":
            messages.append(f"  - Missing required field '{field_path}'")
        elif err_type == "string_type":
            messages.append(f"  - Field '{field_path}' must be a string")
        elif err_type == "int_type":
            messages.append(f"  - Field '{field_path}' must be an integer")
        elif err_type == "bool_type":
            messages.append(f"  - Field '{field_path}' must be true or false")
        else:
            messages.append(f"  - Field '{field_path}': {msg}")

    return "\n".join(messages)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Parsed YAML as dictionary

    Raises:
        ConfigLoadError: If file not found or YAML parse error
    """
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it by copying config/config.yaml.example to {path}"
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigLoadError(
                    f"Configuration file must be a YAML mapping, got {type(data).__name__}"
                )
            return data
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e


def _validate_config(data: dict[str, Any], path: Path) -> AppConfig:
    """Validate config data against Pydantic schema.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        error_details = _format_validation_errors(e)
        raise ConfigValidationError(
            f"Configuration validation failed for {path}:\n{error_details}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} is newer than "
            f"supported version {CURRENT_SCHEMA_VERSION}. "
            "Please upgrade papersort or downgrade the config."
        )

    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    This function always loads fresh from disk. For cached access, use
    get_config() instead.

    Args:
        path: Optional path to config file. If not provided, uses
              PAPERSORT_CONFIG_PATH env var or default.

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    config_path = path or _get_config_path()

    logger.debug("Loading configuration", path=str(config_path))

    data = _load_yaml(config_path)
    config = _validate_config(data, config_path)

    logger.info(
        "Configuration loaded successfully",
        path=str(config_path),
        schema_version=config.schema_version,
        subjects_count=len(config.subjects),
    )

    return config


def get_config() -> AppConfig:
    """Get the current configuration singleton.

    On first call, loads configuration from disk. When no config file
    exists at the default location, built-in defaults are used instead.

    Thread-safe: protected by _config_lock.

    Raises:
        ConfigLoadError: If an existing file cannot be loaded
        ConfigValidationError: If validation fails
    """
    global _current_config

    with _config_lock:
        if _current_config is None:
            config_path = _get_config_path()
            if config_path.exists():
                _current_config = load_config(config_path)
            else:
                logger.info("No configuration file, using defaults", path=str(config_path))
                _current_config = AppConfig()

        return _current_config


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Validate a config file without loading it into the singleton.

    Returns:
        Tuple of (is_valid, message)
    """
    config_path = path or _get_config_path()

    try:
        config = load_config(config_path)
        sticky = "marker pages only" if config.matching.sticky_requires_marker else "any page"
        return (
            True,
            f"Configuration valid (schema version {config.schema_version})\n"
            f"  - {len(config.subjects)} subjects\n"
            f"  - sticky matching: {sticky}\n"
            f"  - OCR language: {config.ocr.lang}",
        )
    except ConfigLoadError as e:
        return (False, f"Load error: {e}")
    except ConfigValidationError as e:
        return (False, f"Validation error: {e}")


def reset_config() -> None:
    """Reset the config singleton. Primarily for testing."""
    global _current_config
    with _config_lock:
        _current_config = None
