"""Tests for configuration loading and validation."""

import os
from pathlib import Path

import pytest

from papersort.config import get_config, load_config, reset_config, validate_config_file
from papersort.config_schema import DEFAULT_SUBJECTS, AppConfig
from papersort.core.errors import ConfigLoadError, ConfigValidationError


class TestLoadConfig:
    def test_load_valid_file(self, config_file: Path):
        config = load_config(config_file)

        assert [s.code for s in config.subjects] == ["CIT 417", "CIR 405"]
        assert config.matching.default_year == 2024
        assert config.ocr.lang == "eng"
        assert config.logging.level == "INFO"

    def test_missing_file(self, temp_config_dir: Path):
        with pytest.raises(ConfigLoadError, match="not found"):
            load_config(temp_config_dir / "missing.yaml")

    def test_invalid_yaml(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("subjects: [unclosed\n")

        with pytest.raises(ConfigLoadError, match="Failed to parse YAML"):
            load_config(path)

    def test_non_mapping_rejected(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigLoadError, match="YAML mapping"):
            load_config(path)

    def test_empty_file_gives_defaults(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("")

        config = load_config(path)

        assert [s.code for s in config.subjects] == [s.code for s in DEFAULT_SUBJECTS]
        assert config.matching.sticky_requires_marker is False

    def test_duplicate_codes_rejected(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text(
            "subjects:\n"
            "  - {code: 'CIT 417', name: 'A'}\n"
            "  - {code: 'cit 417', name: 'B'}\n"
        )

        with pytest.raises(ConfigValidationError, match="Duplicate subject code"):
            load_config(path)

    def test_blank_code_rejected(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("subjects:\n  - {code: '  ', name: 'Blank'}\n")

        with pytest.raises(ConfigValidationError, match="subjects.0.code"):
            load_config(path)

    def test_missing_name_reported(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("subjects:\n  - {code: 'CIT 417'}\n")

        with pytest.raises(ConfigValidationError, match="Missing required field 'subjects.0.name'"):
            load_config(path)

    def test_newer_schema_version_rejected(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("schema_version: 99\n")

        with pytest.raises(ConfigValidationError, match="newer than supported"):
            load_config(path)

    def test_out_of_range_threshold(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("matching:\n  min_significant_words: 0\n")

        with pytest.raises(ConfigValidationError, match="matching.min_significant_words"):
            load_config(path)


class TestSchema:
    def test_codes_are_stripped(self):
        config = AppConfig(subjects=[{"code": " CIT 417 ", "name": "x"}])
        assert config.subjects[0].code == "CIT 417"

    def test_blank_tesseract_cmd_is_unset(self):
        config = AppConfig(ocr={"tesseract_cmd": "  "})
        assert config.ocr.tesseract_cmd is None

    def test_default_year_can_be_disabled(self):
        config = AppConfig(matching={"default_year": None})
        assert config.matching.default_year is None

    def test_default_subjects_not_shared(self):
        first = AppConfig()
        first.subjects.clear()
        assert len(AppConfig().subjects) == len(DEFAULT_SUBJECTS)


class TestGetConfig:
    def test_singleton_from_env_path(self, set_config_env):
        config = get_config()
        assert config is get_config()
        assert len(config.subjects) == 2

    def test_reset_reloads(self, set_config_env, config_file: Path):
        first = get_config()
        config_file.write_text("subjects: []\n")
        assert get_config() is first

        reset_config()

        assert get_config().subjects == []

    def test_defaults_when_file_missing(self, temp_config_dir: Path, monkeypatch):
        monkeypatch.setenv("PAPERSORT_CONFIG_PATH", str(temp_config_dir / "absent.yaml"))

        config = get_config()

        assert len(config.subjects) == len(DEFAULT_SUBJECTS)

    def test_invalid_existing_file_raises(self, temp_config_dir: Path, monkeypatch):
        path = temp_config_dir / "config.yaml"
        path.write_text("schema_version: 99\n")
        monkeypatch.setenv("PAPERSORT_CONFIG_PATH", str(path))

        with pytest.raises(ConfigValidationError):
            get_config()


class TestValidateConfigFile:
    def test_valid(self, config_file: Path):
        valid, message = validate_config_file(config_file)

        assert valid is True
        assert "schema version 1" in message
        assert "2 subjects" in message
        assert "sticky matching: any page" in message

    def test_load_error(self, temp_config_dir: Path):
        valid, message = validate_config_file(temp_config_dir / "nope.yaml")
        assert valid is False
        assert message.startswith("Load error:")

    def test_validation_error(self, temp_config_dir: Path):
        path = temp_config_dir / "config.yaml"
        path.write_text("logging:\n  level: LOUD\n")

        valid, message = validate_config_file(path)

        assert valid is False
        assert message.startswith("Validation error:")
        assert "logging.level" in message

    def test_uses_env_path_by_default(self, set_config_env):
        valid, _ = validate_config_file()
        assert valid is True
        assert os.environ["PAPERSORT_CONFIG_PATH"].endswith("config.yaml")
