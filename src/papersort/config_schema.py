"""Pydantic configuration schema for papersort.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models when loaded.

Usage:
    from papersort.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class SubjectConfig(BaseModel):
    """A known subject, seeded as an empty bucket at the start of each run."""

    code: str = Field(description="Subject code, e.g. 'CIT 417'")
    name: str = Field(description="Display name, e.g. 'CIT 417: Data Driven Websites'")

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Ensure the code is not blank."""
        if not v or not v.strip():
            raise ValueError("Subject code cannot be empty")
        return v.strip()


DEFAULT_SUBJECTS = [
    SubjectConfig(code="CIT 417", name="CIT 417: Data Driven Websites"),
    SubjectConfig(code="CIR 405", name="CIR 405: Distributed Systems"),
    SubjectConfig(code="CIT 423", name="CIT 423: IT Project Management"),
    SubjectConfig(
        code="BBE 401",
        name="BBE 401: Entrepreneurship and Small Business Management",
    ),
    SubjectConfig(code="CIR 401", name="CIR 401: Management Information Systems"),
    SubjectConfig(code="CIT 421", name="CIT 421: Information Technology and Development"),
]


class MatchingConfig(BaseModel):
    """Tunables for the text matching heuristics."""

    min_significant_words: int = Field(
        default=2,
        ge=1,
        le=20,
        description="Significant name words that must appear for a fuzzy name match",
    )
    significant_word_min_length: int = Field(
        default=4,
        ge=1,
        le=30,
        description="Minimum length of a word counted as significant",
    )
    min_title_length: int = Field(
        default=5,
        ge=0,
        le=200,
        description="A detected title must be longer than this to name a new bucket",
    )
    sticky_requires_marker: bool = Field(
        default=False,
        description=(
            "Only attach unmatched pages to the previous subject when they look like "
            "continuation pages (page N, question, marks, section)"
        ),
    )
    default_year: int | None = Field(
        default=2024,
        ge=1900,
        le=2100,
        description="Placeholder cohort year for documents with no detected year",
    )


class OcrConfig(BaseModel):
    """Tesseract OCR settings."""

    lang: str = Field(default="eng", description="Tesseract language code(s)")
    tesseract_cmd: str | None = Field(
        default=None,
        description="Path to the tesseract binary (default: found on PATH)",
    )
    extra_args: str = Field(
        default="--oem 1 --psm 3",
        description="Extra command-line configuration passed to tesseract",
    )
    max_image_pixels: int = Field(
        default=200_000_000,
        ge=1_000_000,
        description="Pillow decompression-bomb limit",
    )

    @field_validator("tesseract_cmd")
    @classmethod
    def validate_tesseract_cmd(cls, v: str | None) -> str | None:
        """Treat a blank path as unset."""
        if v is not None and not v.strip():
            return None
        return v


class LoggingConfig(BaseModel):
    """Log output settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(
        default=False,
        description="Emit JSON log lines instead of console output",
    )


class AppConfig(BaseModel):
    """Root configuration schema for papersort.

    This model validates the entire config.yaml structure. Every section
    has defaults, so an empty file yields a working configuration.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    subjects: list[SubjectConfig] = Field(
        default_factory=lambda: list(DEFAULT_SUBJECTS),
        description="Known subjects seeded as empty buckets",
    )
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    ocr: OcrConfig = Field(default_factory=OcrConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("subjects")
    @classmethod
    def validate_unique_codes(cls, v: list[SubjectConfig]) -> list[SubjectConfig]:
        """Subject codes must be unique, ignoring case."""
        seen: set[str] = set()
        for subject in v:
            key = subject.code.upper()
            if key in seen:
                raise ValueError(f"Duplicate subject code '{subject.code}'")
            seen.add(key)
        return v
