"""Text helpers for matching recognized OCR text.

OCR output is untrusted input, so every regex operation uses the `regex`
library with a timeout passed at match time. A timed-out search is logged
and treated as "no match".

Usage:
    from papersort.classifier.text import extract_year, normalize_code

    extract_year("End of semester exam 2023")  # 2023
    normalize_code("CIT-417")                  # "CIT 417"
"""

from __future__ import annotations

import regex

from papersort.core.logging import get_logger

logger = get_logger(__name__)

# Regex timeout in seconds (all match-time operations MUST use this)
REGEX_TIMEOUT = 1.0

# Three letters, optional separator, three or four digits: "CIT 417", "CIR-405", "BBE:4010"
SUBJECT_CODE_PATTERN = regex.compile(r"\b[A-Z]{3}[\s-]?:?\s?\d{3,4}\b")

# Years 2010-2029
YEAR_PATTERN = regex.compile(r"\b20[12]\d\b")

# Continuation-page markers for multi-page scripts
CONTINUATION_PATTERN = regex.compile(r"PAGE\s+\d+|QUESTION|MARKS|SECTION", regex.IGNORECASE)

_WHITESPACE_PATTERN = regex.compile(r"\s+")

# Separators left over around a title once the code is cut out of its line
TITLE_STRIP_CHARS = " \t:-|.,;–—"


def search(pattern: regex.Pattern, text: str, step: str) -> regex.Match | None:
    """Run pattern.search with the timeout, returning None on timeout."""
    try:
        return pattern.search(text, timeout=REGEX_TIMEOUT)
    except TimeoutError:
        logger.warning("regex_timeout", step=step, text_length=len(text))
        return None


def normalize_text(text: str) -> str:
    return text.upper()


def compact(value: str) -> str:
    """Remove all whitespace ("CIT 417" -> "CIT417")."""
    return _WHITESPACE_PATTERN.sub("", value, timeout=REGEX_TIMEOUT)


def normalize_code(raw: str) -> str:
    """Turn a matched code into its canonical form.

    Colons are dropped, hyphens become spaces and whitespace runs collapse
    to a single space.
    """
    code = raw.replace(":", "").replace("-", " ")
    return _WHITESPACE_PATTERN.sub(" ", code, timeout=REGEX_TIMEOUT).strip()


def name_part(display_name: str) -> str:
    """Return the title after the first colon, or the whole name."""
    if ":" in display_name:
        title = display_name.split(":", 1)[1].strip()
        if title:
            return title
    return display_name


def significant_words(display_name: str, min_length: int = 4) -> list[str]:
    """Uppercased words of the name's title part at least min_length long."""
    return [word for word in name_part(display_name).upper().split() if len(word) >= min_length]


def has_continuation_marker(text: str) -> bool:
    return search(CONTINUATION_PATTERN, text, "continuation_marker") is not None


def extract_year(text: str) -> int | None:
    """Return the first year 2010-2029 found in the text, or None."""
    match = search(YEAR_PATTERN, text, "year")
    return int(match.group(0)) if match else None
