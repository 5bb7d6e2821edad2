"""Course code helpers."""

from __future__ import annotations

import re

DEFAULT_COURSE_LABEL = "Tutoría General"

_COURSE_IN_TEXT = re.compile(r"\b([A-Z]{3,4}\d{4})\b", re.IGNORECASE)
_COURSE_EXACT = re.compile(r"^([A-Z]{3,4})(\d{4})$")


def extract_course_from_title(title: str | None) -> str | None:
    """Extract a course code such as ``ISIS3710`` from free text."""
    if not title:
        return None
    match = _COURSE_IN_TEXT.search(title)
    return match.group(1).upper() if match else None


def contains_course_code(text: str | None) -> bool:
    return bool(text) and _COURSE_IN_TEXT.search(text) is not None


def parse_course(value: str | None, default: str = DEFAULT_COURSE_LABEL) -> str:
    """Standardize user-entered course codes ("isis 3710" -> "ISIS3710")."""
    if not value or not value.strip():
        return default
    cleaned = re.sub(r"\s+", "", value).upper()
    if _COURSE_EXACT.match(cleaned):
        return cleaned
    return value.strip().upper()


def resolve_course(explicit: str | None, title: str | None, default: str | None = DEFAULT_COURSE_LABEL) -> str | None:
    """Explicit course wins, then a code found in the title, then ``default``."""
    if explicit and explicit.strip():
        return parse_course(explicit)
    return extract_course_from_title(title) or default
