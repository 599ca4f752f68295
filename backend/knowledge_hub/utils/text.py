"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def excerpt(text: str, limit: int = 200) -> str:
    """Return a whitespace-normalised prefix of ``text`` capped at ``limit`` chars."""
    flat = normalize(text)
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3].rstrip() + "..."


def file_extension(filename: str, default: str = "bin") -> str:
    """Return the lower-cased text after the last dot, or ``default``."""
    name = filename.rsplit("/", 1)[-1]
    if "." not in name:
        return default
    ext = name.rsplit(".", 1)[1].strip().lower()
    return ext or default
