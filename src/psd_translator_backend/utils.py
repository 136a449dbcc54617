"""
Utility functions for object key naming and filesystem operations.

This module provides helper functions for:
- Normalizing user-provided filenames into object store keys
- Deriving the output key of a translated document
- Ensuring directory creation for local state (SQLite database)
"""

from __future__ import annotations

import re
import time
from pathlib import Path

# Runs of whitespace collapse to a single hyphen
WHITESPACE_PATTERN = re.compile(r"\s+")

PSD_EXTENSION = ".psd"
TRANSLATED_SUFFIX = "-translated"


def sanitize_object_key(name: str) -> str:
    """
    Normalize a filename for use as an object store key.

    Whitespace is replaced with hyphens and the result is lower-cased, which
    keeps keys URL-safe and collision-predictable. Applying the function twice
    yields the same key.

    Args:
        name: The original filename

    Returns:
        The normalized key

    Example:
        >>> sanitize_object_key("My Poster  Final.PSD")
        "my-poster-final.psd"
    """
    return WHITESPACE_PATTERN.sub("-", name.strip()).lower()


def unique_upload_key(filename: str, now_ms: int | None = None) -> str:
    """
    Build a collision-resistant key for a browser direct upload.

    Args:
        filename: Filename supplied by the client
        now_ms: Millisecond timestamp to prefix (defaults to the current time)

    Returns:
        A key of the form ``<timestamp>-<sanitized filename>``
    """
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{timestamp}-{sanitize_object_key(filename)}"


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    Example:
        >>> split_extension("poster.psd")
        ("poster", ".psd")
    """
    path = Path(filename)
    return path.stem, path.suffix


def output_key_for(source_key: str) -> str:
    """
    Derive the key of the translated document from its source key.

    The source key is sanitized, its extension dropped, and
    ``-translated.psd`` appended. Any directory prefix is kept.

    Example:
        >>> output_key_for("Uploads/Summer Sale.psd")
        "uploads/summer-sale-translated.psd"
    """
    key = sanitize_object_key(source_key)
    parent, _, name = key.rpartition("/")
    stem, _ = split_extension(name)
    output_name = f"{stem or 'document'}{TRANSLATED_SUFFIX}{PSD_EXTENSION}"
    return f"{parent}/{output_name}" if parent else output_name


def is_psd_filename(filename: str) -> bool:
    return filename.lower().endswith(PSD_EXTENSION)


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
