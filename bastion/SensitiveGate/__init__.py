"""
SensitiveGate - Sensitive path recognition for Bastion.

Pure string matching over paths: flags credential, key and history files
so they are neither read nor written to logs. Never touches the
filesystem, so a path can be sensitive without existing.

Usage:
    from bastion.SensitiveGate import is_sensitive, sanitize_for_logging

    if is_sensitive(path):
        ...

    _log.info(f"Reading {sanitize_for_logging(path)}")
"""

import os
from typing import List, Optional, Tuple

from .models import SensitivityVerdict
from .patterns import (
    PatternScope,
    SensitivePattern,
    SENSITIVE_PATTERNS,
    SENSITIVE_DIRECTORIES,
    STRICT_SENSITIVE_PATTERNS,
)

REDACTION_MARKER = "[REDACTED_SENSITIVE]"
INVALID_PATH_MARKER = "[INVALID_PATH]"


def _normalize(path) -> Optional[Tuple[str, str]]:
    """Return (normalized_path, final_segment), or None for unusable input."""
    if isinstance(path, os.PathLike):
        path = os.fspath(path)
    if not isinstance(path, str) or not path:
        return None

    normalized = path.lower().replace("\\", "/")
    name = normalized.rstrip("/").rsplit("/", 1)[-1]
    return normalized, name


def _first_match(path, strict: bool = False) -> Optional[Tuple[SensitivePattern, bool]]:
    """Find the first matching pattern; the flag is True for directory patterns."""
    normalized = _normalize(path)
    if normalized is None:
        return None

    full, name = normalized
    file_patterns: List[SensitivePattern] = (
        STRICT_SENSITIVE_PATTERNS if strict else SENSITIVE_PATTERNS
    )

    for pattern in file_patterns:
        if pattern.matches(full, name):
            return pattern, False

    for pattern in SENSITIVE_DIRECTORIES:
        if pattern.matches(full, name):
            return pattern, True

    return None


def is_sensitive(path, strict: bool = False) -> bool:
    """
    Check whether a path names sensitive material.

    Args:
        path: Path string (any separator style)
        strict: Also apply the extended high-paranoia pattern set

    Returns:
        True if any file or directory pattern matches
    """
    return _first_match(path, strict) is not None


def describe_match(path, strict: bool = False) -> Optional[str]:
    """
    Describe which pattern flagged a path.

    Only the pattern description is returned, never the path itself, so
    the result is safe to put into an audit log.
    """
    hit = _first_match(path, strict)
    if hit is None:
        return None

    pattern, is_directory = hit
    return f"directory: {pattern.description}" if is_directory else pattern.description


def check_sensitive(path, strict: bool = False) -> SensitivityVerdict:
    """Full verdict for a path."""
    description = describe_match(path, strict)
    return SensitivityVerdict(
        is_sensitive=description is not None,
        matched_pattern_description=description,
    )


def sanitize_for_logging(path, strict: bool = False) -> str:
    """
    Make a path safe to log.

    The final segment of a sensitive path is replaced with a redaction
    marker; any other path is returned unchanged.

    Example:
        sanitize_for_logging("/home/user/.env")  ->  "/home/user/[REDACTED_SENSITIVE]"
    """
    if isinstance(path, os.PathLike):
        path = os.fspath(path)
    if not isinstance(path, str) or not path:
        return INVALID_PATH_MARKER

    if not is_sensitive(path, strict):
        return path

    trimmed = path.rstrip("/\\")
    cut = max(trimmed.rfind("/"), trimmed.rfind("\\"))
    directory = trimmed[:cut + 1] if cut >= 0 else ""
    return f"{directory}{REDACTION_MARKER}"


__all__ = [
    "SensitivityVerdict",
    "SensitivePattern",
    "PatternScope",
    "SENSITIVE_PATTERNS",
    "SENSITIVE_DIRECTORIES",
    "STRICT_SENSITIVE_PATTERNS",
    "REDACTION_MARKER",
    "is_sensitive",
    "describe_match",
    "check_sensitive",
    "sanitize_for_logging",
]
