"""
SignatureGate - Content-based file type detection for Bastion.

Identifies what a file actually is from its leading bytes, independent of
its name, and flags files whose extension disagrees with their content
(a ".pdf" that is really a Windows executable).

Usage:
    from bastion.SignatureGate import classify, detect_extension_mismatch

    result = classify(data, path="report.pdf")
    if result.mismatch:
        _log.warning(f"{result.mismatch.detected_type} disguised as {sorted(result.mismatch.expected_types)}")

All functions here are pure: the database is immutable and nothing is
cached between calls, so they are safe to call from any thread.
"""

import os
from typing import BinaryIO, List, Optional, Tuple, Union

from bastion.shared.gate import GateLogger

from .models import (
    ClassificationResult,
    ExtensionMismatch,
    MagicBytes,
    SignatureCategory,
    SignatureDescriptor,
)
from .signatures import (
    DEFAULT_SCAN_BYTES,
    EXECUTABLE_SIGNATURES,
    FILE_SIGNATURES,
    SIGNATURES_BY_EXTENSION,
    SIGNATURES_BY_TYPE,
)

_log = GateLogger.get("SignatureGate")

Buffer = Union[bytes, bytearray, memoryview]


def _bounded(buffer: Buffer, max_read_bytes: int) -> bytes:
    if max_read_bytes <= 0:
        raise ValueError("max_read_bytes must be positive")
    return bytes(buffer[:max_read_bytes])


def _extension(path) -> str:
    if isinstance(path, os.PathLike):
        path = os.fspath(path)
    return os.path.splitext(path)[1].lower()


# =============================================================================
# Matching
# =============================================================================


def match_signature(
    buffer: Buffer,
    max_read_bytes: int = DEFAULT_SCAN_BYTES,
    run_validators: bool = True,
) -> Optional[SignatureDescriptor]:
    """
    Find the first descriptor whose signature matches the buffer.

    Args:
        buffer: File content, usually a prefix of the file
        max_read_bytes: Only this many leading bytes are inspected
        run_validators: Run structural validators (needed to tell ZIP-based
            formats apart); when False, magic bytes alone decide

    Returns:
        The matching descriptor, or None for an empty buffer or no match
    """
    data = _bounded(buffer, max_read_bytes)
    if not data:
        return None

    for descriptor in FILE_SIGNATURES:
        if descriptor.matches(data, run_validators):
            return descriptor

    return None


def _find_mismatch(
    path,
    data: bytes,
    detected: Optional[SignatureDescriptor],
    run_validators: bool,
) -> Optional[ExtensionMismatch]:
    if path is None or detected is None:
        return None

    ext = _extension(path)
    if not ext:
        return None

    expected = SIGNATURES_BY_EXTENSION.get(ext)
    if not expected:
        # Extension unknown to the database: nothing to disagree with
        return None

    if detected in expected:
        return None

    # Formats sharing magic bytes (OLE2, CAFEBABE, RIFF) resolve to the
    # first declared one; the content may still fit the extension.
    if any(descriptor.matches(data, run_validators) for descriptor in expected):
        return None

    return ExtensionMismatch(
        expected_types=frozenset(d.type_id for d in expected),
        detected_type=detected.type_id,
    )


def classify(
    buffer: Buffer,
    path=None,
    max_read_bytes: int = DEFAULT_SCAN_BYTES,
    run_validators: bool = True,
) -> ClassificationResult:
    """
    Classify a byte prefix and, if a path is given, check it against the
    path's extension.

    Args:
        buffer: File content, usually a prefix of the file
        path: Optional file name or path whose extension is checked
        max_read_bytes: Only this many leading bytes are inspected
        run_validators: Run structural validators

    Returns:
        ClassificationResult with matched_type and an optional mismatch
    """
    data = _bounded(buffer, max_read_bytes)
    detected = match_signature(data, max_read_bytes, run_validators)
    mismatch = _find_mismatch(path, data, detected, run_validators)

    if mismatch is not None:
        _log.debug(
            f"Extension mismatch: detected {mismatch.detected_type}, "
            f"expected one of {sorted(mismatch.expected_types)}"
        )

    return ClassificationResult(matched_type=detected, mismatch=mismatch)


def detect_extension_mismatch(
    path,
    buffer: Buffer,
    max_read_bytes: int = DEFAULT_SCAN_BYTES,
    run_validators: bool = True,
) -> Optional[ExtensionMismatch]:
    """
    Report a file whose content contradicts its extension.

    Returns None when the path has no extension, the extension is not
    registered, the content is unrecognized, or the content matches any
    format registered for the extension.
    """
    if not _extension(path):
        return None
    return classify(buffer, path, max_read_bytes, run_validators).mismatch


def classify_stream(
    stream: BinaryIO,
    path=None,
    max_read_bytes: int = DEFAULT_SCAN_BYTES,
    run_validators: bool = True,
) -> Tuple[bytes, ClassificationResult]:
    """
    Read a bounded prefix from an open binary stream and classify it.

    The stream is read from its current position and left after the
    prefix. Returns the prefix together with the result so callers can
    keep using the bytes already consumed.
    """
    if max_read_bytes <= 0:
        raise ValueError("max_read_bytes must be positive")

    chunks: List[bytes] = []
    remaining = max_read_bytes
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)

    prefix = b"".join(chunks)
    return prefix, classify(prefix, path, max_read_bytes, run_validators)


# =============================================================================
# Lookups
# =============================================================================


def get_signature_by_type(type_id: str) -> Optional[SignatureDescriptor]:
    """Look up a descriptor by its type id (e.g. "PDF")."""
    return SIGNATURES_BY_TYPE.get(type_id)


def get_signatures_by_extension(extension: str) -> Tuple[SignatureDescriptor, ...]:
    """All descriptors registered for an extension, with or without the dot."""
    if not extension:
        return ()
    ext = extension.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    return SIGNATURES_BY_EXTENSION.get(ext, ())


def get_signatures_by_category(
    category: Union[SignatureCategory, str],
) -> Tuple[SignatureDescriptor, ...]:
    category = SignatureCategory(category)
    return tuple(d for d in FILE_SIGNATURES if d.category == category)


def is_executable_signature(type_id: Optional[str]) -> bool:
    return type_id in EXECUTABLE_SIGNATURES


def is_executable_content(
    buffer: Buffer,
    max_read_bytes: int = DEFAULT_SCAN_BYTES,
) -> bool:
    """True when the content is an executable format or a shebang script."""
    descriptor = match_signature(buffer, max_read_bytes)
    return descriptor is not None and is_executable_signature(descriptor.type_id)


__all__ = [
    # Models
    "SignatureCategory",
    "MagicBytes",
    "SignatureDescriptor",
    "ExtensionMismatch",
    "ClassificationResult",
    # Database
    "DEFAULT_SCAN_BYTES",
    "EXECUTABLE_SIGNATURES",
    "FILE_SIGNATURES",
    "SIGNATURES_BY_TYPE",
    "SIGNATURES_BY_EXTENSION",
    # Operations
    "match_signature",
    "classify",
    "detect_extension_mismatch",
    "classify_stream",
    "get_signature_by_type",
    "get_signatures_by_extension",
    "get_signatures_by_category",
    "is_executable_signature",
    "is_executable_content",
]
