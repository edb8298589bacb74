"""
ReaderGate Pydantic models.
"""

import os
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from bastion.PathGate.models import Rejection, RejectionKind
from bastion.SignatureGate.models import ClassificationResult
from bastion.SignatureGate import is_executable_signature


def _as_text(path: Any) -> Optional[str]:
    if isinstance(path, os.PathLike):
        path = os.fspath(path)
    return path if isinstance(path, str) else None


class ReadErrorKind(str, Enum):
    """Why a read failed. The first four mirror RejectionKind."""
    INVALID_INPUT = "invalid_input"
    RESERVED_NAME = "reserved_name"
    ACCESS_DENIED = "access_denied"
    VALIDATION_ERROR = "validation_error"
    SENSITIVE_FILE = "sensitive_file"
    FILE_TOO_LARGE = "file_too_large"
    READ_FAILED = "read_failed"
    RATE_LIMITED = "rate_limited"

    @classmethod
    def from_rejection(cls, kind: RejectionKind) -> "ReadErrorKind":
        return cls(kind.value)


class ReadResult(BaseModel):
    """Result of a secure read or inspect."""
    success: bool
    operation_id: str
    path: Optional[str] = Field(default=None, description="Caller input, verbatim")
    data: Optional[bytes] = Field(default=None, exclude=True, repr=False)
    text: Optional[str] = Field(default=None, exclude=True, repr=False)
    offset: int = 0
    size_bytes: int = 0
    checksum: Optional[str] = Field(default=None, description="SHA-256 of the bytes read")
    detected_type: Optional[str] = None
    mime_type: Optional[str] = None
    category: Optional[str] = None
    is_executable: bool = False
    mismatch: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[ReadErrorKind] = None
    retry_after: Optional[int] = Field(default=None, description="Seconds to wait after a rate-limited call")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization (without the content)."""
        return self.model_dump(mode="json")

    @classmethod
    def failure(
        cls,
        operation_id: str,
        path: Any,
        error: str,
        error_kind: ReadErrorKind,
        **fields: Any,
    ) -> "ReadResult":
        return cls(
            success=False,
            operation_id=operation_id,
            path=_as_text(path),
            error=error,
            error_kind=error_kind,
            **fields,
        )

    @classmethod
    def from_rejection(cls, operation_id: str, path: Any, rejection: Rejection) -> "ReadResult":
        return cls.failure(
            operation_id,
            path,
            rejection.message,
            ReadErrorKind.from_rejection(rejection.kind),
        )

    @classmethod
    def classified(
        cls,
        operation_id: str,
        path: Any,
        classification: ClassificationResult,
        **fields: Any,
    ) -> "ReadResult":
        """Successful result carrying a classification."""
        matched = classification.matched_type
        return cls(
            success=True,
            operation_id=operation_id,
            path=_as_text(path),
            detected_type=matched.type_id if matched else None,
            mime_type=matched.mime_type if matched else None,
            category=matched.category.value if matched else None,
            is_executable=is_executable_signature(classification.type_id),
            mismatch=classification.mismatch.to_dict() if classification.mismatch else None,
            **fields,
        )
