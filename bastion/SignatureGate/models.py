"""
SignatureGate models.

Defines binary format descriptors and classification results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple


class SignatureCategory(str, Enum):
    """Category used for grouping and security classification."""
    DOCUMENT = "Document"
    IMAGE = "Image"
    EXECUTABLE = "Executable"
    ARCHIVE = "Archive"
    AUDIO = "Audio"
    VIDEO = "Video"
    CODE = "Code"
    OTHER = "Other"


@dataclass(frozen=True)
class MagicBytes:
    """A byte sequence expected at a fixed offset."""
    offset: int
    sequence: bytes

    def matches(self, buffer: bytes) -> bool:
        end = self.offset + len(self.sequence)
        if len(buffer) < end:
            return False
        return buffer[self.offset:end] == self.sequence


@dataclass(frozen=True)
class SignatureDescriptor:
    """
    One binary format in the signature database.

    A descriptor with magic bytes matches when any alternative matches
    and, if validators are enabled, its validator accepts the buffer. A
    descriptor without magic bytes is identified by its validator alone.
    """
    type_id: str
    category: SignatureCategory
    magic: Tuple[MagicBytes, ...]
    extensions: FrozenSet[str]
    mime_type: str
    description: str = ""
    validator: Optional[Callable[[bytes], bool]] = field(default=None, compare=False, repr=False)

    def matches(self, buffer: bytes, run_validators: bool = True) -> bool:
        """Test this descriptor against an already-bounded buffer."""
        if self.magic:
            if not any(alternative.matches(buffer) for alternative in self.magic):
                return False
            if run_validators and self.validator is not None:
                return bool(self.validator(buffer))
            return True

        if run_validators and self.validator is not None:
            return bool(self.validator(buffer))
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "type_id": self.type_id,
            "category": self.category.value,
            "mime_type": self.mime_type,
            "extensions": sorted(self.extensions),
            "description": self.description,
        }


@dataclass(frozen=True)
class ExtensionMismatch:
    """A file whose bytes disagree with every format its extension promises."""
    expected_types: FrozenSet[str]
    detected_type: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "expected_types": sorted(self.expected_types),
            "detected_type": self.detected_type,
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying a byte prefix."""
    matched_type: Optional[SignatureDescriptor] = None
    mismatch: Optional[ExtensionMismatch] = None

    @property
    def type_id(self) -> Optional[str]:
        return self.matched_type.type_id if self.matched_type else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "matched_type": self.matched_type.to_dict() if self.matched_type else None,
            "mismatch": self.mismatch.to_dict() if self.mismatch else None,
        }
