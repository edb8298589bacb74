"""
PathGate models.

Defines the validation policy, the success value of the pipeline, and the
rejection taxonomy.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Pattern, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Rejections
# =============================================================================


class RejectionKind(str, Enum):
    """Every way the pipeline can refuse a path."""
    INVALID_INPUT = "invalid_input"
    RESERVED_NAME = "reserved_name"
    ACCESS_DENIED = "access_denied"
    VALIDATION_ERROR = "validation_error"


class PathRejected(Exception):
    """Base class for pipeline failures. Carries a RejectionKind."""
    kind: RejectionKind = RejectionKind.ACCESS_DENIED

    def __init__(self, message: str, raw_path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.raw_path = raw_path


class InvalidInputError(PathRejected):
    """Malformed, oversized or illegal-character path."""
    kind = RejectionKind.INVALID_INPUT


class ReservedNameError(PathRejected):
    """A component is a reserved device name (CON, NUL, COM1, ...)."""
    kind = RejectionKind.RESERVED_NAME


class AccessDeniedError(PathRejected):
    """Policy or permission denial."""
    kind = RejectionKind.ACCESS_DENIED


class PathValidationError(PathRejected):
    """Disallowed symlink, or the opened object is not a regular file."""
    kind = RejectionKind.VALIDATION_ERROR


_ERRORS_BY_KIND = {
    RejectionKind.INVALID_INPUT: InvalidInputError,
    RejectionKind.RESERVED_NAME: ReservedNameError,
    RejectionKind.ACCESS_DENIED: AccessDeniedError,
    RejectionKind.VALIDATION_ERROR: PathValidationError,
}


class Rejection(BaseModel):
    """
    A refused path.

    The message only ever repeats the caller's raw input; resolved paths
    and policy contents are never included.
    """
    model_config = ConfigDict(frozen=True)

    kind: RejectionKind
    message: str
    raw_path: Optional[str] = Field(default=None, description="Caller input, verbatim")

    @classmethod
    def from_error(cls, error: PathRejected) -> "Rejection":
        return cls(kind=error.kind, message=error.message, raw_path=error.raw_path)

    def to_exception(self) -> PathRejected:
        """Typed exception matching this rejection, for callers that raise."""
        return _ERRORS_BY_KIND[self.kind](self.message, self.raw_path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json")


# =============================================================================
# Success value
# =============================================================================


class ValidatedPath(BaseModel):
    """
    A path that passed every layer of the pipeline.

    Never cache one: the filesystem can change between validation and use.
    """
    model_config = ConfigDict(frozen=True)

    raw_input: str
    resolved_real_path: str = Field(description="Absolute, canonical path")
    existed: bool = Field(description="Whether the target existed at validation time")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json")


PathResult = Union[ValidatedPath, Rejection]


# =============================================================================
# Policy
# =============================================================================


def _absolute_dirs(paths: Optional[Iterable[str]]) -> Optional[Tuple[str, ...]]:
    if paths is None:
        return None
    result = []
    for path in paths:
        path = os.path.abspath(os.fspath(path))
        if path not in result:
            result.append(path)
    return tuple(result)


def _aliases(paths: Iterable[str]) -> Tuple[str, ...]:
    """Both the lexical and the canonical form of each directory."""
    result = []
    for path in paths:
        for form in (path, os.path.realpath(path)):
            if form not in result:
                result.append(form)
    return tuple(result)


def _compile(patterns: Iterable[Union[str, Pattern]]) -> Tuple[Pattern, ...]:
    return tuple(
        p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
        for p in patterns
    )


@dataclass(frozen=True)
class PathPolicy:
    """
    Immutable policy snapshot for one or more pipeline calls.

    Attributes:
        allowed_roots: Extra containment roots; None means whitelist-governed only
        default_allowed: Platform default directories
        custom_allowed: User-configured directories
        blocked_patterns: Always-denied patterns, checked before any whitelist
        allow_symlinks: Follow and canonicalize symlinks (False rejects them)
        enforce_whitelist: Apply the blacklist/whitelist decision layer
    """
    allowed_roots: Optional[Tuple[str, ...]] = None
    default_allowed: Tuple[str, ...] = ()
    custom_allowed: Tuple[str, ...] = ()
    blocked_patterns: Tuple[Pattern, ...] = ()
    allow_symlinks: bool = True
    enforce_whitelist: bool = True
    _root_aliases: Tuple[str, ...] = field(default=(), init=False, repr=False, compare=False)
    _whitelist_aliases: Tuple[str, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "allowed_roots", _absolute_dirs(self.allowed_roots))
        object.__setattr__(self, "default_allowed", _absolute_dirs(self.default_allowed))
        object.__setattr__(self, "custom_allowed", _absolute_dirs(self.custom_allowed))
        object.__setattr__(self, "blocked_patterns", _compile(self.blocked_patterns))
        object.__setattr__(self, "_root_aliases", _aliases(self.allowed_roots or ()))
        object.__setattr__(
            self,
            "_whitelist_aliases",
            _aliases(self.default_allowed + self.custom_allowed),
        )

    @property
    def whitelist(self) -> Tuple[str, ...]:
        """Default and custom allowed directories, in that order."""
        return self.default_allowed + self.custom_allowed

    @property
    def root_aliases(self) -> Tuple[str, ...]:
        return self._root_aliases

    @property
    def whitelist_aliases(self) -> Tuple[str, ...]:
        return self._whitelist_aliases

    def replace(self, **changes) -> "PathPolicy":
        """Copy of this policy with some fields changed."""
        values = {
            "allowed_roots": self.allowed_roots,
            "default_allowed": self.default_allowed,
            "custom_allowed": self.custom_allowed,
            "blocked_patterns": self.blocked_patterns,
            "allow_symlinks": self.allow_symlinks,
            "enforce_whitelist": self.enforce_whitelist,
        }
        values.update(changes)
        return PathPolicy(**values)


@dataclass(frozen=True)
class ResolveOptions:
    """
    Per-call options.

    allow_symlinks overrides the policy when not None. base_dir defaults
    to the current working directory at call time.
    """
    require_exists: bool = False
    check_write: bool = False
    allow_symlinks: Optional[bool] = None
    base_dir: Optional[str] = None
