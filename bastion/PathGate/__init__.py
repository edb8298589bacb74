"""
PathGate - Path validation for Bastion.

Turns an untrusted path string into a resolved, containment-proven,
access-checked location, or a typed Rejection.

Provides:
- Layered validation (expansion, character and reserved-name checks,
  blacklist/whitelist, symlink policy, canonicalization, containment,
  permission checks)
- TOCTOU-safe opening that refuses to follow a symlink at the final step
- Async variants that run the blocking filesystem calls in a worker thread

Usage:
    from bastion.PathGate import PathGate
    from bastion.Config import PolicySource

    gate = PathGate(PolicySource.load())

    result = gate.resolve("~/Documents/report.pdf", require_exists=True)
    if isinstance(result, Rejection):
        ...

    opened = gate.open_validated("~/Documents/report.pdf")
    if not isinstance(opened, Rejection):
        with opened:
            data = opened.file.read()

Never cache a ValidatedPath; resolve again before every use.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from bastion.shared.gate import GateLogger
from bastion.SensitiveGate import sanitize_for_logging

from .models import (
    RejectionKind,
    PathRejected,
    InvalidInputError,
    ReservedNameError,
    AccessDeniedError,
    PathValidationError,
    Rejection,
    ValidatedPath,
    PathResult,
    PathPolicy,
    ResolveOptions,
)
from .security import (
    MAX_PATH_BYTES,
    check_characters,
    check_reserved_names,
    check_type,
    expand_path,
    is_blocked,
    is_within,
    open_no_follow,
    run_pipeline,
    to_absolute,
)

# Logger for this gate
_log = GateLogger.get("PathGate")


@dataclass
class ValidatedFile:
    """An open, read-only handle on a validated regular file."""
    path: ValidatedPath
    file: BinaryIO

    def close(self) -> None:
        self.file.close()

    def __enter__(self) -> "ValidatedFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


OpenResult = Union[ValidatedFile, Rejection]


def _reject(error: PathRejected, raw) -> Rejection:
    rejection = Rejection.from_error(error)
    _log.warning(f"Rejected ({rejection.kind.value}): {sanitize_for_logging(raw)}")
    return rejection


# =============================================================================
# Module-level API
# =============================================================================


def resolve(
    raw,
    policy: PathPolicy,
    options: Optional[ResolveOptions] = None,
) -> PathResult:
    """
    Validate a raw path against a policy.

    Args:
        raw: Untrusted input, normally a string
        policy: Policy snapshot to validate against
        options: Per-call options (existence, write access, symlink override, base dir)

    Returns:
        ValidatedPath on success, Rejection otherwise. Never raises for a
        rejected path.
    """
    options = options or ResolveOptions()

    try:
        validated = run_pipeline(raw, policy, options)
    except PathRejected as e:
        return _reject(e, raw)

    _log.debug(f"Validated: {sanitize_for_logging(validated.resolved_real_path)}")
    return validated


def open_validated(
    raw,
    policy: PathPolicy,
    base_dir: Optional[str] = None,
) -> OpenResult:
    """
    Validate with symlinks disallowed, then open without following links.

    The object opened is the object validated: a symlink swapped in after
    validation makes the open fail instead of being followed.
    """
    options = ResolveOptions(require_exists=True, allow_symlinks=False, base_dir=base_dir)

    try:
        validated = run_pipeline(raw, policy, options)
        handle = open_no_follow(validated.resolved_real_path, validated.raw_input)
    except PathRejected as e:
        return _reject(e, raw)

    _log.debug(f"Opened: {sanitize_for_logging(validated.resolved_real_path)}")
    return ValidatedFile(path=validated, file=handle)


async def resolve_async(
    raw,
    policy: PathPolicy,
    options: Optional[ResolveOptions] = None,
) -> PathResult:
    """resolve() in a worker thread; only the calling task waits."""
    return await asyncio.to_thread(resolve, raw, policy, options)


async def open_validated_async(
    raw,
    policy: PathPolicy,
    base_dir: Optional[str] = None,
) -> OpenResult:
    return await asyncio.to_thread(open_validated, raw, policy, base_dir)


def is_path_allowed(raw, policy: PathPolicy, base_dir: Optional[str] = None) -> bool:
    """
    Cheap lexical pre-check: no symlink resolution, no permission checks.

    A True result is not a substitute for resolve().
    """
    try:
        raw = check_type(raw)
        expanded = expand_path(raw)
        check_characters(expanded, raw)
        check_reserved_names(expanded, raw)
        absolute = to_absolute(expanded, base_dir or os.getcwd())
    except (PathRejected, OSError, ValueError):
        return False

    if policy.enforce_whitelist:
        if is_blocked(absolute, policy) or not is_within(absolute, policy.whitelist_aliases):
            return False
    if policy.allowed_roots is not None and not is_within(absolute, policy.root_aliases):
        return False
    return True


def validate_strict_path(
    raw,
    policy: PathPolicy,
    require_exists: bool = False,
    check_write: bool = False,
) -> PathResult:
    """
    Current-working-directory mode.

    The path is resolved against the CWD. With whitelist enforcement on,
    the whitelist alone decides; with it off, the path must stay inside
    the CWD.
    """
    cwd = os.getcwd()
    roots = None if policy.enforce_whitelist else (cwd,)
    strict_policy = policy.replace(allowed_roots=roots)
    options = ResolveOptions(
        require_exists=require_exists,
        check_write=check_write,
        base_dir=cwd,
    )
    return resolve(raw, strict_policy, options)


# =============================================================================
# PathGate - policy-bound interface
# =============================================================================


class PathGate:
    """
    Path validation bound to one policy snapshot and base directory.

    Create a new gate (or call refresh) to pick up a changed policy.
    """

    def __init__(self, policy: PathPolicy, base_dir: Optional[str] = None):
        self.policy = policy
        self.base_dir = os.path.abspath(base_dir) if base_dir else None

    def refresh(self, policy: PathPolicy) -> None:
        """Swap in a new policy snapshot."""
        self.policy = policy

    def _options(
        self,
        require_exists: bool,
        check_write: bool,
        allow_symlinks: Optional[bool],
    ) -> ResolveOptions:
        return ResolveOptions(
            require_exists=require_exists,
            check_write=check_write,
            allow_symlinks=allow_symlinks,
            base_dir=self.base_dir,
        )

    def resolve(
        self,
        raw,
        require_exists: bool = False,
        check_write: bool = False,
        allow_symlinks: Optional[bool] = None,
    ) -> PathResult:
        """
        Validate a path.

        Args:
            raw: Untrusted input
            require_exists: Target must exist and be readable
            check_write: Target must also be writable
            allow_symlinks: Override the policy's symlink setting

        Returns:
            ValidatedPath or Rejection
        """
        return resolve(raw, self.policy, self._options(require_exists, check_write, allow_symlinks))

    def open_validated(self, raw) -> OpenResult:
        return open_validated(raw, self.policy, self.base_dir)

    def is_path_allowed(self, raw) -> bool:
        return is_path_allowed(raw, self.policy, self.base_dir)

    async def resolve_async(
        self,
        raw,
        require_exists: bool = False,
        check_write: bool = False,
        allow_symlinks: Optional[bool] = None,
    ) -> PathResult:
        options = self._options(require_exists, check_write, allow_symlinks)
        return await resolve_async(raw, self.policy, options)

    async def open_validated_async(self, raw) -> OpenResult:
        return await open_validated_async(raw, self.policy, self.base_dir)


__all__ = [
    # Main interface
    "PathGate",
    "resolve",
    "open_validated",
    "resolve_async",
    "open_validated_async",
    "is_path_allowed",
    "validate_strict_path",
    # Models
    "PathPolicy",
    "ResolveOptions",
    "ValidatedPath",
    "ValidatedFile",
    "Rejection",
    "RejectionKind",
    "PathResult",
    "OpenResult",
    # Errors
    "PathRejected",
    "InvalidInputError",
    "ReservedNameError",
    "AccessDeniedError",
    "PathValidationError",
    # Constants
    "MAX_PATH_BYTES",
]
