"""
PathGate security module.

The validation pipeline, one function per layer. Every layer either
returns its refined value or raises a PathRejected subclass; the public
functions in the package turn those into Rejection values.

Layers, in order:
    1. type check          6. blacklist / whitelist
    2. expansion           7. symlink policy
    3. characters, length  8. canonicalization
    4. reserved names      9. containment re-check
    5. absolute path      10. existence / permission
"""

import errno
import os
import re
import stat
import unicodedata
from typing import BinaryIO, List, Optional, Tuple
from urllib.parse import unquote

from bastion.shared.gate import PathUtils

from .models import (
    AccessDeniedError,
    InvalidInputError,
    PathPolicy,
    PathValidationError,
    ReservedNameError,
    ResolveOptions,
    ValidatedPath,
)

MAX_PATH_BYTES = 4096
MAX_DECODE_ROUNDS = 3

_UNSAFE_CHARS = re.compile(r'[<>"|?*\x00-\x1f\x7f]')
_RESERVED_NAMES = re.compile(r"^(con|prn|aux|nul|com[1-9]|lpt[1-9])$", re.IGNORECASE)
_ENV_REFERENCE = re.compile(
    r"\\\$"
    r"|\$\$"
    r"|%([A-Za-z_][A-Za-z0-9_]*)%"
    r"|\$\{([A-Za-z_][A-Za-z0-9_]*)\}"
    r"|\$([A-Za-z_][A-Za-z0-9_]*)"
)
_SEPARATORS = re.compile(r"[\\/]")

# Windows reports symlink loops as ERROR_CANT_RESOLVE_FILENAME
_WIN_CANT_RESOLVE = 1921

MSG_NOT_STRING = "Path must be a non-empty string"
MSG_INVALID_CHARS = "Path contains invalid characters"
MSG_UNENCODABLE = "Path cannot be encoded for this filesystem"
MSG_TOO_LONG = f"Path exceeds maximum length of {MAX_PATH_BYTES} bytes"
MSG_RESERVED = "Path contains a reserved device name"
MSG_BLOCKED = (
    "Access denied: path matches a blocked pattern (system directory or protected location)"
)
MSG_NOT_WHITELISTED = (
    "Access denied: path is not in an allowed directory. "
    "Add its parent to customAllowedDirectories in the user config to grant access"
)
MSG_OUTSIDE_ROOT = "Access denied: path is outside the allowed directory"
MSG_SYMLINK = "Symbolic links are not allowed"
MSG_CIRCULAR = "Access denied: circular symlink detected"
MSG_NOT_ACCESSIBLE = "Access denied: path is not accessible"
MSG_NOFOLLOW = "Symlink traversal detected (O_NOFOLLOW blocked)"
MSG_NOT_REGULAR = "Path is not a regular file"


# =============================================================================
# Layer 1: type check
# =============================================================================


def check_type(raw) -> str:
    if isinstance(raw, os.PathLike):
        raw = os.fspath(raw)
    if not isinstance(raw, str) or not raw:
        raise InvalidInputError(MSG_NOT_STRING, raw if isinstance(raw, str) else None)
    return raw


# =============================================================================
# Layer 2: expansion
# =============================================================================


def decode_percent(path: str) -> str:
    """
    Percent-decode repeatedly so %252e%252e cannot survive as '..'.

    A round that does not decode to valid UTF-8 stops the loop and the
    last good string is kept, so a literal name like 'report%ff.pdf'
    stays as it is.
    """
    for _ in range(MAX_DECODE_ROUNDS):
        try:
            decoded = unquote(path, errors="strict")
        except UnicodeDecodeError:
            break
        if decoded == path:
            break
        path = decoded
    return path


def expand_home(path: str) -> str:
    """Expand a leading '~' or '~/'. '~user' forms are left alone."""
    if path == "~":
        return os.path.expanduser("~")
    if path.startswith("~/") or (os.name == "nt" and path.startswith("~\\")):
        return os.path.expanduser("~") + path[1:]
    return path


def expand_env_vars(path: str) -> str:
    """
    Substitute %VAR%, ${VAR} and $VAR references.

    '$$' and '\\$' produce a literal '$'. Unset variables expand to ''.
    """
    def substitute(match: "re.Match") -> str:
        token = match.group(0)
        if token in ("\\$", "$$"):
            return "$"
        name = match.group(1) or match.group(2) or match.group(3)
        return os.environ.get(name, "")

    return _ENV_REFERENCE.sub(substitute, path)


def expand_path(path: str) -> str:
    path = decode_percent(path)
    path = unicodedata.normalize("NFC", path)
    path = expand_home(path)
    return expand_env_vars(path)


# =============================================================================
# Layers 3-4: characters, length, reserved names
# =============================================================================


def check_characters(path: str, raw: str) -> None:
    if _UNSAFE_CHARS.search(path):
        raise InvalidInputError(MSG_INVALID_CHARS, raw)

    try:
        encoded = os.fsencode(path)
    except UnicodeEncodeError:
        raise InvalidInputError(MSG_UNENCODABLE, raw)

    if len(encoded) > MAX_PATH_BYTES:
        raise InvalidInputError(MSG_TOO_LONG, raw)


def is_reserved_component(component: str) -> bool:
    """True for CON, nul.txt, COM1 ... but not CONSOLE.txt or COMMAND.log."""
    stem, _ = os.path.splitext(component)
    return _RESERVED_NAMES.match(stem) is not None


def check_reserved_names(path: str, raw: str) -> None:
    for component in _SEPARATORS.split(path):
        if component and is_reserved_component(component):
            raise ReservedNameError(MSG_RESERVED, raw)


# =============================================================================
# Layers 5-6: absolute path, blacklist / whitelist
# =============================================================================


def to_absolute(path: str, base_dir: str) -> str:
    return os.path.abspath(os.path.join(base_dir, path))


def is_blocked(path: str, policy: PathPolicy) -> bool:
    """Match blocked patterns; a trailing separator lets '/etc' hit '^/etc/'."""
    candidate = path if path.endswith(os.sep) else path + os.sep
    return any(pattern.search(candidate) for pattern in policy.blocked_patterns)


def is_within(path: str, roots) -> bool:
    return any(PathUtils.is_sub_path(root, path) for root in roots)


def check_whitelist(path: str, policy: PathPolicy, raw: str) -> None:
    """Blacklist first, then the default and custom allowed directories."""
    if is_blocked(path, policy):
        raise AccessDeniedError(MSG_BLOCKED, raw)
    if not is_within(path, policy.whitelist_aliases):
        raise AccessDeniedError(MSG_NOT_WHITELISTED, raw)


# =============================================================================
# Layer 7: symlink policy
# =============================================================================


def _containing_root(path: str, policy: PathPolicy) -> Optional[str]:
    """Shallowest allowed root (or whitelist entry) that lexically contains path."""
    candidates = [
        root
        for root in (policy.allowed_roots or ()) + policy.whitelist
        if PathUtils.is_sub_path(root, path)
    ]
    return min(candidates, key=len) if candidates else None


def check_symlinks(path: str, policy: PathPolicy, raw: str) -> None:
    """
    Reject a symlink at the entry itself or at any component between the
    containing root and the entry. The root itself is trusted. Missing
    components are fine here.
    """
    root = _containing_root(path, policy)
    current = path

    while True:
        if current == root:
            return

        try:
            info = os.lstat(current)
        except (FileNotFoundError, NotADirectoryError):
            info = None
        except OSError:
            raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

        if info is not None and stat.S_ISLNK(info.st_mode):
            raise PathValidationError(MSG_SYMLINK, raw)

        if root is None:
            return

        parent = os.path.dirname(current)
        if parent == current or not PathUtils.is_sub_path(root, parent):
            return
        current = parent


# =============================================================================
# Layer 8: canonicalization
# =============================================================================


def _is_loop(error: OSError) -> bool:
    return error.errno == errno.ELOOP or getattr(error, "winerror", None) == _WIN_CANT_RESOLVE


def _is_missing(error: OSError) -> bool:
    return error.errno in (errno.ENOENT, errno.ENOTDIR)


def canonicalize(path: str, raw: str) -> Tuple[str, bool]:
    """
    Resolve every symlink in path.

    Returns:
        Tuple of (real_path, existed). For a missing target the nearest
        existing ancestor is resolved and the missing tail re-appended.
    """
    try:
        return os.path.realpath(path, strict=True), True
    except OSError as e:
        if _is_loop(e):
            raise AccessDeniedError(MSG_CIRCULAR, raw)
        if not _is_missing(e):
            raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

    tail: List[str] = []
    current = path

    while True:
        parent = os.path.dirname(current)
        if parent == current:
            raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)
        tail.insert(0, os.path.basename(current))
        first_missing = current
        current = parent

        try:
            ancestor = os.path.realpath(current, strict=True)
            break
        except OSError as e:
            if _is_loop(e):
                raise AccessDeniedError(MSG_CIRCULAR, raw)
            if not _is_missing(e):
                raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

    if os.path.lexists(first_missing):
        # Dangling symlink: follow it lexically so containment sees its target
        return os.path.realpath(path), False

    return os.path.join(ancestor, *tail), False


# =============================================================================
# Layers 9-10: containment, existence / permission
# =============================================================================


def check_containment(real_path: str, policy: PathPolicy, raw: str) -> None:
    if policy.allowed_roots is not None and not is_within(real_path, policy.root_aliases):
        raise AccessDeniedError(MSG_OUTSIDE_ROOT, raw)
    if policy.enforce_whitelist:
        check_whitelist(real_path, policy, raw)


def _nearest_existing_ancestor(path: str) -> Optional[str]:
    current = os.path.dirname(path)
    while True:
        if os.path.exists(current):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def check_access(real_path: str, options: ResolveOptions, raw: str) -> None:
    if os.path.exists(real_path):
        mode = os.R_OK | (os.W_OK if options.check_write else 0)
        if not os.access(real_path, mode):
            raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)
        return

    if options.require_exists:
        raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

    ancestor = _nearest_existing_ancestor(real_path)
    if ancestor is None or not os.path.isdir(ancestor) or not os.access(ancestor, os.W_OK):
        raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)


# =============================================================================
# Pipeline
# =============================================================================


def run_pipeline(raw, policy: PathPolicy, options: ResolveOptions) -> ValidatedPath:
    """
    Run all layers.

    Raises:
        PathRejected: subclass naming the failed layer's rejection kind
    """
    raw = check_type(raw)
    expanded = expand_path(raw)
    check_characters(expanded, raw)
    check_reserved_names(expanded, raw)

    allow_symlinks = (
        policy.allow_symlinks if options.allow_symlinks is None else options.allow_symlinks
    )

    try:
        base_dir = options.base_dir or os.getcwd()
        absolute = to_absolute(expanded, base_dir)

        if policy.enforce_whitelist:
            check_whitelist(absolute, policy, raw)

        if allow_symlinks:
            real_path, existed = canonicalize(absolute, raw)
        else:
            check_symlinks(absolute, policy, raw)
            real_path, existed = absolute, os.path.lexists(absolute)

        check_containment(real_path, policy, raw)
        check_access(real_path, options, raw)

    except (OSError, ValueError):
        raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

    return ValidatedPath(raw_input=raw, resolved_real_path=real_path, existed=existed)


def open_no_follow(path: str, raw: str) -> BinaryIO:
    """
    Open a validated path without following a symlink at the last step.

    Raises:
        PathValidationError: the entry became a symlink or is not a regular file
        AccessDeniedError: any other open failure
    """
    flags = (
        os.O_RDONLY
        | getattr(os, "O_NOFOLLOW", 0)
        | getattr(os, "O_NONBLOCK", 0)
        | getattr(os, "O_BINARY", 0)
    )

    try:
        fd = os.open(path, flags)
    except OSError as e:
        if e.errno in (errno.ELOOP, errno.EMLINK):
            raise PathValidationError(MSG_NOFOLLOW, raw)
        raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

    try:
        info = os.fstat(fd)
    except OSError:
        os.close(fd)
        raise AccessDeniedError(MSG_NOT_ACCESSIBLE, raw)

    if not stat.S_ISREG(info.st_mode):
        os.close(fd)
        raise PathValidationError(MSG_NOT_REGULAR, raw)

    return os.fdopen(fd, "rb")
