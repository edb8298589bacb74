"""
ReaderGate - Secure file reading for Bastion.

Combines the other gates into one read path:
- Callers are held to per-minute and per-hour request limits
- Sensitive files (keys, credentials, history) are refused outright
- The file is validated and opened without following symlinks
- Size limits are enforced before and during the read
- Content is classified and checked against the file's extension
- Every operation lands in the audit log with sanitized paths

Usage:
    from bastion.ReaderGate import SecureFileReader
    from bastion.Config import PolicySource

    reader = SecureFileReader(PolicySource().load())
    result = reader.read("~/Documents/report.pdf", caller="session-42")
    if result.success and result.mismatch:
        ...
"""

import asyncio
import codecs
import hashlib
import os
import uuid
from typing import Optional

from bastion.shared.gate import GateLogger
from bastion.Config import get_manager
from bastion.PathGate import open_validated, PathPolicy, Rejection
from bastion.SensitiveGate import check_sensitive
from bastion.SignatureGate import DEFAULT_SCAN_BYTES, classify, classify_stream

from .audit import AuditLogger
from .limits import RateLimiter
from .models import ReadErrorKind, ReadResult

_log = GateLogger.get("ReaderGate")

DEFAULT_MAX_READ_BYTES = 10 * 1024 * 1024
DEFAULT_CALLER = "default"


def _new_operation_id() -> str:
    return uuid.uuid4().hex[:12]


class SecureFileReader:
    """
    Reads files through the full validation stack.

    Holds a policy snapshot; build a new reader (or call refresh) after
    the configuration changes.
    """

    def __init__(
        self,
        policy: PathPolicy,
        base_dir: Optional[str] = None,
        max_read_bytes: int = DEFAULT_MAX_READ_BYTES,
        scan_bytes: int = DEFAULT_SCAN_BYTES,
        strict_sensitive: bool = False,
        log_access: bool = True,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if max_read_bytes <= 0 or scan_bytes <= 0:
            raise ValueError("Read limits must be positive")

        self.policy = policy
        self.base_dir = base_dir
        self.max_read_bytes = max_read_bytes
        self.scan_bytes = scan_bytes
        self.strict_sensitive = strict_sensitive
        self.rate_limiter = rate_limiter or RateLimiter()
        self.audit = AuditLogger(enabled=log_access)

    @classmethod
    def from_config(cls, policy: PathPolicy, manager=None, base_dir: Optional[str] = None):
        """Build a reader using limits from a ConfigManager."""
        manager = manager or get_manager()
        return cls(
            policy,
            base_dir=base_dir,
            max_read_bytes=manager.get("BASTION_MAX_READ_BYTES"),
            scan_bytes=manager.get("BASTION_SIGNATURE_SCAN_BYTES"),
            strict_sensitive=manager.get("BASTION_STRICT_SENSITIVE"),
            log_access=manager.get("BASTION_LOG_ACCESS"),
            rate_limiter=RateLimiter(
                per_minute=manager.get("BASTION_RATE_LIMIT_PER_MINUTE"),
                per_hour=manager.get("BASTION_RATE_LIMIT_PER_HOUR"),
            ),
        )

    def refresh(self, policy: PathPolicy) -> None:
        self.policy = policy

    def _throttle(self, operation: str, operation_id: str, raw, caller: str) -> Optional[ReadResult]:
        retry_after = self.rate_limiter.acquire(caller)
        if retry_after is None:
            return None

        self.audit.failure(
            operation, operation_id, raw, ReadErrorKind.RATE_LIMITED.value,
            caller=caller, retry_after=retry_after,
        )
        return ReadResult.failure(
            operation_id,
            raw,
            f"Rate limit exceeded: try again in {retry_after} seconds",
            ReadErrorKind.RATE_LIMITED,
            retry_after=retry_after,
        )

    def _refuse_sensitive(self, operation: str, operation_id: str, raw, *paths) -> Optional[ReadResult]:
        for path in paths:
            verdict = check_sensitive(path, strict=self.strict_sensitive)
            if verdict:
                self.audit.failure(
                    operation, operation_id, raw, ReadErrorKind.SENSITIVE_FILE.value,
                    pattern=verdict.matched_pattern_description,
                )
                return ReadResult.failure(
                    operation_id,
                    raw,
                    "Access denied: file matches a sensitive file pattern",
                    ReadErrorKind.SENSITIVE_FILE,
                )
        return None

    def _open(self, operation: str, operation_id: str, raw):
        """Sensitive check, validation and open. Returns (opened, failure)."""
        refused = self._refuse_sensitive(operation, operation_id, raw, raw)
        if refused is not None:
            return None, refused

        opened = open_validated(raw, self.policy, self.base_dir)
        if isinstance(opened, Rejection):
            self.audit.failure(operation, operation_id, raw, opened.kind.value)
            return None, ReadResult.from_rejection(operation_id, raw, opened)

        # Expansion can turn an innocent-looking input into a sensitive path
        refused = self._refuse_sensitive(
            operation, operation_id, raw, opened.path.resolved_real_path
        )
        if refused is not None:
            opened.close()
            return None, refused

        return opened, None

    def _too_large(self, operation: str, operation_id: str, raw, size: int) -> ReadResult:
        self.audit.failure(
            operation, operation_id, raw, ReadErrorKind.FILE_TOO_LARGE.value, size=size
        )
        return ReadResult.failure(
            operation_id,
            raw,
            f"File size ({size} bytes) exceeds maximum allowed ({self.max_read_bytes} bytes)",
            ReadErrorKind.FILE_TOO_LARGE,
        )

    def _warn_mismatch(self, operation: str, operation_id: str, raw, result: ReadResult) -> None:
        if result.mismatch:
            self.audit.warning(
                operation,
                operation_id,
                raw,
                f"content is {result.mismatch['detected_type']}, "
                f"extension expects {', '.join(result.mismatch['expected_types'])}",
            )

    def read(
        self,
        raw,
        offset: int = 0,
        max_bytes: Optional[int] = None,
        encoding: Optional[str] = None,
        caller: str = DEFAULT_CALLER,
    ) -> ReadResult:
        """
        Read a file, or a window of it.

        Args:
            raw: Path as given by the caller
            offset: First byte to return
            max_bytes: Return at most this many bytes from offset
            encoding: Also decode the bytes into result.text
            caller: Identity the request limits are counted against

        The whole file must still fit within max_read_bytes; offset and
        max_bytes only select what is returned. Classification always
        looks at the start of the file.

        Returns:
            ReadResult with data, SHA-256 checksum of the returned bytes
            and classification on success; error and error_kind otherwise

        Raises:
            ValueError: offset is negative or max_bytes is not positive
            LookupError: encoding is unknown
        """
        if offset < 0:
            raise ValueError("offset cannot be negative")
        if max_bytes is not None and max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if encoding is not None:
            codecs.lookup(encoding)

        operation = "read"
        operation_id = _new_operation_id()
        self.audit.start(
            operation, operation_id, raw,
            max_bytes=max_bytes or self.max_read_bytes, offset=offset,
        )

        throttled = self._throttle(operation, operation_id, raw, caller)
        if throttled is not None:
            return throttled

        opened, failure = self._open(operation, operation_id, raw)
        if failure is not None:
            return failure

        with opened:
            try:
                size = os.fstat(opened.file.fileno()).st_size
                if size > self.max_read_bytes:
                    return self._too_large(operation, operation_id, raw, size)

                if offset and offset >= size:
                    self.audit.failure(
                        operation, operation_id, raw, ReadErrorKind.INVALID_INPUT.value,
                        offset=offset, size=size,
                    )
                    return ReadResult.failure(
                        operation_id,
                        raw,
                        "The specified offset is beyond the end of the file",
                        ReadErrorKind.INVALID_INPUT,
                    )

                head = b""
                if offset or max_bytes is not None:
                    head = opened.file.read(self.scan_bytes)
                    opened.file.seek(offset)

                if max_bytes is None:
                    data = opened.file.read(self.max_read_bytes - offset + 1)
                else:
                    data = opened.file.read(min(max_bytes, self.max_read_bytes))
            except OSError as e:
                _log.error(f"Read failed [{operation_id}]: {e.strerror}")
                self.audit.failure(operation, operation_id, raw, ReadErrorKind.READ_FAILED.value)
                return ReadResult.failure(
                    operation_id, raw, "Failed to read file", ReadErrorKind.READ_FAILED
                )

            # The file may have grown since fstat
            if offset + len(data) > self.max_read_bytes:
                return self._too_large(operation, operation_id, raw, offset + len(data))

            resolved = opened.path.resolved_real_path

        text = None
        if encoding is not None:
            try:
                text = data.decode(encoding)
            except UnicodeDecodeError:
                self.audit.failure(
                    operation, operation_id, raw, ReadErrorKind.READ_FAILED.value, encoding=encoding
                )
                return ReadResult.failure(
                    operation_id,
                    raw,
                    f"File content is not valid {encoding} text",
                    ReadErrorKind.READ_FAILED,
                )

        checksum = hashlib.sha256(data).hexdigest()
        classification = classify(head or data, path=resolved, max_read_bytes=self.scan_bytes)

        result = ReadResult.classified(
            operation_id,
            raw,
            classification,
            data=data,
            text=text,
            offset=offset,
            size_bytes=len(data),
            checksum=checksum,
        )
        self._warn_mismatch(operation, operation_id, raw, result)
        self.audit.success(
            operation, operation_id, raw,
            bytes=len(data), checksum=checksum, type=result.detected_type,
        )
        return result

    def inspect(self, raw, caller: str = DEFAULT_CALLER) -> ReadResult:
        """Classify a file from its leading bytes without returning content."""
        operation = "inspect"
        operation_id = _new_operation_id()
        self.audit.start(operation, operation_id, raw, scan_bytes=self.scan_bytes)

        throttled = self._throttle(operation, operation_id, raw, caller)
        if throttled is not None:
            return throttled

        opened, failure = self._open(operation, operation_id, raw)
        if failure is not None:
            return failure

        with opened:
            try:
                size = os.fstat(opened.file.fileno()).st_size
                _, classification = classify_stream(
                    opened.file,
                    path=opened.path.resolved_real_path,
                    max_read_bytes=self.scan_bytes,
                )
            except OSError as e:
                _log.error(f"Inspect failed [{operation_id}]: {e.strerror}")
                self.audit.failure(operation, operation_id, raw, ReadErrorKind.READ_FAILED.value)
                return ReadResult.failure(
                    operation_id, raw, "Failed to read file", ReadErrorKind.READ_FAILED
                )

        result = ReadResult.classified(operation_id, raw, classification, size_bytes=size)
        self._warn_mismatch(operation, operation_id, raw, result)
        self.audit.success(operation, operation_id, raw, type=result.detected_type)
        return result

    async def read_async(self, raw, **options) -> ReadResult:
        return await asyncio.to_thread(self.read, raw, **options)

    async def inspect_async(self, raw, caller: str = DEFAULT_CALLER) -> ReadResult:
        return await asyncio.to_thread(self.inspect, raw, caller)


__all__ = [
    "SecureFileReader",
    "AuditLogger",
    "RateLimiter",
    "ReadResult",
    "ReadErrorKind",
    "DEFAULT_MAX_READ_BYTES",
    "DEFAULT_CALLER",
]
