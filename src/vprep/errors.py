"""Error taxonomy for the staging and patching pipeline."""

from __future__ import annotations

from typing import Any, Mapping


class VendorPrepError(RuntimeError):
    """Base class for every fatal pipeline error."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigError(VendorPrepError):
    """Raised when configuration or feature selection is invalid."""


class StagingIOError(VendorPrepError):
    """Raised when the source tree cannot be mirrored into the destination."""


class PatchParseError(VendorPrepError):
    """Raised when patch text does not conform to unified diff syntax."""

    def __init__(self, message: str, *, source: str | None = None, line: int | None = None) -> None:
        location = ""
        if source and line is not None:
            location = f"{source}:{line}: "
        elif source:
            location = f"{source}: "
        elif line is not None:
            location = f"line {line}: "
        super().__init__(f"{location}{message}", details={"source": source, "line": line})
        self.source = source
        self.line = line


class PatchPathError(VendorPrepError):
    """Raised when a path referenced by a patch cannot be resolved or read."""


class PatchMismatchError(VendorPrepError):
    """Raised when a context or removed line does not match the original file."""

    def __init__(
        self,
        offset: int,
        expected: str,
        actual: str | None,
        *,
        path: str | None = None,
    ) -> None:
        found = repr(actual) if actual is not None else "end of file"
        target = f"{path}: " if path else ""
        super().__init__(
            f"{target}hunk mismatch at line {offset + 1}: expected {expected!r}, found {found}",
            details={"path": path, "offset": offset, "expected": expected, "actual": actual},
        )
        self.offset = offset
        self.expected = expected
        self.actual = actual
        self.path = path


class PatchWriteError(VendorPrepError):
    """Raised when a patched file cannot be created, written or removed."""


class DepfileWriteError(VendorPrepError):
    """Raised when the dependency file cannot be written."""


__all__ = [
    "ConfigError",
    "DepfileWriteError",
    "PatchMismatchError",
    "PatchParseError",
    "PatchPathError",
    "PatchWriteError",
    "StagingIOError",
    "VendorPrepError",
]
