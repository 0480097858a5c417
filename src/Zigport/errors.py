"""Typed import failures.

Every failure surfaced by the import pipeline is an ``ImportFailure`` carrying a
``kind`` tag and a structured ``context`` mapping, so callers branch on the type
(or ``kind``) instead of parsing message text.
"""

from __future__ import annotations

from typing import Any, ClassVar


class ImportFailure(Exception):
    """Base exception for import pipeline failures."""

    kind: ClassVar[str] = "import_failure"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.context}


class ResolutionFailure(ImportFailure):
    """A required package type has no acceptable installed candidate."""

    kind = "resolution_failure"

    def __init__(
        self,
        message: str,
        *,
        package_type: str,
        version: str | None,
        candidate_count: int,
        stage: str,
    ) -> None:
        super().__init__(
            message,
            package_type=package_type,
            version=version,
            candidate_count=candidate_count,
            stage=stage,
        )
        self.package_type = package_type
        self.version = version
        self.candidate_count = candidate_count
        self.stage = stage


class VersionIncompatibility(ImportFailure):
    """Document feature level is outside the range this build supports."""

    kind = "version_incompatibility"

    def __init__(self, message: str, *, declared: int, supported: int) -> None:
        super().__init__(message, declared=declared, supported=supported)
        self.declared = declared
        self.supported = supported


class StoreFailure(ImportFailure):
    """An underlying store read or write failed."""

    kind = "store_failure"

    def __init__(self, message: str, *, operation: str) -> None:
        super().__init__(message, operation=operation)
        self.operation = operation


class DocumentFormatError(ImportFailure):
    """The raw document is not JSON or does not have the recognized shape."""

    kind = "document_format"

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message, reason=reason)
        self.reason = reason


__all__ = [
    "ImportFailure",
    "ResolutionFailure",
    "VersionIncompatibility",
    "StoreFailure",
    "DocumentFormatError",
]
