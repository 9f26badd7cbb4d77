"""
Upload-domain exceptions.

Every failure of the upload pipeline is one of these, so views and tasks
can map them to a status code without inspecting backend errors.

Exception Hierarchy:
    InvalidUploadRequest (ValidationError) - caller error, no side effects
    PartCountMismatch (ValidationError) - fewer/more chunks than announced
    NoChunksFound (NotFoundError) - session has no chunks at all
    StreamNotFound (NotFoundError) - requested object does not exist
    AssemblyInProgress (ConflictError) - another assembly holds the session
    StorageFailure (ExternalServiceError) - chunk store error
    └── AssemblyDeadlineExceeded - assembly ran past its time budget
"""

from __future__ import annotations

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)


class InvalidUploadRequest(ValidationError):
    """Malformed session id, part number, payload or assembly request."""

    default_error_code = "VALIDATION_ERROR"


class NoChunksFound(NotFoundError):
    """
    No chunk objects exist for the session.

    The client must restart the whole upload; there is nothing to resume.
    """

    default_error_code = "NO_CHUNKS_FOUND"

    def __init__(self, session_id: str):
        super().__init__(
            "No chunks found for this upload. Please restart the upload.",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class PartCountMismatch(ValidationError):
    """
    The stored chunks do not match the announced part count.

    Either the number of chunks differs, or the count matches but some part
    numbers in 1..expected are absent (listed in missing).
    """

    default_error_code = "PART_COUNT_MISMATCH"

    def __init__(self, expected: int, found: int, missing: list[int] | None = None):
        details = {"expected": expected, "found": found}
        if missing:
            details["missing"] = missing
            listed = ", ".join(str(n) for n in missing)
            message = f"Expected parts 1-{expected} but part(s) {listed} are missing."
        else:
            message = f"Expected {expected} chunks but found {found}."
        super().__init__(message, details=details)
        self.expected = expected
        self.found = found
        self.missing = missing or []


class StorageFailure(ExternalServiceError):
    """A chunk store operation failed (network, permissions, missing object)."""

    default_error_code = "STORAGE_FAILURE"


class AssemblyDeadlineExceeded(StorageFailure):
    """Assembly did not finish within its configured time budget."""

    default_error_code = "ASSEMBLY_TIMEOUT"

    def __init__(self, seconds: float):
        super().__init__(
            f"Assembly exceeded its {seconds:g}s time budget.",
            details={"timeout_seconds": seconds},
        )


class AssemblyInProgress(ConflictError):
    """Another assembly of the same session currently holds the lease."""

    default_error_code = "ASSEMBLY_IN_PROGRESS"

    def __init__(self, session_id: str):
        super().__init__(
            "This upload is already being assembled.",
            details={"session_id": session_id},
        )


class StreamNotFound(NotFoundError):
    """The object requested through the streaming proxy does not exist."""

    default_error_code = "NOT_FOUND"
