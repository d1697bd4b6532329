"""Error taxonomy shared by the lifecycle engine and the HTTP layer."""
from __future__ import annotations


class TriageError(Exception):
    """Base class for errors surfaced to callers with a stable code."""

    code = "triage_error"
    status_code = 500

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class BadRequestError(TriageError):
    """Rejected input; raised before any mutation."""

    code = "bad_request"
    status_code = 400


class DocumentNotFoundError(TriageError):
    code = "not_found"
    status_code = 404


class CorruptRecordError(TriageError):
    """A record file exists but does not hold a readable JSON object."""

    code = "corrupt_record"
    status_code = 500


class FileMissingError(TriageError):
    code = "file_missing"
    status_code = 409


class NotClassifiedError(TriageError):
    code = "not_classified"
    status_code = 409


class NoScoresError(TriageError):
    code = "no_scores"
    status_code = 409


class UnsupportedUploadError(TriageError):
    code = "unsupported_type"
    status_code = 415


class UploadTooLargeError(TriageError):
    code = "file_too_large"
    status_code = 413


__all__ = [
    "BadRequestError",
    "CorruptRecordError",
    "DocumentNotFoundError",
    "FileMissingError",
    "NoScoresError",
    "NotClassifiedError",
    "TriageError",
    "UnsupportedUploadError",
    "UploadTooLargeError",
]
