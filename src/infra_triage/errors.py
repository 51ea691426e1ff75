"""Error taxonomy for report triage operations."""

from __future__ import annotations


class ReportValidationError(ValueError):
    """Rejected input; raised before any state change."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ReportNotFoundError(LookupError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class DegradedInputError(RuntimeError):
    """A collaborator (remote classifier, telemetry feed) was unavailable.

    Never escapes the core; callers convert it into fallback output.
    """


def bad_request(code: str, message: str):
    raise ReportValidationError(code, message)


def not_found(code: str, message: str):
    raise ReportNotFoundError(code, message)
