from __future__ import annotations


class SpecflowError(Exception):
    """Base error surfaced to HTTP callers as a failure envelope."""

    code = "SpecflowError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_envelope(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(SpecflowError):
    code = "ValidationError"
    status_code = 400


class AccessDenied(SpecflowError):
    code = "AccessDenied"
    status_code = 403


class ContextMissing(SpecflowError):
    code = "ContextMissing"
    status_code = 409


class SyncError(SpecflowError):
    code = "SyncError"
    status_code = 500


class UpstreamError(SpecflowError):
    code = "UpstreamError"
    status_code = 502


class UpstreamTimeout(UpstreamError):
    code = "UpstreamTimeout"
    status_code = 504


class WriteError(SpecflowError):
    code = "WriteError"
    status_code = 500
