"""
Application exception classes.

Every error that should reach the client as a structured response derives
from AppError. The FastAPI handler in main.py renders ``to_dict()``.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        code: Error code (e.g., "IMPORT_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp,
            },
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=message or f"{resource} not found",
            status_code=404,
            details={"id": identifier},
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details,
        )


class ConflictError(AppError):
    """Conflict with the current state of a resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


# ===================
# IMPORT PIPELINE
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Unknown token, or a token owned by another company."""

    def __init__(self, file_id: str):
        super().__init__(resource="Import session", identifier=file_id)


class MappingNotFoundError(NotFoundError):
    """Conflict detection or execution requested before a mapping was saved."""

    def __init__(self, file_id: str):
        super().__init__(
            resource="Import mapping",
            identifier=file_id,
            message="Mapping or file not found.",
        )


class StoredFileNotFoundError(NotFoundError):
    """The uploaded file is gone from storage."""

    def __init__(self, file_id: str):
        super().__init__(
            resource="Import file",
            identifier=file_id,
            message="File not found.",
        )


class TemplateNotFoundError(NotFoundError):
    def __init__(self, path: str):
        super().__init__(
            resource="Import template",
            identifier=path,
            message="Template file not found.",
        )


class ErrorReportNotFoundError(NotFoundError):
    def __init__(self, file_id: str):
        super().__init__(resource="Error report", identifier=file_id)


class UnsupportedFormatError(ValidationError):
    """File type is not csv/xlsx/xls, or no engine can read it."""

    def __init__(self, file_type: str, reason: Optional[str] = None):
        super().__init__(
            message=reason or f"Unsupported file type: {file_type}",
            code="UNSUPPORTED_FORMAT",
            details={"file_type": file_type},
        )


class UploadTooLargeError(ValidationError):
    def __init__(self, size: int, limit: int):
        super().__init__(
            message=f"File exceeds the maximum upload size of {limit} bytes",
            code="UPLOAD_TOO_LARGE",
            details={"size": size, "limit": limit},
        )


class ImportStateError(ConflictError):
    """Session is in a status that does not allow the requested step."""

    def __init__(self, file_id: str, status: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Import session is {status}",
            code="IMPORT_STATE_CONFLICT",
            details={"file_id": file_id, "status": status},
        )


class SpreadsheetEngineError(UnsupportedFormatError):
    """The engine for a stored spreadsheet format is not installed (500)."""

    def __init__(self, file_type: str, engine: str):
        super().__init__(
            file_type,
            reason=f"Reading .{file_type} files requires the {engine} package",
        )
        self.code = "SPREADSHEET_ENGINE_UNAVAILABLE"
        self.status_code = 500
        self.details["engine"] = engine


class ImportInProgressError(ConflictError):
    """The user already has an import queued or running."""

    def __init__(self, file_id: str, progress_url: str):
        super().__init__(
            message="You already have an import in progress. Please wait for it to complete.",
            code="IMPORT_IN_PROGRESS",
            details={"existing_file_id": file_id, "progress_url": progress_url},
        )
