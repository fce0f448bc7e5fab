"""
Custom exception classes for the application.

Precondition and bundle-structure failures are raised as these errors and
turned into explicit failure results by the export/import entry points.
Per-row write failures never become exceptions; they are collected as
ImportIssue entries instead.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "TEAM_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
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
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# AUTH / TENANT ERRORS
# ===================

class NotAuthenticatedError(AppError):
    """No authenticated actor (401)."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(
            code="NOT_AUTHENTICATED",
            message=message,
            status_code=401
        )


class ExportPermissionError(AppError):
    """Actor is not an admin of the team (403)."""

    def __init__(self, team_id: str, user_id: str):
        super().__init__(
            code="EXPORT_NOT_ALLOWED",
            message="Only team admins can export data",
            status_code=403,
            details={"team_id": team_id, "user_id": user_id}
        )


class TeamAccessDeniedError(AppError):
    """Actor is not a member of the team (403)."""

    def __init__(self, team_id: str, user_id: str):
        super().__init__(
            code="TEAM_ACCESS_DENIED",
            message="You are not a member of this team",
            status_code=403,
            details={"team_id": team_id, "user_id": user_id}
        )


class TeamNotFoundError(NotFoundError):
    """Team not found."""

    def __init__(self, team_id: str):
        super().__init__(
            resource="Team",
            identifier=team_id,
            code="TEAM_NOT_FOUND"
        )


# ===================
# BUNDLE ERRORS
# ===================

class SchemaIncompatibleError(ValidationError):
    """Bundle schema major version is not supported."""

    def __init__(self, schema_version: Optional[str], supported: str = "1.x"):
        super().__init__(
            code="SCHEMA_INCOMPATIBLE",
            message="Incompatible schema version. This export was created with a different version of the system.",
            details={"schema_version": schema_version, "supported": supported}
        )


class BundleStructureError(ValidationError):
    """Bundle is missing required top-level sections."""

    def __init__(self, missing: list[str]):
        super().__init__(
            code="INVALID_BUNDLE_STRUCTURE",
            message=f"Invalid export package structure. Missing: {', '.join(missing)}",
            details={"missing": missing}
        )


class RecordCountMismatchError(ValidationError):
    """Manifest counts disagree with the bundle contents."""

    def __init__(self, mismatches: dict[str, dict[str, int]]):
        super().__init__(
            code="RECORD_COUNT_MISMATCH",
            message="Manifest record counts do not match bundle contents",
            details={"mismatches": mismatches}
        )


class BundlePasswordRequiredError(ValidationError):
    """Encrypted bundle supplied without a password."""

    def __init__(self):
        super().__init__(
            code="PASSWORD_REQUIRED",
            message="This file is encrypted. Please provide a password."
        )


class BundleDecryptionError(ValidationError):
    """Decryption failed (wrong password or tampered file)."""

    def __init__(self, message: str = "Decryption failed. Wrong password or corrupted file."):
        super().__init__(
            code="DECRYPTION_FAILED",
            message=message
        )


class BundleEncryptionError(ValidationError):
    """Bundle could not be encrypted (e.g. password too short)."""

    def __init__(self, message: str):
        super().__init__(
            code="ENCRYPTION_FAILED",
            message=message
        )


# ===================
# OPERATION ERRORS
# ===================

class ExportFailedError(AppError):
    """An extraction step failed; the export is aborted."""

    def __init__(self, step: str, message: str):
        super().__init__(
            code="EXPORT_FAILED",
            message=f"Export failed while extracting {step}: {message}",
            status_code=500,
            details={"step": step}
        )


class SemanticMatchError(ExternalServiceError):
    """Semantic match collaborator failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="semantic_match",
            message=message,
            details=details
        )
