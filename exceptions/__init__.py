"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    DatabaseError,

    # Auth / tenant
    NotAuthenticatedError,
    ExportPermissionError,
    TeamAccessDeniedError,
    TeamNotFoundError,

    # Bundle
    SchemaIncompatibleError,
    BundleStructureError,
    RecordCountMismatchError,
    BundlePasswordRequiredError,
    BundleDecryptionError,
    BundleEncryptionError,

    # Operations
    ExportFailedError,
    SemanticMatchError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "DatabaseError",

    # Auth / tenant
    "NotAuthenticatedError",
    "ExportPermissionError",
    "TeamAccessDeniedError",
    "TeamNotFoundError",

    # Bundle
    "SchemaIncompatibleError",
    "BundleStructureError",
    "RecordCountMismatchError",
    "BundlePasswordRequiredError",
    "BundleDecryptionError",
    "BundleEncryptionError",

    # Operations
    "ExportFailedError",
    "SemanticMatchError",
]
