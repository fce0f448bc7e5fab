"""
Team data export/import API routes.

Export returns the bundle (or its encryption envelope) as JSON. Import is a
two-step flow: validate the uploaded file, then apply it with the caller's
conflict resolutions.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
import structlog

from config import settings
from exceptions import AppError, ValidationError
from models.bundle import ExportOptions
from models.team import Actor
from models.transfer import (
    ConflictResolution,
    ImportOptions,
    ImportServiceResult,
    ImportValidationResult,
    ResolutionKind,
)
from routes.auth import get_actor
from services.export_service import get_export_service
from services.import_service import get_import_service, parse_bundle
from services.team_service import get_team_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/teams", tags=["Transfer"])

_resolutions_adapter = TypeAdapter(list[ConflictResolution])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def _failure(status_code: int, code: Optional[str], message: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code or "INTERNAL_ERROR", "message": message or "Operation failed"}}
    )


def parse_resolutions(raw: Optional[str]) -> list[ConflictResolution]:
    """
    Parse the resolutions form field (a JSON array).

    Raises:
        ValidationError: If the field isn't a valid resolutions array
    """
    if not raw:
        return []
    try:
        return _resolutions_adapter.validate_python(json.loads(raw))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise ValidationError(
            "Resolutions must be a JSON array of {entity_id, resolution}",
            code="INVALID_RESOLUTIONS",
            details={"reason": str(e)}
        )


def build_import_options(
    batch_size: Optional[int],
    strict_validation: bool,
    default_resolution: Optional[ResolutionKind],
) -> ImportOptions:
    """
    Raises:
        ValidationError: If batch_size is out of range
    """
    try:
        return ImportOptions(
            batch_size=batch_size or settings.import_batch_size,
            strict_validation=strict_validation,
            default_conflict_resolution=default_resolution,
        )
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid import options",
            code="INVALID_OPTIONS",
            details={"reason": str(e)}
        )


# ===================
# EXPORT
# ===================

@router.post("/{team_id}/export")
async def export_team_data(
    team_id: str,
    options: Optional[ExportOptions] = None,
    actor: Actor = Depends(get_actor),
):
    """
    Export a team's data as a portable bundle.

    Admin only. When `encryptData` is set the response is the encryption
    envelope instead of the plain bundle.
    """
    try:
        result = get_export_service().export_data(team_id, actor, options or ExportOptions())
    except Exception as e:
        return handle_error(e)

    if not result.success:
        return _failure(result.status_code, result.error_code, result.error)

    if result.encrypted_file is not None:
        return result.encrypted_file.model_dump(mode="json", by_alias=True)
    return result.bundle.to_json_dict()


# ===================
# IMPORT
# ===================

@router.post("/{team_id}/import/validate", response_model=ImportValidationResult)
async def validate_import(
    team_id: str,
    file: UploadFile = File(...),
    password: Optional[str] = Form(None),
    actor: Actor = Depends(get_actor),
):
    """
    Validate an uploaded bundle without writing anything.

    Returns errors, warnings, detected conflicts and a preview of what
    apply would create, update and skip.
    """
    try:
        get_team_service().require_member(team_id, actor)
        bundle = parse_bundle(await file.read(), password)
        return get_import_service().validate_import(bundle, team_id)
    except Exception as e:
        return handle_error(e)


@router.post("/{team_id}/import/apply", response_model=ImportServiceResult)
async def apply_import(
    team_id: str,
    file: UploadFile = File(...),
    password: Optional[str] = Form(None),
    resolutions: Optional[str] = Form(None),
    batch_size: Optional[int] = Form(None),
    strict_validation: bool = Form(False),
    default_resolution: Optional[ResolutionKind] = Form(None),
    actor: Actor = Depends(get_actor),
):
    """
    Apply an uploaded bundle to the team.

    Admin only. Per-row failures are reported in the result rather than
    failing the request.
    """
    try:
        get_team_service().require_admin(team_id, actor)
        bundle = parse_bundle(await file.read(), password)
        options = build_import_options(batch_size, strict_validation, default_resolution)

        result = get_import_service().apply_import(
            bundle,
            team_id,
            actor,
            resolutions=parse_resolutions(resolutions),
            options=options,
        )
    except Exception as e:
        return handle_error(e)

    if not result.success and result.data is None:
        return _failure(result.status_code, result.error_code, result.error)

    return JSONResponse(
        status_code=result.status_code,
        content=result.model_dump(mode="json")
    )
