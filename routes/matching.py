"""
Component matching API routes.

Matches supplier-quote line items against a team's component catalog.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.matching import BatchMatchRequest, MatchRequest, MatchResult
from models.team import Actor
from routes.auth import get_actor
from services.component_matcher_service import get_matcher_service
from services.team_service import get_team_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/matching", tags=["Matching"])


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


# ===================
# MATCH ROUTES
# ===================

@router.post("/match", response_model=MatchResult)
async def match_component(request: MatchRequest, actor: Actor = Depends(get_actor)):
    """
    Match one candidate against the team catalog.

    Tries exact manufacturer + part number first, then fuzzy scoring,
    then AI verification of the top fuzzy candidates when configured.
    """
    try:
        get_team_service().require_member(request.team_id, actor)
        return get_matcher_service().match_component(request.candidate, request.team_id)
    except Exception as e:
        return handle_error(e)


@router.post("/match/batch", response_model=list[MatchResult])
async def match_components(request: BatchMatchRequest, actor: Actor = Depends(get_actor)):
    """Match each candidate independently; results keep input order."""
    try:
        get_team_service().require_member(request.team_id, actor)
        results = get_matcher_service().match_components(request.candidates, request.team_id)
        logger.info(
            "batch_match_completed",
            team_id=request.team_id,
            candidates=len(request.candidates),
            matched=sum(1 for r in results if r.matches),
        )
        return results
    except Exception as e:
        return handle_error(e)
