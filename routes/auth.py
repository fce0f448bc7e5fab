"""
Request authentication.

Resolves the acting user from the `Authorization: Bearer <token>` header.
"""

from typing import Optional

from fastapi import Header

from exceptions import NotAuthenticatedError
from models.team import Actor
from services.team_service import get_team_service


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from a Bearer authorization header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_actor(authorization: Optional[str] = Header(None)) -> Actor:
    """
    FastAPI dependency returning the authenticated actor.

    Raises:
        NotAuthenticatedError: Missing or invalid token
    """
    token = bearer_token(authorization)
    if token is None:
        raise NotAuthenticatedError()
    return get_team_service().resolve_actor(token)
