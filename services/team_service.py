"""
Team service.

Resolves the acting user from a Supabase access token and answers the
precondition questions export and import ask: does the team exist, and is
the actor one of its admins.
"""

from typing import Optional

import structlog

from config import get_supabase_client
from exceptions import (
    DatabaseError,
    ExportPermissionError,
    NotAuthenticatedError,
    TeamAccessDeniedError,
    TeamNotFoundError,
)
from models.team import Actor, Team, TeamRole

logger = structlog.get_logger(__name__)


class TeamService:
    """Team lookups and actor resolution."""

    def __init__(self, db=None):
        self.db = db or get_supabase_client()

    def resolve_actor(self, access_token: Optional[str]) -> Actor:
        """
        Resolve the user behind a bearer token.

        Raises:
            NotAuthenticatedError: Missing, expired or invalid token
        """
        if not access_token:
            raise NotAuthenticatedError()

        try:
            response = self.db.auth.get_user(access_token)
        except Exception as e:
            logger.warning("actor_resolution_failed", error=str(e))
            raise NotAuthenticatedError()

        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            raise NotAuthenticatedError()

        return Actor(id=str(user.id), email=getattr(user, "email", None))

    def get_team(self, team_id: str) -> Team:
        """
        Get a team by id.

        Raises:
            TeamNotFoundError: If the team doesn't exist
            DatabaseError: If the query fails
        """
        try:
            result = (
                self.db.table("teams")
                .select("id, name")
                .eq("id", team_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("team_lookup_failed", team_id=team_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise TeamNotFoundError(team_id)

        return Team(**result.data[0])

    def get_member_role(self, team_id: str, user_id: str) -> Optional[str]:
        """Role of a user within a team, or None if not a member."""
        try:
            result = (
                self.db.table("team_members")
                .select("role")
                .eq("team_id", team_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("member_lookup_failed", team_id=team_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return result.data[0].get("role")

    def require_member(self, team_id: str, actor: Actor) -> str:
        """
        Returns:
            The actor's role

        Raises:
            TeamAccessDeniedError: If the actor is not a member of the team
        """
        role = self.get_member_role(team_id, actor.id)
        if role is None:
            logger.warning("team_access_denied", team_id=team_id, user_id=actor.id)
            raise TeamAccessDeniedError(team_id, actor.id)
        return role

    def require_admin(self, team_id: str, actor: Actor) -> None:
        """
        Raises:
            ExportPermissionError: If the actor is not an admin of the team
        """
        role = self.get_member_role(team_id, actor.id)
        if role != TeamRole.ADMIN.value:
            logger.warning("admin_required", team_id=team_id, user_id=actor.id, role=role)
            raise ExportPermissionError(team_id, actor.id)


# Singleton instance
_team_service: Optional[TeamService] = None


def get_team_service() -> TeamService:
    """Get or create TeamService instance."""
    global _team_service
    if _team_service is None:
        _team_service = TeamService()
    return _team_service
