"""
Unit tests for TeamService and AuditLogService.

Run: pytest tests/unit/test_team_service.py -v
"""

import pytest

from exceptions import (
    DatabaseError,
    ExportPermissionError,
    NotAuthenticatedError,
    TeamAccessDeniedError,
    TeamNotFoundError,
)
from models.team import Actor
from services.audit_log_service import AuditLogService
from services.team_service import TeamService


class TestResolveActor:

    def test_valid_token(self, team_db):
        actor = TeamService(team_db).resolve_actor("admin-a-token")

        assert actor == Actor(id="user-admin-a", email="admin-a@example.com")

    @pytest.mark.parametrize("token", [None, "", "expired-token"])
    def test_invalid_token(self, team_db, token):
        with pytest.raises(NotAuthenticatedError):
            TeamService(team_db).resolve_actor(token)


class TestTeamLookups:

    def test_get_team(self, team_db):
        assert TeamService(team_db).get_team("team-b").name == "Team B"

    def test_get_missing_team(self, team_db):
        with pytest.raises(TeamNotFoundError):
            TeamService(team_db).get_team("ghost")

    def test_get_team_query_failure(self, team_db):
        team_db.fail_on("teams", "select")

        with pytest.raises(DatabaseError):
            TeamService(team_db).get_team("team-a")

    def test_roles(self, team_db):
        service = TeamService(team_db)

        assert service.get_member_role("team-a", "user-admin-a") == "admin"
        assert service.get_member_role("team-a", "user-member-a") == "member"
        assert service.get_member_role("team-b", "user-member-a") is None

    def test_require_admin(self, team_db):
        service = TeamService(team_db)
        service.require_admin("team-a", Actor(id="user-admin-a"))

        with pytest.raises(ExportPermissionError):
            service.require_admin("team-a", Actor(id="user-member-a"))

    def test_require_member(self, team_db):
        service = TeamService(team_db)

        assert service.require_member("team-a", Actor(id="user-member-a")) == "member"
        with pytest.raises(TeamAccessDeniedError):
            service.require_member("team-b", Actor(id="user-member-a"))


class TestAuditLogService:

    def test_start_and_complete(self, mock_supabase):
        audit = AuditLogService(mock_supabase)

        log_id = audit.start("team-a", "user-1", "export", {"components": True})
        audit.complete(log_id, "completed", record_counts={"components": 3})

        row = mock_supabase.rows("export_import_logs")[0]
        assert row["id"] == log_id
        assert row["status"] == "completed"
        assert row["record_counts"] == {"components": 3}
        assert row["completed_at"]

    def test_write_failures_are_swallowed(self, mock_supabase):
        mock_supabase.fail_on("export_import_logs", "insert")
        audit = AuditLogService(mock_supabase)

        log_id = audit.start("team-a", "user-1", "import")
        audit.complete(log_id, "failed", error_message="boom")

        assert log_id is None
        assert mock_supabase.calls_for("export_import_logs", "update") == []
