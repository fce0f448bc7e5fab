"""
Business logic services.

Each service handles one domain area.
"""

from services.component_matcher_service import ComponentMatcherService, get_matcher_service
from services.claude_match_service import ClaudeMatchService
from services.conflict_service import ConflictDetectorService, get_conflict_service
from services.export_service import ExportService, get_export_service
from services.import_service import ImportService, get_import_service
from services.team_service import TeamService, get_team_service
from services.audit_log_service import AuditLogService

__all__ = [
    "ComponentMatcherService",
    "get_matcher_service",
    "ClaudeMatchService",
    "ConflictDetectorService",
    "get_conflict_service",
    "ExportService",
    "get_export_service",
    "ImportService",
    "get_import_service",
    "TeamService",
    "get_team_service",
    "AuditLogService",
]
