"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, CamelSchema, RowSchema
from models.component import (
    Currency,
    ComponentType,
    ComponentRow,
    PriceHistoryRow,
    CatalogComponent,
    Candidate,
    component_from_row,
)
from models.assembly import AssemblyRow, AssemblyComponentRow
from models.quotation import (
    QuotationRow,
    QuotationSystemRow,
    QuotationItemRow,
    ActivityLogRow,
)
from models.matching import (
    MatchType,
    AIRecommendation,
    FuzzyMatchReason,
    FuzzyMatchResult,
    AIMatchResult,
    ComponentMatch,
    MatchResult,
    MatchingConfig,
    MatchRequest,
    BatchMatchRequest,
)
from models.bundle import (
    ExportOptions,
    ExportManifest,
    ExportData,
    ExportBundle,
    EncryptedBundleFile,
    ExportResult,
    RelationshipMap,
    AttachmentData,
    SystemSettings,
)
from models.transfer import (
    EntityType,
    ConflictType,
    ResolutionKind,
    DataConflict,
    ConflictResolution,
    ImportOptions,
    ImportIssue,
    ImportValidationResult,
    ImportProgress,
    ImportResult,
    ImportServiceResult,
)
from models.team import TeamRole, Actor, Team

__all__ = [
    # Base
    "BaseSchema",
    "CamelSchema",
    "RowSchema",

    # Catalog
    "Currency",
    "ComponentType",
    "ComponentRow",
    "PriceHistoryRow",
    "CatalogComponent",
    "Candidate",
    "component_from_row",
    "AssemblyRow",
    "AssemblyComponentRow",
    "QuotationRow",
    "QuotationSystemRow",
    "QuotationItemRow",
    "ActivityLogRow",

    # Matching
    "MatchType",
    "AIRecommendation",
    "FuzzyMatchReason",
    "FuzzyMatchResult",
    "AIMatchResult",
    "ComponentMatch",
    "MatchResult",
    "MatchingConfig",
    "MatchRequest",
    "BatchMatchRequest",

    # Export
    "ExportOptions",
    "ExportManifest",
    "ExportData",
    "ExportBundle",
    "EncryptedBundleFile",
    "ExportResult",
    "RelationshipMap",
    "AttachmentData",
    "SystemSettings",

    # Import
    "EntityType",
    "ConflictType",
    "ResolutionKind",
    "DataConflict",
    "ConflictResolution",
    "ImportOptions",
    "ImportIssue",
    "ImportValidationResult",
    "ImportProgress",
    "ImportResult",
    "ImportServiceResult",

    # Teams
    "TeamRole",
    "Actor",
    "Team",
]
