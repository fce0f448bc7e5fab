"""
Import-side schemas: conflicts, resolutions, validation and results.

ResolutionOutcome is the closed set of things the importer can do with
one incoming row: Skip, Update(id) or CreateNew(id).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import Field

from models.base import BaseSchema


class EntityType(str, Enum):
    """Entity kinds that can be reported on."""
    COMPONENT = "component"
    ASSEMBLY = "assembly"
    QUOTATION = "quotation"
    SYSTEM = "system"
    ITEM = "item"
    SETTING = "setting"
    ATTACHMENT = "attachment"


class ConflictType(str, Enum):
    """Why an incoming row collides with the destination."""
    DUPLICATE_ID = "duplicate_id"
    DUPLICATE_BUSINESS_KEY = "duplicate_business_key"


class ResolutionKind(str, Enum):
    """Caller decision for one conflicting row."""
    SKIP = "skip"
    UPDATE = "update"
    CREATE_NEW = "create_new"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# ===================
# CONFLICTS / RESOLUTIONS
# ===================

class DataConflict(BaseSchema):
    """A classified collision between an incoming and an existing row."""
    type: ConflictType
    entity_type: EntityType
    entity_id: str
    entity_name: str = "Unknown"
    existing_id: Optional[str] = None
    existing_record: dict[str, Any] = Field(default_factory=dict)
    imported_record: dict[str, Any] = Field(default_factory=dict)
    message: str

    @property
    def conflict_id(self) -> str:
        return f"{self.entity_type.value}:{self.entity_id}:{self.type.value}"


class ConflictResolution(BaseSchema):
    """Caller-supplied decision, consumed once by the importer."""
    entity_id: str
    entity_type: Optional[EntityType] = None
    resolution: ResolutionKind
    new_id: Optional[str] = None
    conflict_id: Optional[str] = None


@dataclass(frozen=True)
class Skip:
    """Do not write the row."""


@dataclass(frozen=True)
class Update:
    """Write the row over an existing identifier in the destination."""
    id: str


@dataclass(frozen=True)
class CreateNew:
    """Write the row under this identifier (possibly the original one)."""
    id: str


ResolutionOutcome = Union[Skip, Update, CreateNew]


# ===================
# OPTIONS / ISSUES
# ===================

class ImportOptions(BaseSchema):
    """Import tuning."""
    batch_size: int = Field(default=100, ge=1, le=5000)
    strict_validation: bool = False
    default_conflict_resolution: Optional[ResolutionKind] = None
    password: Optional[str] = Field(None, exclude=True, repr=False)


class ImportIssue(BaseSchema):
    """A validation finding or a recoverable write failure."""
    severity: IssueSeverity
    entity_type: EntityType
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    field: Optional[str] = None
    message: str
    code: str


class EntityCounts(BaseSchema):
    components: int = 0
    assemblies: int = 0
    quotations: int = 0


class CurrencyTotals(BaseSchema):
    """How many components were originally priced in each currency."""
    nis: int = 0
    usd: int = 0
    eur: int = 0


class ImportPreview(BaseSchema):
    to_create: EntityCounts = Field(default_factory=EntityCounts)
    to_update: EntityCounts = Field(default_factory=EntityCounts)
    to_skip: EntityCounts = Field(default_factory=EntityCounts)
    sample_components: list[dict[str, Any]] = Field(default_factory=list)
    sample_quotations: list[dict[str, Any]] = Field(default_factory=list)
    total_original_currencies: CurrencyTotals = Field(default_factory=CurrencyTotals)


class FileIntegrity(BaseSchema):
    manifest_valid: bool = False
    relationships_intact: bool = False
    record_counts_match: bool = False


class ImportValidationResult(BaseSchema):
    """Validation report; `valid` is true when there are no errors."""
    valid: bool
    errors: list[ImportIssue] = Field(default_factory=list)
    warnings: list[ImportIssue] = Field(default_factory=list)
    conflicts: list[DataConflict] = Field(default_factory=list)
    preview: ImportPreview = Field(default_factory=ImportPreview)
    schema_compatible: bool = False
    team_id_match: bool = False
    file_integrity: FileIntegrity = Field(default_factory=FileIntegrity)


# ===================
# PROGRESS / RESULT
# ===================

class ImportProgress(BaseSchema):
    status: str = "importing"
    current_entity: EntityType
    current_batch: int
    total_batches: int
    records_processed: int
    total_records: int
    percent_complete: float
    errors: int = 0
    warnings: int = 0


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ImportResult(BaseSchema):
    """Per-entity counts plus every recoverable problem encountered."""
    success: bool = True
    records_created: EntityCounts = Field(default_factory=EntityCounts)
    records_updated: EntityCounts = Field(default_factory=EntityCounts)
    records_skipped: EntityCounts = Field(default_factory=EntityCounts)
    errors: list[ImportIssue] = Field(default_factory=list)
    warnings: list[ImportIssue] = Field(default_factory=list)
    id_mappings: dict[str, dict[str, str]] = Field(default_factory=dict)
    duration_ms: int = 0
    completed_at: str = Field(default_factory=_utc_now_iso)


class ImportServiceResult(BaseSchema):
    """Outcome of an import call."""
    success: bool
    status_code: int = 200
    data: Optional[ImportResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    log_id: Optional[str] = None
