"""
Export bundle schemas.

The bundle is a JSON document: {manifest, data, relationships, attachments?}.
All bundle-level keys are camelCase on disk; rows inside `data` keep the
store's snake_case column names.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.assembly import AssemblyComponentRow, AssemblyRow
from models.base import BaseSchema, CamelSchema
from models.component import ComponentRow, Currency, PriceHistoryRow
from models.quotation import (
    ActivityLogRow,
    QuotationItemRow,
    QuotationRow,
    QuotationSystemRow,
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ===================
# OPTIONS
# ===================

class ExportOptions(CamelSchema):
    """What to put in the bundle."""

    include_components: bool = True
    include_assemblies: bool = True
    include_quotations: bool = True
    include_settings: bool = True
    include_attachments: bool = False
    include_price_history: bool = False
    include_activity_logs: bool = False

    # Attachments are URL references unless this is set
    embed_attachments: bool = False

    format: Literal["json"] = "json"
    encrypt_data: bool = False
    password: Optional[str] = Field(None, exclude=True, repr=False)
    description: Optional[str] = Field(None, max_length=500)


# ===================
# MANIFEST
# ===================

class ExportIncludes(CamelSchema):
    """Inclusion flags recorded in the manifest."""
    components: bool = False
    assemblies: bool = False
    quotations: bool = False
    settings: bool = False
    price_history: bool = False
    activity_logs: bool = False
    attachments: bool = False


class ExportCounts(CamelSchema):
    """Record counts; must equal the lengths of the bundle arrays."""
    components: int = 0
    assemblies: int = 0
    assembly_components: int = 0
    quotations: int = 0
    quotation_systems: int = 0
    quotation_items: int = 0
    price_history: int = 0
    activity_logs: int = 0
    attachments: int = 0

    @classmethod
    def of(cls, data: "ExportData", attachments: Optional[list["AttachmentData"]] = None) -> "ExportCounts":
        """Counts equal to the cardinality of each array."""
        return cls(
            components=len(data.components or []),
            assemblies=len(data.assemblies or []),
            assembly_components=len(data.assembly_components or []),
            quotations=len(data.quotations or []),
            quotation_systems=len(data.quotation_systems or []),
            quotation_items=len(data.quotation_items or []),
            price_history=len(data.price_history or []),
            activity_logs=len(data.activity_logs or []),
            attachments=len(attachments or []),
        )


class EncryptionInfo(CamelSchema):
    """Encryption metadata."""
    enabled: bool = False
    algorithm: Optional[str] = None
    key_derivation: Optional[str] = None


class ExportManifest(CamelSchema):
    """Bundle metadata."""
    version: str
    schema_version: str
    exported_at: str = Field(default_factory=_utc_now_iso)
    exported_by: str
    exported_by_email: Optional[str] = None
    team_id: str
    team_name: str
    description: Optional[str] = None
    includes: ExportIncludes = Field(default_factory=ExportIncludes)
    counts: ExportCounts = Field(default_factory=ExportCounts)
    encryption: EncryptionInfo = Field(default_factory=EncryptionInfo)


# ===================
# SETTINGS
# ===================

class ExchangeRates(CamelSchema):
    usd_to_ils: float
    eur_to_ils: float
    updated_at: str = Field(default_factory=_utc_now_iso)


class DefaultPricing(CamelSchema):
    markup_percent: float
    profit_percent: float
    risk_percent: float
    vat_rate: float
    include_vat: bool = Field(True, alias="includeVAT")
    day_work_cost: float


class NumberingTemplates(CamelSchema):
    """Stored numbering_config; unknown keys are carried through."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow"
    )

    project_number_format: Optional[str] = None
    quotation_number_format: Optional[str] = None


class TeamPreferences(CamelSchema):
    default_currency: Currency = Currency.NIS
    date_format: Optional[str] = None
    language: Optional[str] = None


class SystemSettings(CamelSchema):
    """Settings synthesized at export time (not a raw table dump)."""
    exchange_rates: ExchangeRates
    default_pricing: DefaultPricing
    categories: list[str] = Field(default_factory=list)
    numbering_templates: Optional[NumberingTemplates] = None
    preferences: Optional[TeamPreferences] = None


# ===================
# RELATIONSHIPS / ATTACHMENTS
# ===================

class RelationshipMap(CamelSchema):
    """Parent id -> ordered child ids, one map per foreign-key edge."""
    component_to_items: dict[str, list[str]] = Field(default_factory=dict)
    assembly_to_components: dict[str, list[str]] = Field(default_factory=dict)
    quotation_to_systems: dict[str, list[str]] = Field(default_factory=dict)
    system_to_items: dict[str, list[str]] = Field(default_factory=dict)
    component_to_assemblies: dict[str, list[str]] = Field(default_factory=dict)


class AttachmentData(CamelSchema):
    """A stored file, embedded as base64 or referenced by URL."""
    id: str
    file_name: str
    file_type: Optional[str] = None
    file_size_bytes: int = 0
    url: Optional[str] = None
    storage_path: Optional[str] = None
    embedded: bool = False
    base64_data: Optional[str] = None
    entity_type: Literal["component", "quotation"] = "component"
    entity_id: str


# ===================
# BUNDLE
# ===================

class ExportData(CamelSchema):
    """Entity arrays; None means the category was not exported."""
    components: Optional[list[ComponentRow]] = None
    assemblies: Optional[list[AssemblyRow]] = None
    assembly_components: Optional[list[AssemblyComponentRow]] = None
    quotations: Optional[list[QuotationRow]] = None
    quotation_systems: Optional[list[QuotationSystemRow]] = None
    quotation_items: Optional[list[QuotationItemRow]] = None
    price_history: Optional[list[PriceHistoryRow]] = None
    activity_logs: Optional[list[ActivityLogRow]] = None
    settings: Optional[SystemSettings] = None


class ExportBundle(CamelSchema):
    """Complete portable package."""
    manifest: ExportManifest
    data: ExportData
    relationships: RelationshipMap
    attachments: Optional[list[AttachmentData]] = None

    def to_json_dict(self) -> dict:
        """Serialize the way it is written to disk."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=False)


class EncryptedBundleFile(CamelSchema):
    """Encryption envelope; `encrypted` is the sentinel."""
    encrypted: Literal[True] = True
    algorithm: str
    key_derivation: str
    salt: str
    iv: str
    auth_tag: str
    encrypted_data: str


class ExportResult(BaseSchema):
    """Outcome of an export call."""
    success: bool
    status_code: int = 200
    bundle: Optional[ExportBundle] = None
    encrypted_file: Optional[EncryptedBundleFile] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    log_id: Optional[str] = None
