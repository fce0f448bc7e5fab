"""
Export service - package a team's catalog into a portable bundle.

Flow:
    1. Preconditions: authenticated actor, team admin, team exists
    2. Extraction, each step toggled by ExportOptions:
       components -> assemblies (+ joins) -> quotations -> systems -> items
       -> settings -> price history -> activity logs -> attachments
    3. Relationship map and manifest (counts == array lengths)
    4. Optional password encryption

Any extraction failure aborts the whole export; an incomplete bundle is
worse than none. The audit log row is best-effort.
"""

import base64
from typing import Any, Callable, Optional

import structlog

from config import get_supabase_client, settings
from exceptions import AppError, ExportFailedError, NotAuthenticatedError
from models.assembly import AssemblyComponentRow, AssemblyRow
from models.bundle import (
    AttachmentData,
    DefaultPricing,
    EncryptionInfo,
    ExchangeRates,
    ExportBundle,
    ExportCounts,
    ExportData,
    ExportIncludes,
    ExportManifest,
    ExportOptions,
    ExportResult,
    NumberingTemplates,
    SystemSettings,
    TeamPreferences,
)
from models.component import ComponentRow, Currency, PriceHistoryRow
from models.quotation import (
    ActivityLogRow,
    QuotationItemRow,
    QuotationRow,
    QuotationSystemRow,
)
from models.team import Actor
from services.audit_log_service import AuditLogService
from services.relationship_service import build_relationship_map
from services.team_service import TeamService
from utils.bundle_crypto import ALGORITHM, encrypt_bundle
from utils.text_utils import storage_path_from_url

logger = structlog.get_logger(__name__)

ExportProgressCallback = Callable[[str, int, str], None]

# user_settings keys
CATEGORIES_KEY = "componentCategories"
EXCHANGE_RATES_KEY = "exchangeRates"
NUMBERING_KEY = "numbering_config"


class ExportService:
    """
    Builds ExportBundles for one team at a time.

    Usage:
        service = ExportService()
        result = service.export_data(team_id, actor, ExportOptions())
    """

    def __init__(self, db=None, team_service=None, audit_log=None):
        self.db = db or get_supabase_client()
        self.team_service = team_service or TeamService(self.db)
        self.audit_log = audit_log or AuditLogService(self.db)
        self.bucket = settings.attachments_bucket

    def export_data(
        self,
        team_id: str,
        actor: Optional[Actor],
        options: Optional[ExportOptions] = None,
        progress_callback: Optional[ExportProgressCallback] = None,
    ) -> ExportResult:
        """
        Export a team's data.

        Args:
            team_id: Team to export
            actor: Authenticated user (must be a team admin)
            options: What to include
            progress_callback: Called with (status, percent, message)

        Returns:
            ExportResult; success=False carries error and error_code
        """
        options = options or ExportOptions()

        def progress(status: str, percent: int, message: str) -> None:
            if progress_callback:
                progress_callback(status, percent, message)

        logger.info(
            "export_started",
            team_id=team_id,
            include_attachments=options.include_attachments,
            encrypt=options.encrypt_data,
        )
        progress("preparing", 0, "Preparing export...")

        try:
            if actor is None:
                raise NotAuthenticatedError()
            self.team_service.require_admin(team_id, actor)
            team = self.team_service.get_team(team_id)
        except AppError as e:
            logger.warning("export_precondition_failed", team_id=team_id, code=e.code)
            return ExportResult(
                success=False, status_code=e.status_code, error=e.message, error_code=e.code,
            )

        log_id = self.audit_log.start(
            team_id,
            actor.id,
            "export",
            included_entities=self._includes(options).model_dump(by_alias=True),
            file_format=options.format,
        )

        try:
            bundle = self._build_bundle(team_id, team.name, actor, options, progress)

            encrypted_file = None
            if options.encrypt_data:
                progress("exporting", 95, "Encrypting...")
                encrypted_file = encrypt_bundle(bundle.to_json_dict(), options.password)

        except AppError as e:
            logger.error("export_failed", team_id=team_id, code=e.code, error=e.message)
            self.audit_log.complete(log_id, "failed", error_message=e.message)
            progress("failed", 100, e.message)
            return ExportResult(
                success=False,
                status_code=e.status_code,
                error=e.message,
                error_code=e.code,
                log_id=log_id,
            )

        counts = bundle.manifest.counts
        self.audit_log.complete(log_id, "completed", record_counts=counts.model_dump(by_alias=True))
        progress("completed", 100, "Export completed successfully")

        logger.info("export_completed", team_id=team_id, log_id=log_id, counts=counts.model_dump())

        if encrypted_file is not None:
            return ExportResult(success=True, encrypted_file=encrypted_file, log_id=log_id)
        return ExportResult(success=True, bundle=bundle, log_id=log_id)

    # ===================
    # ASSEMBLY
    # ===================

    def _build_bundle(
        self,
        team_id: str,
        team_name: str,
        actor: Actor,
        options: ExportOptions,
        progress: ExportProgressCallback,
    ) -> ExportBundle:
        data = ExportData()

        progress("exporting", 10, "Extracting components...")
        if options.include_components:
            data.components = self.extract_components(team_id)
            progress("exporting", 25, f"Extracted {len(data.components)} components")

        if options.include_assemblies:
            data.assemblies, data.assembly_components = self.extract_assemblies(team_id)
            progress("exporting", 40, f"Extracted {len(data.assemblies)} assemblies")

        if options.include_quotations:
            (
                data.quotations,
                data.quotation_systems,
                data.quotation_items,
            ) = self.extract_quotations(team_id)
            progress("exporting", 60, f"Extracted {len(data.quotations)} quotations")

        if options.include_settings:
            data.settings = self.extract_settings(team_id)
            progress("exporting", 70, "Extracted settings")

        if options.include_price_history:
            data.price_history = self.extract_price_history(team_id, data.components)
            progress("exporting", 75, f"Extracted {len(data.price_history)} price records")

        if options.include_activity_logs:
            data.activity_logs = self.extract_activity_logs(team_id)
            progress("exporting", 80, f"Extracted {len(data.activity_logs)} activity logs")

        attachments = None
        if options.include_attachments:
            attachments = self.extract_attachments(team_id, embed=options.embed_attachments)
            progress("exporting", 90, f"Extracted {len(attachments)} attachments")

        relationships = build_relationship_map(data)

        manifest = ExportManifest(
            version=settings.export_format_version,
            schema_version=settings.export_schema_version,
            exported_by=actor.id,
            exported_by_email=actor.email,
            team_id=team_id,
            team_name=team_name,
            description=options.description,
            includes=self._includes(options),
            counts=ExportCounts.of(data, attachments),
            encryption=EncryptionInfo(
                enabled=options.encrypt_data,
                algorithm=ALGORITHM if options.encrypt_data else None,
                key_derivation=(
                    f"PBKDF2-{settings.bundle_kdf_iterations}" if options.encrypt_data else None
                ),
            ),
        )

        return ExportBundle(
            manifest=manifest,
            data=data,
            relationships=relationships,
            attachments=attachments,
        )

    @staticmethod
    def _includes(options: ExportOptions) -> ExportIncludes:
        return ExportIncludes(
            components=options.include_components,
            assemblies=options.include_assemblies,
            quotations=options.include_quotations,
            settings=options.include_settings,
            price_history=options.include_price_history,
            activity_logs=options.include_activity_logs,
            attachments=options.include_attachments,
        )

    # ===================
    # EXTRACTION
    # ===================

    def _fetch(self, step: str, query) -> list[dict[str, Any]]:
        """Execute a query; any failure aborts the export at this step."""
        try:
            result = query.execute()
        except Exception as e:
            logger.error("export_extraction_failed", step=step, error=str(e))
            raise ExportFailedError(step, str(e))
        return result.data or []

    def extract_components(self, team_id: str) -> list[ComponentRow]:
        """Team components, oldest first."""
        rows = self._fetch(
            "components",
            self.db.table("components")
            .select("*")
            .eq("team_id", team_id)
            .order("created_at"),
        )
        return [ComponentRow.model_validate(r) for r in rows]

    def extract_assemblies(self, team_id: str) -> tuple[list[AssemblyRow], list[AssemblyComponentRow]]:
        """Team assemblies plus their join rows, scoped to those assembly ids."""
        rows = self._fetch(
            "assemblies",
            self.db.table("assemblies")
            .select("*")
            .eq("team_id", team_id)
            .order("created_at"),
        )
        assemblies = [AssemblyRow.model_validate(r) for r in rows]
        if not assemblies:
            return [], []

        link_rows = self._fetch(
            "assembly_components",
            self.db.table("assembly_components")
            .select("*")
            .in_("assembly_id", [a.id for a in assemblies])
            .order("assembly_id")
            .order("sort_order"),
        )
        return assemblies, [AssemblyComponentRow.model_validate(r) for r in link_rows]

    def extract_quotations(
        self,
        team_id: str,
    ) -> tuple[list[QuotationRow], list[QuotationSystemRow], list[QuotationItemRow]]:
        """
        Quotations -> systems -> items, one scoped query per level.
        """
        rows = self._fetch(
            "quotations",
            self.db.table("quotations")
            .select("*")
            .eq("team_id", team_id)
            .order("created_at"),
        )
        quotations = [QuotationRow.model_validate(r) for r in rows]
        if not quotations:
            return [], [], []

        system_rows = self._fetch(
            "quotation_systems",
            self.db.table("quotation_systems")
            .select("*")
            .in_("quotation_id", [q.id for q in quotations])
            .order("quotation_id")
            .order("sort_order"),
        )
        systems = [QuotationSystemRow.model_validate(r) for r in system_rows]
        if not systems:
            return quotations, [], []

        item_rows = self._fetch(
            "quotation_items",
            self.db.table("quotation_items")
            .select("*")
            .in_("quotation_system_id", [s.id for s in systems])
            .order("quotation_system_id")
            .order("sort_order"),
        )
        items = [QuotationItemRow.model_validate(r) for r in item_rows]

        return quotations, systems, items

    def extract_settings(self, team_id: str) -> SystemSettings:
        """
        Synthesize team settings from user_settings and component categories.

        Values the team never stored fall back to the configured defaults.
        """
        stored_rows = self._fetch(
            "settings",
            self.db.table("user_settings")
            .select("setting_key, setting_value")
            .eq("team_id", team_id),
        )
        stored = {r.get("setting_key"): r.get("setting_value") or {} for r in stored_rows}

        rates = stored.get(EXCHANGE_RATES_KEY) or {}
        exchange_rates = ExchangeRates(
            usd_to_ils=rates.get("usdToIls") or settings.default_usd_to_ils,
            eur_to_ils=rates.get("eurToIls") or settings.default_eur_to_ils,
            **({"updated_at": rates["updatedAt"]} if rates.get("updatedAt") else {}),
        )

        category_rows = self._fetch(
            "settings",
            self.db.table("components")
            .select("category")
            .eq("team_id", team_id),
        )
        categories: list[str] = []
        stored_categories = (stored.get(CATEGORIES_KEY) or {}).get("categories") or []
        for category in list(stored_categories) + [r.get("category") for r in category_rows]:
            if category and category not in categories:
                categories.append(category)

        numbering = stored.get(NUMBERING_KEY)

        return SystemSettings(
            exchange_rates=exchange_rates,
            default_pricing=DefaultPricing(
                markup_percent=settings.default_markup_percent,
                profit_percent=settings.default_profit_percent,
                risk_percent=settings.default_risk_percent,
                vat_rate=settings.default_vat_rate,
                include_vat=True,
                day_work_cost=settings.default_day_work_cost,
            ),
            categories=categories,
            numbering_templates=NumberingTemplates.model_validate(numbering) if numbering else None,
            preferences=TeamPreferences(default_currency=Currency(settings.default_currency)),
        )

    def extract_price_history(
        self,
        team_id: str,
        components: Optional[list[ComponentRow]],
    ) -> list[PriceHistoryRow]:
        """Quote price history for the team's components."""
        if components is None:
            id_rows = self._fetch(
                "price_history",
                self.db.table("components").select("id").eq("team_id", team_id),
            )
            component_ids = [r["id"] for r in id_rows]
        else:
            component_ids = [c.id for c in components]

        if not component_ids:
            return []

        rows = self._fetch(
            "price_history",
            self.db.table("component_quote_history")
            .select("*")
            .in_("component_id", component_ids)
            .order("created_at"),
        )
        return [PriceHistoryRow.model_validate(r) for r in rows]

    def extract_activity_logs(self, team_id: str) -> list[ActivityLogRow]:
        rows = self._fetch(
            "activity_logs",
            self.db.table("activity_logs")
            .select("*")
            .eq("team_id", team_id)
            .order("created_at"),
        )
        return [ActivityLogRow.model_validate(r) for r in rows]

    def extract_attachments(self, team_id: str, embed: bool = False) -> list[AttachmentData]:
        """
        Supplier quote files stored for the team.

        Each file is linked to the first component priced from it, or to the
        quote itself. Bytes are embedded only when embed is set.
        """
        quotes = self._fetch(
            "attachments",
            self.db.table("supplier_quotes")
            .select("*")
            .eq("team_id", team_id)
            .order("created_at"),
        )
        if not quotes:
            return []

        history = self._fetch(
            "attachments",
            self.db.table("component_quote_history")
            .select("quote_id, component_id")
            .in_("quote_id", [q["id"] for q in quotes]),
        )
        component_by_quote: dict[str, str] = {}
        for row in history:
            if row.get("quote_id") and row.get("component_id"):
                component_by_quote.setdefault(row["quote_id"], row["component_id"])

        attachments = []
        for quote in quotes:
            url = quote.get("file_url")
            storage_path = storage_path_from_url(url, self.bucket)
            component_id = component_by_quote.get(quote["id"])

            attachment = AttachmentData(
                id=quote["id"],
                file_name=quote.get("file_name") or "attachment",
                file_type=quote.get("file_type"),
                file_size_bytes=int((quote.get("file_size_kb") or 0) * 1024),
                url=url,
                storage_path=storage_path,
                entity_type="component" if component_id else "quotation",
                entity_id=component_id or quote["id"],
            )

            if embed:
                if storage_path:
                    content = self._download(storage_path)
                    attachment.base64_data = base64.b64encode(content).decode("ascii")
                    attachment.file_size_bytes = len(content)
                    attachment.embedded = True
                else:
                    logger.warning(
                        "attachment_not_in_bucket",
                        attachment_id=quote["id"],
                        url=(url or "")[:60],
                    )

            attachments.append(attachment)

        return attachments

    def _download(self, storage_path: str) -> bytes:
        try:
            return self.db.storage.from_(self.bucket).download(storage_path)
        except Exception as e:
            logger.error("attachment_download_failed", path=storage_path, error=str(e))
            raise ExportFailedError("attachments", str(e))


# Singleton instance
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
