"""
Import service - validate a bundle and replay it into a destination team.

Flow:
    parse_bundle()      bytes/str/dict -> ExportBundle (decrypting if needed)
    validate_import()   schema, team, conflicts, integrity, counts, preview
    apply_import()      components -> assemblies (+ joins) -> quotations
                        (+ systems + items) -> price history -> attachments
                        -> settings

Identity rule for rows the caller did not resolve: a row from another team
always gets a new id; a row already owned by the destination team keeps
its id. Batch and row failures are collected into the result; only
precondition failures make the whole import fail.
"""

import base64
import binascii
import json
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
from uuid import uuid4

import structlog
from pydantic import ValidationError as PydanticValidationError

from config import get_supabase_client, settings
from exceptions import (
    AppError,
    BundleStructureError,
    DatabaseError,
    NotAuthenticatedError,
    RecordCountMismatchError,
    SchemaIncompatibleError,
    ValidationError,
)
from models.bundle import AttachmentData, ExportBundle, ExportCounts, ExportData, SystemSettings
from models.component import Currency
from models.team import Actor
from models.transfer import (
    ConflictResolution,
    CreateNew,
    CurrencyTotals,
    DataConflict,
    EntityCounts,
    EntityType,
    FileIntegrity,
    ImportIssue,
    ImportOptions,
    ImportPreview,
    ImportProgress,
    ImportResult,
    ImportServiceResult,
    ImportValidationResult,
    IssueSeverity,
    ResolutionKind,
    ResolutionOutcome,
    Skip,
    Update,
)
from services.audit_log_service import AuditLogService
from services.conflict_service import ConflictDetectorService
from services.export_service import CATEGORIES_KEY, EXCHANGE_RATES_KEY, NUMBERING_KEY
from services.relationship_service import find_dangling_references
from services.team_service import TeamService
from utils.best_effort import best_effort
from utils.bundle_crypto import decrypt_bundle, is_encrypted_file
from utils.text_utils import mime_type_from_filename, sanitize_filename, sanitize_path_segment

logger = structlog.get_logger(__name__)

ImportProgressCallback = Callable[[ImportProgress], None]

REQUIRED_SECTIONS = ("manifest", "data", "relationships")
SUPPORTED_SCHEMA_PREFIX = "1."
PREVIEW_SAMPLE_SIZE = 5

# Manifest count fields checked against the arrays they describe
COUNTED_ARRAYS = (
    "components",
    "assemblies",
    "quotations",
    "quotation_systems",
    "quotation_items",
)


def _new_id() -> str:
    return str(uuid4())


# ===================
# PARSING
# ===================

def parse_bundle(raw: Union[bytes, str, dict], password: Optional[str] = None) -> ExportBundle:
    """
    Parse an export file, decrypting it first when it carries the sentinel.

    Args:
        raw: File bytes, JSON text, or an already-decoded dict
        password: Required for encrypted files

    Returns:
        Validated ExportBundle

    Raises:
        BundlePasswordRequiredError: Encrypted without password
        BundleDecryptionError: Wrong password or tampered file
        BundleStructureError: Missing manifest/data/relationships
        ValidationError: Not JSON, or sections do not match the schema
    """
    payload: Any = raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            payload = raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("Import file is not UTF-8 text", code="INVALID_FILE")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import file is not valid JSON: {e.msg}", code="INVALID_JSON")

    if not isinstance(payload, dict):
        raise BundleStructureError(list(REQUIRED_SECTIONS))

    if is_encrypted_file(payload):
        payload = decrypt_bundle(payload, password)

    missing = [section for section in REQUIRED_SECTIONS if not payload.get(section)]
    if missing:
        raise BundleStructureError(missing)

    try:
        bundle = ExportBundle.model_validate(payload)
    except PydanticValidationError as e:
        logger.warning("bundle_schema_invalid", errors=e.error_count())
        raise ValidationError(
            "Export package does not match the expected format",
            code="INVALID_BUNDLE",
            details={"errors": e.errors(include_url=False, include_input=False)[:20]},
        )

    logger.info(
        "bundle_parsed",
        team_id=bundle.manifest.team_id,
        schema_version=bundle.manifest.schema_version,
    )
    return bundle


def is_schema_compatible(schema_version: Optional[str]) -> bool:
    return bool(schema_version) and schema_version.startswith(SUPPORTED_SCHEMA_PREFIX)


def count_mismatches(bundle: ExportBundle) -> dict[str, dict[str, int]]:
    """
    Manifest counts that disagree with the populated arrays.

    Arrays that were not exported (None) are not checked.
    """
    actual = ExportCounts.of(bundle.data, bundle.attachments)
    declared = bundle.manifest.counts

    fields = list(COUNTED_ARRAYS)
    if bundle.attachments is not None:
        fields.append("attachments")

    mismatches = {}
    for field in fields:
        if field != "attachments" and getattr(bundle.data, field) is None:
            continue
        expected, found = getattr(declared, field), getattr(actual, field)
        if expected != found:
            mismatches[field] = {"manifest": expected, "actual": found}
    return mismatches


# ===================
# RESOLUTION
# ===================

def decide_resolution(
    source_team_id: Optional[str],
    destination_team_id: str,
    caller_resolution: Optional[ConflictResolution],
    entity_id: str,
    id_factory: Callable[[], str] = _new_id,
    existing_id: Optional[str] = None,
) -> ResolutionOutcome:
    """
    Decide what to do with one incoming row.

    Caller decisions win. Without one, a row from another team gets a new
    id and a row from the destination team keeps its own.

    existing_id is the destination row the incoming row collides with; an
    update targets that row.
    """
    if caller_resolution is not None:
        if caller_resolution.resolution == ResolutionKind.SKIP:
            return Skip()
        if caller_resolution.resolution == ResolutionKind.UPDATE:
            return Update(existing_id or entity_id)
        return CreateNew(caller_resolution.new_id or id_factory())

    if source_team_id and source_team_id != destination_team_id:
        return CreateNew(id_factory())
    return CreateNew(entity_id)


class _ParentWrite:
    """Outcome of writing one parent entity type."""

    def __init__(self):
        self.id_map: dict[str, str] = {}
        self.unwritten: set[str] = set()
        # Skipped incoming ids that stand for a row the destination already has
        self.existing: dict[str, str] = {}

    def written_ids(self) -> list[str]:
        return [new for old, new in self.id_map.items() if old not in self.unwritten]


class _ProgressTracker:
    """Turns per-batch events into ImportProgress callbacks."""

    def __init__(self, callback: Optional[ImportProgressCallback], total_records: int, result: ImportResult):
        self.callback = callback
        self.total_records = total_records
        self.processed = 0
        self.result = result

    def advance(self, entity: EntityType, current_batch: int, total_batches: int, records: int) -> None:
        self.processed += records
        if not self.callback:
            return
        percent = (self.processed / self.total_records * 100) if self.total_records else 100.0
        self.callback(ImportProgress(
            current_entity=entity,
            current_batch=current_batch,
            total_batches=total_batches,
            records_processed=self.processed,
            total_records=self.total_records,
            percent_complete=round(min(percent, 100.0), 2),
            errors=len(self.result.errors),
            warnings=len(self.result.warnings),
        ))


class ImportService:
    """
    Validates bundles and applies them to a destination team.

    Usage:
        service = ImportService()
        bundle = parse_bundle(raw, password)
        report = service.validate_import(bundle, team_id)
        outcome = service.apply_import(bundle, team_id, actor, resolutions)
    """

    def __init__(self, db=None, team_service=None, audit_log=None, conflict_detector=None):
        self.db = db or get_supabase_client()
        self.team_service = team_service or TeamService(self.db)
        self.audit_log = audit_log or AuditLogService(self.db)
        self.conflict_detector = conflict_detector or ConflictDetectorService(self.db)
        self.bucket = settings.attachments_bucket

    # ===================
    # VALIDATION
    # ===================

    def validate_import(self, bundle: ExportBundle, team_id: str) -> ImportValidationResult:
        """
        Check a bundle against a destination team without writing anything.

        Returns:
            ImportValidationResult; valid is True when there are no errors
        """
        errors: list[ImportIssue] = []
        warnings: list[ImportIssue] = []
        data = bundle.data

        schema_compatible = is_schema_compatible(bundle.manifest.schema_version)
        if not schema_compatible:
            errors.append(_issue_from_error(SchemaIncompatibleError(bundle.manifest.schema_version)))

        team_id_match = bundle.manifest.team_id == team_id
        if not team_id_match:
            warnings.append(ImportIssue(
                severity=IssueSeverity.WARNING,
                entity_type=EntityType.SETTING,
                message="This export is from a different team. New IDs will be generated.",
                code="TEAM_MISMATCH",
            ))

        conflicts: list[DataConflict] = []
        try:
            conflicts = self.conflict_detector.detect_conflicts(data, team_id)
        except DatabaseError as e:
            errors.append(_issue_from_error(e, code="CONFLICT_CHECK_FAILED"))

        for component in data.components or []:
            if not component.currency or component.original_cost is None:
                warnings.append(ImportIssue(
                    severity=IssueSeverity.WARNING,
                    entity_type=EntityType.COMPONENT,
                    entity_id=component.id,
                    entity_name=component.name,
                    message="Missing original currency or cost data",
                    code="MISSING_CURRENCY_DATA",
                ))

        dangling = find_dangling_references(data)
        for child_kind, child_id, parent_id in dangling:
            warnings.append(ImportIssue(
                severity=IssueSeverity.WARNING,
                entity_type=EntityType.ITEM if child_kind == "quotation_item" else (
                    EntityType.SYSTEM if child_kind == "quotation_system" else EntityType.ASSEMBLY
                ),
                entity_id=child_id,
                message=f"{child_kind} references {parent_id}, which is not in the export",
                code="MISSING_REFERENCE",
            ))

        mismatches = count_mismatches(bundle)
        if mismatches:
            errors.append(_issue_from_error(RecordCountMismatchError(mismatches)))

        valid = not errors
        logger.info(
            "import_validated",
            team_id=team_id,
            valid=valid,
            errors=len(errors),
            warnings=len(warnings),
            conflicts=len(conflicts),
        )

        return ImportValidationResult(
            valid=valid,
            errors=errors,
            warnings=warnings,
            conflicts=conflicts,
            preview=self._preview(data, conflicts),
            schema_compatible=schema_compatible,
            team_id_match=team_id_match,
            file_integrity=FileIntegrity(
                manifest_valid=True,
                relationships_intact=not dangling,
                record_counts_match=not mismatches,
            ),
        )

    @staticmethod
    def _preview(data: ExportData, conflicts: list[DataConflict]) -> ImportPreview:
        conflicting = {entity: 0 for entity in EntityType}
        for conflict in conflicts:
            conflicting[conflict.entity_type] += 1

        components = data.components or []
        currencies = [c.currency for c in components]

        return ImportPreview(
            to_create=EntityCounts(
                components=len(components) - conflicting[EntityType.COMPONENT],
                assemblies=len(data.assemblies or []) - conflicting[EntityType.ASSEMBLY],
                quotations=len(data.quotations or []) - conflicting[EntityType.QUOTATION],
            ),
            sample_components=[c.to_row() for c in components[:PREVIEW_SAMPLE_SIZE]],
            sample_quotations=[q.to_row() for q in (data.quotations or [])[:PREVIEW_SAMPLE_SIZE]],
            total_original_currencies=CurrencyTotals(
                nis=currencies.count(Currency.NIS.value),
                usd=currencies.count(Currency.USD.value),
                eur=currencies.count(Currency.EUR.value),
            ),
        )

    # ===================
    # APPLY
    # ===================

    def apply_import(
        self,
        bundle: ExportBundle,
        team_id: str,
        actor: Optional[Actor],
        resolutions: Optional[list[ConflictResolution]] = None,
        options: Optional[ImportOptions] = None,
        progress_callback: Optional[ImportProgressCallback] = None,
    ) -> ImportServiceResult:
        """
        Replay a bundle into team_id.

        Args:
            bundle: Parsed bundle
            team_id: Destination team
            actor: Authenticated user (must be a team admin)
            resolutions: Caller decisions, keyed by entity id
            options: Batch size and default resolution
            progress_callback: Receives ImportProgress after every batch

        Returns:
            ImportServiceResult; success=False only for precondition
            failures or an unexpected abort
        """
        options = options or ImportOptions(batch_size=settings.import_batch_size)
        started = time.monotonic()

        try:
            if actor is None:
                raise NotAuthenticatedError()
            self.team_service.get_team(team_id)
            self.team_service.require_admin(team_id, actor)
            if not is_schema_compatible(bundle.manifest.schema_version):
                raise SchemaIncompatibleError(bundle.manifest.schema_version)
            mismatches = count_mismatches(bundle)
            if mismatches:
                raise RecordCountMismatchError(mismatches)
            if options.strict_validation and find_dangling_references(bundle.data):
                raise ValidationError(
                    "Export contains rows whose parent is missing",
                    code="MISSING_REFERENCE",
                )
        except AppError as e:
            logger.warning("import_precondition_failed", team_id=team_id, code=e.code)
            return ImportServiceResult(
                success=False, status_code=e.status_code, error=e.message, error_code=e.code,
            )

        log_id = self.audit_log.start(
            team_id,
            actor.id,
            "import",
            included_entities=bundle.manifest.includes.model_dump(by_alias=True),
        )

        result = ImportResult()
        source_team_id = bundle.manifest.team_id
        logger.info(
            "import_started",
            team_id=team_id,
            source_team_id=source_team_id,
            cross_team=source_team_id != team_id,
            batch_size=options.batch_size,
        )

        try:
            self._apply(bundle, team_id, actor, resolutions or [], options, result, progress_callback)
        except Exception as e:
            logger.error("import_aborted", team_id=team_id, error=str(e), exc_info=True)
            self.audit_log.complete(log_id, "failed", error_message=str(e))
            result.success = False
            result.duration_ms = int((time.monotonic() - started) * 1000)
            return ImportServiceResult(
                success=False,
                status_code=500,
                data=result,
                error=str(e),
                error_code="IMPORT_FAILED",
                log_id=log_id,
            )

        result.duration_ms = int((time.monotonic() - started) * 1000)
        self.audit_log.complete(
            log_id,
            "completed",
            record_counts={
                "created": result.records_created.model_dump(),
                "updated": result.records_updated.model_dump(),
                "skipped": result.records_skipped.model_dump(),
            },
        )

        logger.info(
            "import_completed",
            team_id=team_id,
            created=result.records_created.model_dump(),
            updated=result.records_updated.model_dump(),
            skipped=result.records_skipped.model_dump(),
            errors=len(result.errors),
            warnings=len(result.warnings),
            duration_ms=result.duration_ms,
        )
        return ImportServiceResult(success=True, data=result, log_id=log_id)

    def _apply(
        self,
        bundle: ExportBundle,
        team_id: str,
        actor: Actor,
        resolutions: list[ConflictResolution],
        options: ImportOptions,
        result: ImportResult,
        progress_callback: Optional[ImportProgressCallback],
    ) -> None:
        data = bundle.data
        resolution_map = {r.entity_id: r for r in resolutions}
        existing_ids: dict[str, str] = {}
        if resolutions or options.default_conflict_resolution is not None:
            for conflict in self.conflict_detector.detect_conflicts(data, team_id):
                if conflict.existing_id:
                    existing_ids[conflict.entity_id] = conflict.existing_id
                if options.default_conflict_resolution is not None:
                    resolution_map.setdefault(conflict.entity_id, ConflictResolution(
                        entity_id=conflict.entity_id,
                        entity_type=conflict.entity_type,
                        resolution=options.default_conflict_resolution,
                        conflict_id=conflict.conflict_id,
                    ))
        source_team_id = bundle.manifest.team_id
        cross_team = source_team_id != team_id

        total_records = (
            len(data.components or [])
            + len(data.assemblies or [])
            + len(data.quotations or [])
            + len(bundle.attachments or [])
        )
        tracker = _ProgressTracker(progress_callback, total_records, result)

        def write_parents(entity_type: EntityType, table: str, rows) -> _ParentWrite:
            return self._write_parents(
                entity_type, table, rows or [], team_id, source_team_id,
                resolution_map, existing_ids, options, result, tracker,
            )

        components = write_parents(EntityType.COMPONENT, "components", data.components)

        assemblies = write_parents(EntityType.ASSEMBLY, "assemblies", data.assemblies)
        if data.assemblies:
            self._write_assembly_components(data, team_id, cross_team, components, assemblies, options, result)

        quotations = write_parents(EntityType.QUOTATION, "quotations", data.quotations)
        if data.quotations:
            self._write_quotation_children(
                data, team_id, cross_team, components, assemblies, quotations, options, result,
            )

        if data.price_history:
            self._write_price_history(data, team_id, cross_team, components, options, result)

        if data.activity_logs:
            result.warnings.append(ImportIssue(
                severity=IssueSeverity.INFO,
                entity_type=EntityType.SETTING,
                message=f"{len(data.activity_logs)} activity log entries kept for reference, not replayed",
                code="ACTIVITY_LOGS_NOT_REPLAYED",
            ))

        if bundle.attachments:
            self._restore_attachments(bundle.attachments, team_id, components, result, tracker)

        if data.settings:
            self._restore_settings(data.settings, team_id, actor, result)

    # ===================
    # PARENTS
    # ===================

    def _write_parents(
        self,
        entity_type: EntityType,
        table: str,
        rows: list,
        team_id: str,
        source_team_id: str,
        resolution_map: dict[str, ConflictResolution],
        existing_ids: dict[str, str],
        options: ImportOptions,
        result: ImportResult,
        tracker: _ProgressTracker,
    ) -> _ParentWrite:
        """
        Write one parent entity type in batches.

        Creates are upserted per batch; updates are written row by row,
        always filtered by the destination team. An update that matches no
        row is an error and the row counts as unwritten.
        """
        outcome = _ParentWrite()
        created = updated = skipped = 0
        batch_size = options.batch_size
        total_batches = math.ceil(len(rows) / batch_size) if rows else 0

        for batch_index in range(total_batches):
            batch = rows[batch_index * batch_size:(batch_index + 1) * batch_size]
            to_create: list[dict[str, Any]] = []
            to_create_ids: list[str] = []
            to_update: list[tuple[str, str, dict[str, Any]]] = []

            for row in batch:
                decision = decide_resolution(
                    row.team_id or source_team_id, team_id, resolution_map.get(row.id), row.id,
                    existing_id=existing_ids.get(row.id),
                )

                if isinstance(decision, Skip):
                    skipped += 1
                    outcome.unwritten.add(row.id)
                    if row.id in existing_ids:
                        outcome.existing[row.id] = existing_ids[row.id]
                    continue

                payload = row.to_row()
                payload["team_id"] = team_id
                payload["id"] = decision.id
                outcome.id_map[row.id] = decision.id

                if isinstance(decision, Update):
                    to_update.append((row.id, decision.id, payload))
                else:
                    if decision.id != row.id:
                        logger.debug(
                            "import_id_reassigned",
                            entity=entity_type.value,
                            old_id=row.id,
                            new_id=decision.id,
                        )
                    to_create.append(payload)
                    to_create_ids.append(row.id)

            if to_create:
                try:
                    self.db.table(table).upsert(to_create, on_conflict="id").execute()
                    created += len(to_create)
                except Exception as e:
                    logger.error(
                        "import_batch_failed",
                        entity=entity_type.value,
                        batch=batch_index + 1,
                        rows=len(to_create),
                        error=str(e),
                    )
                    outcome.unwritten.update(to_create_ids)
                    result.errors.append(ImportIssue(
                        severity=IssueSeverity.ERROR,
                        entity_type=entity_type,
                        message=f"Failed to upsert batch {batch_index + 1} ({len(to_create)} rows): {e}",
                        code="BATCH_UPSERT_FAILED",
                    ))

            for entity_id, target_id, payload in to_update:
                try:
                    response = (
                        self.db.table(table)
                        .update(payload)
                        .eq("id", target_id)
                        .eq("team_id", team_id)
                        .execute()
                    )
                    if not response.data:
                        logger.warning("import_update_missed", entity=entity_type.value, target_id=target_id)
                        outcome.unwritten.add(entity_id)
                        result.errors.append(ImportIssue(
                            severity=IssueSeverity.ERROR,
                            entity_type=entity_type,
                            entity_id=entity_id,
                            message=f"No row {target_id} to update in the destination team",
                            code="UPDATE_TARGET_MISSING",
                        ))
                        continue
                    updated += 1
                except Exception as e:
                    logger.error("import_update_failed", entity=entity_type.value, entity_id=entity_id, error=str(e))
                    outcome.unwritten.add(entity_id)
                    result.errors.append(ImportIssue(
                        severity=IssueSeverity.ERROR,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        message=f"Failed to update: {e}",
                        code="UPDATE_FAILED",
                    ))

            tracker.advance(entity_type, batch_index + 1, total_batches, len(batch))

        field = {
            EntityType.COMPONENT: "components",
            EntityType.ASSEMBLY: "assemblies",
            EntityType.QUOTATION: "quotations",
        }[entity_type]
        setattr(result.records_created, field, created)
        setattr(result.records_updated, field, updated)
        setattr(result.records_skipped, field, skipped)

        reassigned = {old: new for old, new in outcome.id_map.items() if old != new}
        if reassigned:
            result.id_mappings[entity_type.value] = reassigned

        logger.info(
            "import_entity_written",
            entity=entity_type.value,
            created=created,
            updated=updated,
            skipped=skipped,
            reassigned=len(reassigned),
        )
        return outcome

    # ===================
    # CHILDREN
    # ===================

    @staticmethod
    def _remap_reference(
        old_id: Optional[str],
        parents: _ParentWrite,
        cross_team: bool,
    ) -> Optional[str]:
        """
        Follow an optional reference through the id map.

        A skipped row that collided with a destination row resolves to that
        row. Otherwise, within a team an unmapped reference is kept; across
        teams it is dropped so no row points into the source team.
        """
        if not old_id:
            return None
        if old_id in parents.id_map and old_id not in parents.unwritten:
            return parents.id_map[old_id]
        if old_id in parents.existing:
            return parents.existing[old_id]
        return None if cross_team else old_id

    def _replace_children(
        self,
        table: str,
        parent_column: str,
        parent_ids: list[str],
        rows: list[dict[str, Any]],
        team_id: str,
        entity_type: EntityType,
        options: ImportOptions,
        result: ImportResult,
    ) -> int:
        """
        Delete the current children of parent_ids, then upsert rows.

        Returns:
            Number of rows written
        """
        if parent_ids:
            try:
                (
                    self.db.table(table)
                    .delete()
                    .in_(parent_column, parent_ids)
                    .eq("team_id", team_id)
                    .execute()
                )
            except Exception as e:
                logger.error("import_child_delete_failed", table=table, error=str(e))
                result.errors.append(ImportIssue(
                    severity=IssueSeverity.ERROR,
                    entity_type=entity_type,
                    message=f"Failed to clear existing {table}: {e}",
                    code="CHILD_DELETE_FAILED",
                ))
                return 0

        written = 0
        batch_size = options.batch_size
        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            try:
                self.db.table(table).upsert(batch, on_conflict="id").execute()
                written += len(batch)
            except Exception as e:
                logger.error("import_child_batch_failed", table=table, rows=len(batch), error=str(e))
                result.errors.append(ImportIssue(
                    severity=IssueSeverity.ERROR,
                    entity_type=entity_type,
                    message=f"Failed to upsert {table} batch ({len(batch)} rows): {e}",
                    code="BATCH_UPSERT_FAILED",
                ))

        logger.debug("import_children_written", table=table, written=written, parents=len(parent_ids))
        return written

    def _write_assembly_components(
        self,
        data: ExportData,
        team_id: str,
        cross_team: bool,
        components: _ParentWrite,
        assemblies: _ParentWrite,
        options: ImportOptions,
        result: ImportResult,
    ) -> None:
        rows = []
        for link in data.assembly_components or []:
            if link.assembly_id in assemblies.unwritten or link.assembly_id not in assemblies.id_map:
                continue
            payload = link.to_row()
            payload.update(
                id=_new_id(),
                team_id=team_id,
                assembly_id=assemblies.id_map[link.assembly_id],
                component_id=self._remap_reference(link.component_id, components, cross_team),
            )
            rows.append(payload)

        self._replace_children(
            "assembly_components", "assembly_id", assemblies.written_ids(),
            rows, team_id, EntityType.ASSEMBLY, options, result,
        )

    def _write_quotation_children(
        self,
        data: ExportData,
        team_id: str,
        cross_team: bool,
        components: _ParentWrite,
        assemblies: _ParentWrite,
        quotations: _ParentWrite,
        options: ImportOptions,
        result: ImportResult,
    ) -> None:
        """
        Systems and items always get fresh ids; existing ones for the
        written quotations are replaced.
        """
        written_quotations = quotations.written_ids()

        old_system_ids: list[str] = []
        if written_quotations:
            try:
                existing = (
                    self.db.table("quotation_systems")
                    .select("id")
                    .in_("quotation_id", written_quotations)
                    .eq("team_id", team_id)
                    .execute()
                )
                old_system_ids = [r["id"] for r in existing.data or []]
            except Exception as e:
                logger.error("import_existing_systems_failed", error=str(e))
                result.errors.append(ImportIssue(
                    severity=IssueSeverity.ERROR,
                    entity_type=EntityType.SYSTEM,
                    message=f"Failed to read existing quotation systems: {e}",
                    code="CHILD_DELETE_FAILED",
                ))
                return

        system_ids: dict[str, str] = {}
        system_rows = []
        for system in data.quotation_systems or []:
            if system.quotation_id in quotations.unwritten or system.quotation_id not in quotations.id_map:
                continue
            new_id = _new_id()
            system_ids[system.id] = new_id
            payload = system.to_row()
            payload.update(
                id=new_id,
                team_id=team_id,
                quotation_id=quotations.id_map[system.quotation_id],
            )
            system_rows.append(payload)

        item_rows = []
        for item in data.quotation_items or []:
            if item.quotation_system_id not in system_ids:
                continue
            payload = item.to_row()
            payload.update(
                id=_new_id(),
                team_id=team_id,
                quotation_system_id=system_ids[item.quotation_system_id],
                component_id=self._remap_reference(item.component_id, components, cross_team),
                assembly_id=self._remap_reference(item.assembly_id, assemblies, cross_team),
            )
            item_rows.append(payload)

        # Items of the systems being replaced go first
        self._replace_children(
            "quotation_items", "quotation_system_id", old_system_ids,
            [], team_id, EntityType.ITEM, options, result,
        )
        self._replace_children(
            "quotation_systems", "quotation_id", written_quotations,
            system_rows, team_id, EntityType.SYSTEM, options, result,
        )
        self._replace_children(
            "quotation_items", "quotation_system_id", [],
            item_rows, team_id, EntityType.ITEM, options, result,
        )

        if system_ids:
            result.id_mappings[EntityType.SYSTEM.value] = system_ids

    def _write_price_history(
        self,
        data: ExportData,
        team_id: str,
        cross_team: bool,
        components: _ParentWrite,
        options: ImportOptions,
        result: ImportResult,
    ) -> None:
        rows = []
        for entry in data.price_history or []:
            component_id = self._remap_reference(entry.component_id, components, cross_team)
            if not component_id:
                continue
            payload = entry.to_row()
            payload["component_id"] = component_id
            if cross_team:
                payload.update(id=_new_id(), quote_id=None)
            rows.append(payload)

        batch_size = options.batch_size
        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            best_effort(
                "price_history_restore",
                lambda batch=batch: self.db.table("component_quote_history").upsert(batch, on_conflict="id").execute(),
                result.warnings,
                code="PRICE_HISTORY_RESTORE_FAILED",
                entity_type=EntityType.COMPONENT,
                message=f"Failed to restore {len(batch)} price history rows",
            )

    # ===================
    # ATTACHMENTS / SETTINGS
    # ===================

    def _restore_attachments(
        self,
        attachments: list[AttachmentData],
        team_id: str,
        components: _ParentWrite,
        result: ImportResult,
        tracker: _ProgressTracker,
    ) -> None:
        """
        Upload embedded files into the team's storage namespace.

        Every failure is a warning.
        """
        mapping: dict[str, str] = {}
        total = len(attachments)

        for index, attachment in enumerate(attachments, start=1):
            new_id = self._restore_attachment(attachment, team_id, components, result)
            if new_id:
                mapping[attachment.id] = new_id
            tracker.advance(EntityType.ATTACHMENT, index, total, 1)

        if mapping:
            result.id_mappings[EntityType.ATTACHMENT.value] = mapping

    def _restore_attachment(
        self,
        attachment: AttachmentData,
        team_id: str,
        components: _ParentWrite,
        result: ImportResult,
    ) -> Optional[str]:
        def warn(code: str, message: str) -> None:
            result.warnings.append(ImportIssue(
                severity=IssueSeverity.WARNING,
                entity_type=EntityType.ATTACHMENT,
                entity_id=attachment.id,
                entity_name=attachment.file_name,
                message=message,
                code=code,
            ))

        if not attachment.embedded or not attachment.base64_data:
            warn("ATTACHMENT_NOT_EMBEDDED", f"{attachment.file_name} was exported as a link and cannot be restored")
            return None

        try:
            content = base64.b64decode(attachment.base64_data, validate=True)
        except (binascii.Error, ValueError) as e:
            warn("ATTACHMENT_DECODE_FAILED", f"Could not decode {attachment.file_name}: {e}")
            return None

        entity_id = attachment.entity_id
        if attachment.entity_type == "component":
            entity_id = components.id_map.get(entity_id, entity_id)
        entity_segment = sanitize_path_segment(entity_id)
        if not entity_segment:
            warn("ATTACHMENT_INVALID_ENTITY", f"{attachment.file_name} has no usable owner id")
            return None

        mime_type = mime_type_from_filename(attachment.file_name)
        path = f"{team_id}/{entity_segment}/{sanitize_filename(attachment.file_name)}"

        try:
            self.db.storage.from_(self.bucket).upload(
                path,
                content,
                {"content-type": mime_type, "upsert": "true"},
            )
        except Exception as e:
            message = str(e)
            if "row-level security" in message or "policy" in message:
                warn("RLS_POLICY_VIOLATION", f"Storage policy blocked upload of {attachment.file_name}")
            else:
                warn("ATTACHMENT_UPLOAD_FAILED", f"Failed to upload {attachment.file_name}: {message}")
            logger.warning("attachment_upload_failed", path=path, error=message)
            return None

        public_url = self.db.storage.from_(self.bucket).get_public_url(path)
        new_id = _new_id()
        row = {
            "id": new_id,
            "file_name": attachment.file_name,
            "file_url": public_url,
            "file_type": mime_type,
            "file_size_kb": round(len(content) / 1024),
            "status": "completed",
            "team_id": team_id,
        }
        written = best_effort(
            "attachment_record",
            lambda: self.db.table("supplier_quotes").upsert(row, on_conflict="id").execute(),
            result.warnings,
            code="DB_RECORD_FAILED",
            entity_type=EntityType.ATTACHMENT,
            entity_id=attachment.id,
            entity_name=attachment.file_name,
            message=f"File uploaded but database record failed: {attachment.file_name}",
        )
        if written is None:
            return None

        logger.info("attachment_restored", path=path, mime_type=mime_type)
        return new_id

    def _restore_settings(
        self,
        system_settings: SystemSettings,
        team_id: str,
        actor: Actor,
        result: ImportResult,
    ) -> None:
        """Independent upserts into user_settings; each failure is one warning."""
        def upsert(key: str, value: dict[str, Any]):
            return lambda: (
                self.db.table("user_settings")
                .upsert(
                    {
                        "setting_key": key,
                        "setting_value": value,
                        "team_id": team_id,
                        "user_id": actor.id,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    },
                    on_conflict="user_id,setting_key",
                )
                .execute()
            )

        if system_settings.categories:
            best_effort(
                "categories_restore",
                upsert(CATEGORIES_KEY, {"categories": system_settings.categories}),
                result.warnings,
                code="CATEGORIES_RESTORE_FAILED",
                message="Failed to restore component categories",
            )

        best_effort(
            "exchange_rates_restore",
            upsert(EXCHANGE_RATES_KEY, system_settings.exchange_rates.model_dump(mode="json", by_alias=True)),
            result.warnings,
            code="EXCHANGE_RATES_RESTORE_FAILED",
            message="Failed to restore exchange rates",
        )

        if system_settings.numbering_templates:
            best_effort(
                "numbering_restore",
                upsert(
                    NUMBERING_KEY,
                    system_settings.numbering_templates.model_dump(mode="json", by_alias=True, exclude_none=True),
                ),
                result.warnings,
                code="NUMBERING_RESTORE_FAILED",
                message="Failed to restore numbering templates",
            )


def _issue_from_error(error: AppError, code: Optional[str] = None) -> ImportIssue:
    return ImportIssue(
        severity=IssueSeverity.ERROR,
        entity_type=EntityType.SETTING,
        message=error.message,
        code=code or error.code,
    )


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
