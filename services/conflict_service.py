"""
Conflict detector.

Classifies how incoming bundle rows collide with what the destination team
already has. Conflicts are facts for the caller to resolve, not errors.

Checks, per incoming row:
    1. duplicate_id           - the id already exists in the destination team
    2. duplicate_business_key - components only, and only without an id
                                conflict: same manufacturer + part number
"""

from typing import Any, Optional

import structlog

from config import get_supabase_client
from exceptions import DatabaseError
from models.bundle import ExportData
from models.transfer import ConflictType, DataConflict, EntityType

logger = structlog.get_logger(__name__)

# Minimal projections: id plus business-key fields only
COMPONENT_PROJECTION = "id, name, manufacturer, manufacturer_part_number"
ASSEMBLY_PROJECTION = "id, name"
QUOTATION_PROJECTION = "id, quotation_number, customer_name"


class ConflictDetectorService:
    """
    Detects id and business-key collisions against a destination team.
    """

    def __init__(self, db=None):
        self.db = db or get_supabase_client()

    def detect_conflicts(self, data: ExportData, team_id: str) -> list[DataConflict]:
        """
        Detect conflicts for every entity type present in the bundle.

        Args:
            data: Bundle data section
            team_id: Destination team

        Returns:
            Conflicts in entity order (components, assemblies, quotations)

        Raises:
            DatabaseError: If a projection query fails
        """
        conflicts: list[DataConflict] = []

        if data.components:
            conflicts.extend(self._component_conflicts(data.components, team_id))
        if data.assemblies:
            conflicts.extend(self._assembly_conflicts(data.assemblies, team_id))
        if data.quotations:
            conflicts.extend(self._quotation_conflicts(data.quotations, team_id))

        logger.info(
            "conflicts_detected",
            team_id=team_id,
            total=len(conflicts),
            duplicate_ids=sum(1 for c in conflicts if c.type == ConflictType.DUPLICATE_ID),
        )
        return conflicts

    # ===================
    # PER ENTITY
    # ===================

    def _component_conflicts(self, components, team_id: str) -> list[DataConflict]:
        existing = self._fetch_existing("components", COMPONENT_PROJECTION, team_id)
        by_id = {row["id"]: row for row in existing}
        by_business_key = {}
        for row in existing:
            key = _business_key(row.get("manufacturer"), row.get("manufacturer_part_number"))
            if key and key not in by_business_key:
                by_business_key[key] = row

        conflicts = []
        for component in components:
            imported = component.to_row()
            name = component.name or "Unknown"

            if component.id in by_id:
                conflicts.append(DataConflict(
                    type=ConflictType.DUPLICATE_ID,
                    entity_type=EntityType.COMPONENT,
                    entity_id=component.id,
                    entity_name=name,
                    existing_id=component.id,
                    existing_record=by_id[component.id],
                    imported_record=imported,
                    message=f"Component with ID {component.id} already exists",
                ))
                continue

            key = _business_key(component.manufacturer, component.manufacturer_part_number)
            if key and key in by_business_key:
                conflicts.append(DataConflict(
                    type=ConflictType.DUPLICATE_BUSINESS_KEY,
                    entity_type=EntityType.COMPONENT,
                    entity_id=component.id,
                    entity_name=name,
                    existing_id=by_business_key[key]["id"],
                    existing_record=by_business_key[key],
                    imported_record=imported,
                    message=(
                        f"Component {component.manufacturer} "
                        f"{component.manufacturer_part_number} already exists"
                    ),
                ))
        return conflicts

    def _assembly_conflicts(self, assemblies, team_id: str) -> list[DataConflict]:
        existing = self._fetch_existing("assemblies", ASSEMBLY_PROJECTION, team_id)
        by_id = {row["id"]: row for row in existing}

        return [
            DataConflict(
                type=ConflictType.DUPLICATE_ID,
                entity_type=EntityType.ASSEMBLY,
                entity_id=assembly.id,
                entity_name=assembly.name or "Unknown",
                existing_id=assembly.id,
                existing_record=by_id[assembly.id],
                imported_record=assembly.to_row(),
                message=f"Assembly with ID {assembly.id} already exists",
            )
            for assembly in assemblies
            if assembly.id in by_id
        ]

    def _quotation_conflicts(self, quotations, team_id: str) -> list[DataConflict]:
        existing = self._fetch_existing("quotations", QUOTATION_PROJECTION, team_id)
        by_id = {row["id"]: row for row in existing}

        return [
            DataConflict(
                type=ConflictType.DUPLICATE_ID,
                entity_type=EntityType.QUOTATION,
                entity_id=quotation.id,
                entity_name=quotation.quotation_number or quotation.customer_name or "Unknown",
                existing_id=quotation.id,
                existing_record=by_id[quotation.id],
                imported_record=quotation.to_row(),
                message=f"Quotation with ID {quotation.id} already exists",
            )
            for quotation in quotations
            if quotation.id in by_id
        ]

    def _fetch_existing(self, table: str, projection: str, team_id: str) -> list[dict[str, Any]]:
        try:
            result = (
                self.db.table(table)
                .select(projection)
                .eq("team_id", team_id)
                .execute()
            )
            return result.data or []
        except Exception as e:
            logger.error("conflict_projection_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e))


def _business_key(manufacturer: Optional[str], part_number: Optional[str]) -> Optional[tuple[str, str]]:
    if not manufacturer or not part_number:
        return None
    return (manufacturer, part_number)


# Singleton instance
_conflict_service: Optional[ConflictDetectorService] = None


def get_conflict_service() -> ConflictDetectorService:
    """Get or create ConflictDetectorService instance."""
    global _conflict_service
    if _conflict_service is None:
        _conflict_service = ConflictDetectorService()
    return _conflict_service
