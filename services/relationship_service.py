"""
Relationship mapper.

Derives the foreign-key graph of a flat bundle:

    assembly  -> components (via assembly_components)
    component -> assemblies (that use it)
    quotation -> systems
    system    -> items
    component -> items

Pure; a fresh map is built on every call and never mutated afterwards.
"""

from typing import Optional

import structlog

from models.bundle import ExportData, RelationshipMap

logger = structlog.get_logger(__name__)


def _append(index: dict[str, list[str]], parent_id: Optional[str], child_id: str) -> None:
    if not parent_id:
        return
    index.setdefault(parent_id, []).append(child_id)


def build_relationship_map(data: ExportData) -> RelationshipMap:
    """
    Build all five adjacency maps, one pass per array.

    Lists hold one entry per row in row order, so an assembly that uses a
    component twice lists it twice. Only presence of the parent key is
    checked; dangling references are the validator's concern.

    Args:
        data: Bundle data section

    Returns:
        New RelationshipMap
    """
    assembly_to_components: dict[str, list[str]] = {}
    component_to_assemblies: dict[str, list[str]] = {}
    for link in data.assembly_components or []:
        assembly_to_components.setdefault(link.assembly_id, [])
        if link.component_id:
            _append(assembly_to_components, link.assembly_id, link.component_id)
            _append(component_to_assemblies, link.component_id, link.assembly_id)

    quotation_to_systems: dict[str, list[str]] = {}
    for system in data.quotation_systems or []:
        _append(quotation_to_systems, system.quotation_id, system.id)

    system_to_items: dict[str, list[str]] = {}
    component_to_items: dict[str, list[str]] = {}
    for item in data.quotation_items or []:
        _append(system_to_items, item.quotation_system_id, item.id)
        _append(component_to_items, item.component_id, item.id)

    relationships = RelationshipMap(
        component_to_items=component_to_items,
        assembly_to_components=assembly_to_components,
        quotation_to_systems=quotation_to_systems,
        system_to_items=system_to_items,
        component_to_assemblies=component_to_assemblies,
    )

    logger.debug(
        "relationship_map_built",
        assemblies=len(assembly_to_components),
        quotations=len(quotation_to_systems),
        systems=len(system_to_items),
    )
    return relationships


def find_dangling_references(data: ExportData) -> list[tuple[str, str, str]]:
    """
    List child rows whose parent is not in the bundle.

    Returns:
        (child_kind, child_id, missing_parent_id) tuples
    """
    component_ids = {c.id for c in data.components or []}
    assembly_ids = {a.id for a in data.assemblies or []}
    quotation_ids = {q.id for q in data.quotations or []}
    system_ids = {s.id for s in data.quotation_systems or []}

    dangling = []

    for link in data.assembly_components or []:
        if data.assemblies is not None and link.assembly_id not in assembly_ids:
            dangling.append(("assembly_component", link.id, link.assembly_id))
        if (
            link.component_id
            and data.components is not None
            and link.component_id not in component_ids
        ):
            dangling.append(("assembly_component", link.id, link.component_id))

    for system in data.quotation_systems or []:
        if system.quotation_id not in quotation_ids:
            dangling.append(("quotation_system", system.id, system.quotation_id))

    for item in data.quotation_items or []:
        if item.quotation_system_id not in system_ids:
            dangling.append(("quotation_item", item.id, item.quotation_system_id))

    return dangling
