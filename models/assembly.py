"""
Assembly schemas (store rows).
"""

from typing import Optional

from models.base import RowSchema


class AssemblyRow(RowSchema):
    """Row of the assemblies table."""

    id: str
    team_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_complete: Optional[bool] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AssemblyComponentRow(RowSchema):
    """
    Row of assembly_components (assembly membership).

    component_id is null when the library component was deleted; the
    denormalized name/manufacturer/part number keep the line readable.
    """

    id: str
    assembly_id: str
    team_id: Optional[str] = None
    component_id: Optional[str] = None
    component_name: Optional[str] = None
    component_manufacturer: Optional[str] = None
    component_part_number: Optional[str] = None
    quantity: Optional[float] = None
    sort_order: Optional[int] = None
    created_at: Optional[str] = None
