"""
Quotation schemas (store rows).

Quotation -> systems -> items is a strict three-level hierarchy.
"""

from typing import Optional

from models.base import RowSchema


class QuotationRow(RowSchema):
    """Row of the quotations table."""

    id: str
    team_id: Optional[str] = None
    quotation_number: Optional[str] = None
    version: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    project_name: Optional[str] = None
    project_id: Optional[str] = None
    currency: Optional[str] = None
    exchange_rate: Optional[float] = None
    eur_to_ils_rate: Optional[float] = None
    margin_percentage: Optional[float] = None
    risk_percentage: Optional[float] = None
    status: Optional[str] = None
    valid_until_date: Optional[str] = None
    total_cost: Optional[float] = None
    total_price: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class QuotationSystemRow(RowSchema):
    """Row of quotation_systems."""

    id: str
    quotation_id: str
    team_id: Optional[str] = None
    system_name: Optional[str] = None
    system_description: Optional[str] = None
    quantity: Optional[float] = None
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    sort_order: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class QuotationItemRow(RowSchema):
    """Row of quotation_items."""

    id: str
    quotation_system_id: str
    team_id: Optional[str] = None
    component_id: Optional[str] = None
    assembly_id: Optional[str] = None
    is_custom_item: Optional[bool] = None
    item_name: Optional[str] = None
    manufacturer: Optional[str] = None
    manufacturer_part_number: Optional[str] = None
    item_type: Optional[str] = None
    quantity: Optional[float] = None
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    original_currency: Optional[str] = None
    original_cost: Optional[float] = None
    sort_order: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ActivityLogRow(RowSchema):
    """Row of activity_logs (exported for audit, never replayed)."""

    id: str
    team_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    action_type: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None
