"""
Component schemas: store rows, catalog view, and extraction candidates.

component_from_row() is the only place store column names are translated
into the catalog view used by the matcher.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from models.base import BaseSchema, CamelSchema, RowSchema


class Currency(str, Enum):
    """Supported price currencies."""
    NIS = "NIS"
    USD = "USD"
    EUR = "EUR"


class ComponentType(str, Enum):
    """Component classification."""
    HARDWARE = "hardware"
    SOFTWARE = "software"
    LABOR = "labor"


# ===================
# STORE ROWS
# ===================

class ComponentRow(RowSchema):
    """Row of the components table."""

    id: str
    team_id: Optional[str] = None
    name: Optional[str] = None
    manufacturer: Optional[str] = None
    manufacturer_part_number: Optional[str] = None
    category: Optional[str] = None
    component_type: Optional[str] = None
    labor_subtype: Optional[str] = None
    description: Optional[str] = None
    unit_cost_usd: Optional[float] = None
    unit_cost_ils: Optional[float] = None
    unit_cost_eur: Optional[float] = None
    currency: Optional[str] = None
    original_cost: Optional[float] = None
    supplier: Optional[str] = None
    supplier_part_number: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PriceHistoryRow(RowSchema):
    """Row of component_quote_history (price snapshot per supplier quote)."""

    id: str
    component_id: Optional[str] = None
    quote_id: Optional[str] = None
    unit_price_nis: Optional[float] = None
    unit_price_usd: Optional[float] = None
    unit_price_eur: Optional[float] = None
    currency: Optional[str] = None
    quote_date: Optional[str] = None
    supplier_name: Optional[str] = None
    confidence_score: Optional[float] = None
    is_current_price: Optional[bool] = None
    created_at: Optional[str] = None


# ===================
# CATALOG VIEW
# ===================

class CatalogComponent(BaseSchema):
    """
    Tenant-owned component as seen by the matcher and the API.

    original_currency/original_cost keep the price as first quoted so that
    exchange-rate changes never rewrite it.
    """

    id: str
    team_id: Optional[str] = None
    name: str = ""
    manufacturer: str = ""
    part_number: str = ""
    category: str = ""
    description: str = ""
    unit_cost_nis: float = 0
    unit_cost_usd: float = 0
    unit_cost_eur: float = 0
    original_currency: Currency = Currency.USD
    original_cost: float = 0
    supplier: str = ""
    notes: str = ""


_COST_COLUMN_BY_CURRENCY = {
    Currency.NIS: "unit_cost_ils",
    Currency.USD: "unit_cost_usd",
    Currency.EUR: "unit_cost_eur",
}


def component_from_row(row: dict[str, Any] | ComponentRow) -> CatalogComponent:
    """
    Translate a components row into the catalog view.

    Args:
        row: Raw dict from the store or a validated ComponentRow

    Returns:
        CatalogComponent with empty strings/zeros for missing columns
    """
    if not isinstance(row, ComponentRow):
        row = ComponentRow.model_validate(row)

    try:
        currency = Currency(row.currency) if row.currency else Currency.USD
    except ValueError:
        currency = Currency.USD

    original_cost = row.original_cost
    if original_cost is None:
        original_cost = getattr(row, _COST_COLUMN_BY_CURRENCY[currency]) or 0

    return CatalogComponent(
        id=row.id,
        team_id=row.team_id,
        name=row.name or "",
        manufacturer=row.manufacturer or "",
        part_number=row.manufacturer_part_number or "",
        category=row.category or "",
        description=row.description or "",
        unit_cost_nis=row.unit_cost_ils or 0,
        unit_cost_usd=row.unit_cost_usd or 0,
        unit_cost_eur=row.unit_cost_eur or 0,
        original_currency=currency,
        original_cost=original_cost,
        supplier=row.supplier or "",
        notes=row.notes or "",
    )


# ===================
# EXTRACTION CANDIDATES
# ===================

class Candidate(CamelSchema):
    """
    Unresolved component extracted from a supplier document.

    Accepts both camelCase (partNumber) and snake_case (part_number) keys.
    """

    name: str = ""
    manufacturer: Optional[str] = None
    part_number: Optional[str] = None
    description: Optional[str] = None
    price_by_currency: dict[Currency, float] = Field(default_factory=dict)
    source_confidence: float = Field(default=0.0, ge=0, le=1)

    @field_validator("manufacturer", "part_number", "description")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat whitespace-only strings as absent."""
        if v is None or not v.strip():
            return None
        return v

    @classmethod
    def from_extraction(cls, record: dict[str, Any]) -> "Candidate":
        """
        Build a candidate from a document-extraction record.

        Extraction yields {name, manufacturer, partNumber, price, currency,
        confidence}; a single price is filed under its currency.
        """
        prices: dict[Currency, float] = {}
        price = record.get("price")
        if price is not None:
            try:
                currency = Currency(record.get("currency") or Currency.USD.value)
            except ValueError:
                currency = Currency.USD
            prices[currency] = float(price)

        return cls(
            name=record.get("name") or "",
            manufacturer=record.get("manufacturer"),
            part_number=record.get("partNumber") or record.get("part_number"),
            description=record.get("description"),
            price_by_currency=prices,
            source_confidence=min(max(float(record.get("confidence") or 0), 0.0), 1.0),
        )
