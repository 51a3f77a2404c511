"""
Schemas del tarifario, BOM de insumos y kardex.
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from app.models.catalog import DEFAULT_TAX_PERCENT
from app.models.treatment_record import TreatmentCategory


class TariffUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: TreatmentCategory
    base_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    tax_percent: Decimal = Field(DEFAULT_TAX_PERCENT, ge=0, le=100, max_digits=5, decimal_places=2)


class TariffResponse(TariffUpsert):
    code: str


class BomLineSchema(BaseModel):
    consumable_code: str = Field(..., min_length=1, max_length=50)
    quantity: Decimal = Field(..., gt=0)


class BomUpdate(BaseModel):
    lines: list[BomLineSchema]


class StockItemUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    current_stock: Decimal = Field(..., ge=0)
    min_stock: Decimal = Field(Decimal("0"), ge=0)
    unit: str = Field("unit", max_length=20)


class StockItemResponse(StockItemUpsert):
    code: str
    is_low_stock: bool = False


class PriceSuggestionRequest(BaseModel):
    """Contexto clínico para ajustar la tarifa base."""
    canal_count: int | None = Field(None, ge=1, le=6)
    war_score: int | None = Field(None, ge=0, le=15, description="Puntaje WAR (Pell-Gregory/Winter)")
    material: str | None = Field(None, max_length=100)
    complexity: Literal["simple", "moderate", "complex"] | None = None


class PriceSuggestionResponse(BaseModel):
    original_code: str
    suggested_code: str
    original_price: Decimal
    suggested_price: Decimal
    reason: str
    adjustment_percent: int
