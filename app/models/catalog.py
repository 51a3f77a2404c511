"""
Catálogos consumidos de colaboradores externos: tarifario, lista de
insumos por procedimiento (BOM) y niveles de stock.
"""

from dataclasses import dataclass
from decimal import Decimal

from app.models.treatment_record import TreatmentCategory

# GST por defecto cuando la tarifa no declara su propia tasa
DEFAULT_TAX_PERCENT = Decimal("18")


@dataclass(frozen=True)
class TariffItem:
    code: str
    name: str
    category: TreatmentCategory
    base_price: Decimal
    tax_percent: Decimal = DEFAULT_TAX_PERCENT


@dataclass(frozen=True)
class BomLine:
    """Cantidad de un insumo consumida por procedimiento."""
    consumable_code: str
    quantity: Decimal


@dataclass
class StockItem:
    code: str
    name: str
    current_stock: Decimal
    min_stock: Decimal = Decimal("0")
    unit: str = "unit"
