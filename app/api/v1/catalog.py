"""
Endpoints de catálogos: tarifario, BOM de insumos por procedimiento
y niveles de stock.
"""

from fastapi import APIRouter, Depends, Query

from app.core.exceptions import ResourceNotFound
from app.models.catalog import BomLine, StockItem, TariffItem
from app.runtime import ClinicRuntime, get_runtime
from app.schemas.catalog import (
    BomLineSchema,
    BomUpdate,
    PriceSuggestionRequest,
    PriceSuggestionResponse,
    StockItemResponse,
    StockItemUpsert,
    TariffResponse,
    TariffUpsert,
)
from app.services.pricing_service import PricingContext, suggest_price

router = APIRouter()


def _stock_to_response(item: StockItem) -> StockItemResponse:
    return StockItemResponse(
        code=item.code,
        name=item.name,
        current_stock=item.current_stock,
        min_stock=item.min_stock,
        unit=item.unit,
        is_low_stock=item.current_stock <= item.min_stock,
    )


# ── Tarifario ────────────────────────────────────────

def _tariff_to_response(item: TariffItem) -> TariffResponse:
    return TariffResponse(
        code=item.code,
        name=item.name,
        category=item.category,
        base_price=item.base_price,
        tax_percent=item.tax_percent,
    )


@router.get("/tariffs", response_model=list[TariffResponse])
async def list_tariffs(runtime: ClinicRuntime = Depends(get_runtime)):
    return [_tariff_to_response(t) for t in runtime.catalog.list_tariffs()]


@router.put("/tariffs/{code}", response_model=TariffResponse)
async def upsert_tariff(
    code: str,
    data: TariffUpsert,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    item = TariffItem(
        code=code,
        name=data.name,
        category=data.category,
        base_price=data.base_price,
        tax_percent=data.tax_percent,
    )
    runtime.catalog.register_tariff(item)
    return _tariff_to_response(item)


@router.post("/tariffs/{code}/suggest-price", response_model=PriceSuggestionResponse)
async def suggest_tariff_price(
    code: str,
    data: PriceSuggestionRequest,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """
    Sugiere un ajuste de la tarifa base según conductos, puntaje WAR,
    material y complejidad. No modifica el tarifario.
    """
    tariff = runtime.catalog.get_tariff(code)
    if tariff is None:
        raise ResourceNotFound("Tarifa", code)
    suggestion = suggest_price(PricingContext(
        procedure_code=code,
        base_price=tariff.base_price,
        category=tariff.category,
        canal_count=data.canal_count,
        war_score=data.war_score,
        material=data.material,
        complexity=data.complexity,
    ))
    return PriceSuggestionResponse(
        original_code=suggestion.original_code,
        suggested_code=suggestion.suggested_code,
        original_price=suggestion.original_price,
        suggested_price=suggestion.suggested_price,
        reason=suggestion.reason,
        adjustment_percent=suggestion.adjustment_percent,
    )


# ── BOM ──────────────────────────────────────────────

@router.get("/bom/{procedure_code}", response_model=list[BomLineSchema])
async def get_bom(procedure_code: str, runtime: ClinicRuntime = Depends(get_runtime)):
    return [
        BomLineSchema(consumable_code=line.consumable_code, quantity=line.quantity)
        for line in runtime.catalog.bom_for(procedure_code)
    ]


@router.put("/bom/{procedure_code}", response_model=list[BomLineSchema])
async def set_bom(
    procedure_code: str,
    data: BomUpdate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    lines = [BomLine(consumable_code=l.consumable_code, quantity=l.quantity) for l in data.lines]
    runtime.catalog.set_bom(procedure_code, lines)
    return data.lines


# ── Stock ────────────────────────────────────────────

@router.get("/stock", response_model=list[StockItemResponse])
async def list_stock(
    low_stock_only: bool = Query(False),
    runtime: ClinicRuntime = Depends(get_runtime),
):
    return [_stock_to_response(i) for i in runtime.catalog.list_stock(low_stock_only)]


@router.get("/stock/{code}", response_model=StockItemResponse)
async def get_stock_item(code: str, runtime: ClinicRuntime = Depends(get_runtime)):
    item = runtime.catalog.get_stock(code)
    if item is None:
        raise ResourceNotFound("Insumo", code)
    return _stock_to_response(item)


@router.put("/stock/{code}", response_model=StockItemResponse)
async def upsert_stock_item(
    code: str,
    data: StockItemUpsert,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    item = StockItem(
        code=code,
        name=data.name,
        current_stock=data.current_stock,
        min_stock=data.min_stock,
        unit=data.unit,
    )
    runtime.catalog.upsert_stock(item)
    return _stock_to_response(item)
