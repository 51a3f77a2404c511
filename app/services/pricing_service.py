"""
Sugerencia de tarifa según el contexto clínico del procedimiento.

La sugerencia no modifica el tarifario ni la línea de facturación: el
doctor la acepta o la descarta.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.models.treatment_record import TreatmentCategory


@dataclass(frozen=True)
class PricingContext:
    procedure_code: str
    base_price: Decimal
    category: TreatmentCategory | None = None
    canal_count: int | None = None
    war_score: int | None = None
    material: str | None = None
    complexity: str | None = None  # simple | moderate | complex


@dataclass(frozen=True)
class TariffSuggestion:
    original_code: str
    suggested_code: str
    original_price: Decimal
    suggested_price: Decimal
    reason: str
    adjustment_percent: int


def _is_endodontic(ctx: PricingContext) -> bool:
    return ctx.category == TreatmentCategory.ENDODONTIC or ctx.procedure_code.startswith("RCT")


def suggest_price(ctx: PricingContext) -> TariffSuggestion:
    adjustment = 0
    reason = ""
    suggested_code = ctx.procedure_code

    # Endodoncia: número de conductos
    if _is_endodontic(ctx) and ctx.canal_count:
        if ctx.canal_count > 3:
            adjustment = 20
            reason = f"Multi-conducto ({ctx.canal_count} conductos): +20 %"
            suggested_code = f"{ctx.procedure_code}_MC"
        elif ctx.canal_count == 1:
            adjustment = -10
            reason = "Conducto único: -10 %"
            suggested_code = f"{ctx.procedure_code}_SC"

    # Cirugía oral: puntaje WAR
    if "EXTRACTION" in ctx.procedure_code and ctx.war_score:
        if ctx.war_score > 7:
            adjustment = 50
            reason = f"Puntaje WAR {ctx.war_score}: se recomienda exodoncia quirúrgica"
            suggested_code = "SURGICAL_EXTRACTION"
        elif ctx.war_score > 4:
            adjustment = 25
            reason = f"Puntaje WAR {ctx.war_score}: exodoncia compleja"
            suggested_code = "COMPLEX_EXTRACTION"

    if ctx.material:
        material = ctx.material.lower()
        if "zirconia" in material:
            adjustment = max(adjustment, 30)
            reason = "Recargo por material: zirconia"
        elif "e.max" in material:
            adjustment = max(adjustment, 25)
            reason = "Recargo por material: cerámica E.max"

    if ctx.complexity == "complex":
        adjustment += 15
        reason = f"{reason} + recargo por caso complejo" if reason else "Recargo por caso complejo"

    suggested = (ctx.base_price * (100 + adjustment) / 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return TariffSuggestion(
        original_code=ctx.procedure_code,
        suggested_code=suggested_code,
        original_price=ctx.base_price,
        suggested_price=suggested,
        reason=reason or "Tarifa estándar",
        adjustment_percent=adjustment,
    )
