"""
Schemas del ClinicalIndexSnapshot — índices derivados del odontograma.

Derivado, nunca editable: se reconstruye completo en cada mutación.
Los modelos son inmutables y sus colecciones se construyen ordenadas para
que dos recomputaciones del mismo odontograma serialicen idénticas.
"""

from pydantic import BaseModel, ConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class CavityClassification(_Frozen):
    """Clase de G.V. Black para un diente cariado."""
    tooth_id: str
    gv_black_class: str  # "I" .. "VI"
    description: str
    surfaces: list[str]
    is_anterior: bool


class EdentulismClassification(_Frozen):
    """Clase de Kennedy (con modificaciones de Applegate) para un arco."""
    arch: str
    kennedy_class: str  # "I" .. "IV"
    modifications: int
    missing_teeth: list[str]
    description: str


class DmfScore(_Frozen):
    """Índice CPOD/DMFT (permanentes) o ceod/dmft (deciduos)."""
    dentition: str  # "permanent" | "deciduous"
    decayed: int
    missing: int
    filled: int
    total: int
    index_teeth: int
    rate: float
    severity: str


class PeriodontalScreening(_Frozen):
    """PSR/CPITN: peor código registrado por sextante."""
    sextant_codes: dict[str, int | None]
    max_code: int | None
    assessment: str
    suggested_treatment: str


class AutoSuggestion(_Frozen):
    type: str  # classification | treatment | warning
    code: str
    message: str
    related_teeth: list[str]


class ClinicalIndexSnapshot(_Frozen):
    dentition_mode: str
    cavity_classes: dict[str, CavityClassification]
    edentulism: dict[str, EdentulismClassification | None]
    permanent_dmf: DmfScore
    deciduous_dmf: DmfScore
    periodontal: PeriodontalScreening
    decayed_teeth: list[str]
    missing_teeth: list[str]
    filled_teeth: list[str]
    suggestions: list[AutoSuggestion]
