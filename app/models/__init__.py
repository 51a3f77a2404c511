"""
Modelos del dominio clínico — importar aquí para acceso centralizado.
"""

from app.models.catalog import BomLine, StockItem, TariffItem
from app.models.complication import (
    ComplicationReport,
    EscalationEntry,
    ReporterType,
    ResolutionOutcome,
    Severity,
)
from app.models.dental_chart import (
    DentalChart,
    ToothEvent,
    ToothState,
    ToothStatus,
    ToothSurface,
)
from app.models.dentition import Arch, DentitionMode
from app.models.encounter import (
    DiagnosisEntry,
    EncounterContext,
    EncounterStage,
    PatientIdentity,
)
from app.models.treatment_record import (
    TreatmentCategory,
    TreatmentRecord,
    TreatmentStatus,
)

__all__ = [
    "Arch",
    "BomLine",
    "ComplicationReport",
    "DentalChart",
    "DentitionMode",
    "DiagnosisEntry",
    "EncounterContext",
    "EncounterStage",
    "EscalationEntry",
    "PatientIdentity",
    "ReporterType",
    "ResolutionOutcome",
    "Severity",
    "StockItem",
    "TariffItem",
    "ToothEvent",
    "ToothState",
    "ToothStatus",
    "ToothSurface",
    "TreatmentCategory",
    "TreatmentRecord",
    "TreatmentStatus",
]
