"""
Shadow indexer: re-deriva el ClinicalIndexSnapshot completo desde el
odontograma, sin entrada manual.

recompute() es pura y determinista: no depende del orden de los eventos
que produjeron el odontograma, solo de su estado final. Todas las
colecciones del snapshot se construyen ordenadas por número FDI.
"""

from app.models.dental_chart import DentalChart, ToothStatus
from app.models.dentition import THIRD_MOLARS, Arch, arch, is_deciduous
from app.schemas.clinical_index import AutoSuggestion, ClinicalIndexSnapshot
from app.services.clinical_index_service import (
    FILLED_STATUSES,
    calculate_dmf,
    classify_cavity,
    classify_edentulism,
    interpret_periodontal_screening,
)

# Umbrales de sugerencias automáticas
FULL_MOUTH_REHAB_THRESHOLD = 10
PARTIAL_DENTURE_RANGE = (3, 13)


def recompute(chart: DentalChart) -> ClinicalIndexSnapshot:
    teeth = [state for _, state in sorted(chart.teeth.items())]

    decayed = [t.tooth_id for t in teeth if t.status == ToothStatus.DECAYED]
    missing = [t.tooth_id for t in teeth if t.status == ToothStatus.MISSING]
    filled = [t.tooth_id for t in teeth if t.status in FILLED_STATUSES]

    cavity_classes = {}
    for state in teeth:
        if state.status != ToothStatus.DECAYED:
            continue
        classification = classify_cavity(state.tooth_id, state.surfaces)
        if classification is not None:
            cavity_classes[state.tooth_id] = classification

    # Kennedy solo aplica a la dentición permanente
    permanent_missing = [t for t in missing if not is_deciduous(t)]
    edentulism = {
        a.value: classify_edentulism(
            frozenset(t for t in permanent_missing if arch(t) == a), a
        )
        for a in (Arch.MAXILLARY, Arch.MANDIBULAR)
    }

    return ClinicalIndexSnapshot(
        dentition_mode=chart.dentition_mode.value,
        cavity_classes=cavity_classes,
        edentulism=edentulism,
        permanent_dmf=calculate_dmf(teeth, deciduous=False),
        deciduous_dmf=calculate_dmf(teeth, deciduous=True),
        periodontal=interpret_periodontal_screening(teeth),
        decayed_teeth=decayed,
        missing_teeth=missing,
        filled_teeth=filled,
        suggestions=_suggestions(chart, decayed, missing, cavity_classes),
    )


def _suggestions(
    chart: DentalChart,
    decayed: list[str],
    missing: list[str],
    cavity_classes: dict,
) -> list[AutoSuggestion]:
    """Sugerencias deterministas derivadas del odontograma."""
    suggestions: list[AutoSuggestion] = []

    if len(decayed) + len(missing) >= FULL_MOUTH_REHAB_THRESHOLD:
        suggestions.append(AutoSuggestion(
            type="treatment",
            code="FMR-SUGGEST",
            message="Considerar plan de rehabilitación oral completa",
            related_teeth=sorted(decayed + missing),
        ))

    low, high = PARTIAL_DENTURE_RANGE
    if low <= len(missing) <= high:
        suggestions.append(AutoSuggestion(
            type="treatment",
            code="RPD-SUGGEST",
            message="Puede estar indicada una prótesis parcial removible",
            related_teeth=missing,
        ))

    if len(missing) == 1:
        suggestions.append(AutoSuggestion(
            type="treatment",
            code="IMPL-SINGLE",
            message="Implante unitario recomendado para diente ausente aislado",
            related_teeth=missing,
        ))

    for tooth_id in sorted(THIRD_MOLARS):
        state = chart.teeth.get(tooth_id)
        if state is not None and state.status == ToothStatus.IMPACTED:
            suggestions.append(AutoSuggestion(
                type="warning",
                code="IMPACTED-8",
                message=f"Tercer molar #{tooth_id} impactado: requiere evaluación quirúrgica",
                related_teeth=[tooth_id],
            ))

    for tooth_id, cavity in cavity_classes.items():
        suggestions.append(AutoSuggestion(
            type="classification",
            code=f"GVB-{cavity.gv_black_class}",
            message=f"G.V. Black clase {cavity.gv_black_class}: {cavity.description}",
            related_teeth=[tooth_id],
        ))

    return suggestions
