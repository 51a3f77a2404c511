"""
Motor de riesgo clínico de la visita.

Marca los medicamentos con riesgos conocidos (sangrado, osteonecrosis,
hiperplasia gingival...) y calcula un puntaje determinista de 0 a 100 a
partir de edad, medicación, embarazo, signos vitales, complejidad
quirúrgica, anestesia general y clase ASA.
"""

from dataclasses import dataclass

from app.models.encounter import (
    AnesthesiaMode,
    AsaClass,
    EncounterContext,
    MedicationEntry,
)


@dataclass(frozen=True)
class DrugRisk:
    risks: tuple[str, ...]
    alerts: tuple[str, ...]


DRUG_RISK_MAP: dict[str, DrugRisk] = {
    "aspirin": DrugRisk(
        ("bleeding_risk",),
        ("Riesgo de sangrado prolongado en exodoncia. Considerar suspender 7 días antes.",),
    ),
    "warfarin": DrugRisk(
        ("bleeding_risk", "high_inr_risk"),
        ("ALTO RIESGO: verificar INR antes de cualquier cirugía. INR debe ser < 3.0.",),
    ),
    "clopidogrel": DrugRisk(
        ("bleeding_risk",),
        ("Antiagregante plaquetario. Consultar al cardiólogo antes de suspender.",),
    ),
    "metformin": DrugRisk(
        ("lactic_acidosis_risk",),
        ("Verificar HbA1c. Si es > 8 %, diferir procedimientos electivos.",),
    ),
    "amlodipine": DrugRisk(
        ("gingival_hyperplasia",),
        ("Posible hiperplasia gingival inducida por fármacos. Revisar estado gingival.",),
    ),
    "phenytoin": DrugRisk(
        ("gingival_hyperplasia", "altered_healing"),
        ("Hiperplasia gingival frecuente. Puede requerir gingivectomía.",),
    ),
    "bisphosphonates": DrugRisk(
        ("onj_risk",),
        ("CRÍTICO: riesgo de osteonecrosis maxilar. Evitar exodoncias si es posible.",),
    ),
    "corticosteroids": DrugRisk(
        ("delayed_healing", "infection_risk", "adrenal_crisis_risk"),
        ("Puede requerir cobertura esteroidea en cirugía. Cicatrización retardada.",),
    ),
    "insulin": DrugRisk(
        ("hypoglycemia_risk",),
        ("Programar después de comidas. Controlar glucosa y tenerla disponible.",),
    ),
    "lisinopril": DrugRisk(
        ("angioedema_risk",),
        ("IECA: riesgo raro de angioedema. Vigilar después del procedimiento.",),
    ),
    "denosumab": DrugRisk(
        ("onj_risk",),
        ("CRÍTICO: antirresortivo con alto riesgo de osteonecrosis. Evitar procedimientos invasivos.",),
    ),
}

ASA_SCORES: dict[AsaClass, int] = {
    AsaClass.I: 0,
    AsaClass.II: 5,
    AsaClass.III: 15,
    AsaClass.IV: 30,
    AsaClass.V: 50,
}

BASE_SCORE = 5
MAX_SCORE = 100


def drug_risks(medication: str) -> DrugRisk | None:
    """Riesgos de un medicamento por coincidencia parcial, sin distinguir mayúsculas."""
    name = medication.strip().lower()
    if not name:
        return None
    for key, risk in DRUG_RISK_MAP.items():
        if key in name or name in key:
            return risk
    return None


def flag_medication(entry: MedicationEntry) -> tuple[MedicationEntry, tuple[str, ...]]:
    """Retorna el medicamento con sus risk_flags y las alertas que dispara."""
    risk = drug_risks(entry.name)
    if risk is None:
        return entry, ()
    return MedicationEntry(
        name=entry.name,
        dosage=entry.dosage,
        frequency=entry.frequency,
        duration=entry.duration,
        is_active=entry.is_active,
        risk_flags=risk.risks,
    ), risk.alerts


def compute_risk_score(ctx: EncounterContext) -> int:
    score = BASE_SCORE

    age = ctx.patient.age
    if age > 65:
        score += 20
    elif age > 50:
        score += 10
    elif age < 12:
        score += 15

    flags = {flag for med in ctx.medications for flag in med.risk_flags}
    if "bleeding_risk" in flags:
        score += 25
    if "onj_risk" in flags:
        score += 30

    if ctx.maternity.is_pregnant:
        score += 20

    vitals = ctx.latest_vitals
    if vitals is not None:
        if vitals.bp_systolic and vitals.bp_systolic > 160:
            score += 20
        elif vitals.bp_systolic and vitals.bp_systolic > 140:
            score += 10
        if vitals.spo2 and vitals.spo2 < 95:
            score += 15
        if vitals.heart_rate and vitals.heart_rate > 100:
            score += 10

    if ctx.wars_required:
        score += 15
    if ctx.anesthesia_mode == AnesthesiaMode.GENERAL:
        score += 20

    if ctx.asa_class is not None:
        score += ASA_SCORES.get(ctx.asa_class, 0)

    return min(score, MAX_SCORE)
