"""
Endpoints del encuentro clínico: etapas, odontograma, índices,
diagnósticos, tratamientos y riesgo clínico.
"""

from fastapi import APIRouter, Depends

from app.models.dental_chart import ToothEvent, ToothSurface
from app.models.encounter import MaternityStatus, MedicationEntry, PatientIdentity
from app.runtime import ClinicRuntime, get_runtime
from app.schemas.clinical_index import ClinicalIndexSnapshot
from app.schemas.encounter import (
    ChiefComplaintCreate,
    DiagnosisCreate,
    DiagnosisResponse,
    EncounterAbandon,
    EncounterCreate,
    EncounterResponse,
    FullChartResponse,
    MedicationCreate,
    PostOpInstructionsUpdate,
    RiskAssessmentResponse,
    RiskFactorsUpdate,
    ToothEventCreate,
    TreatmentAnnotate,
    TreatmentCancel,
    TreatmentCreate,
    TreatmentResponse,
    VitalsCreate,
    VitalsResponse,
)
from app.services.encounter_service import (
    chart_to_response,
    diagnosis_to_response,
    encounter_to_response,
    risk_to_response,
    treatment_to_response,
    vitals_to_response,
)

router = APIRouter()


# ── Encuentro ────────────────────────────────────────

@router.post("", response_model=EncounterResponse, status_code=201)
async def start_encounter(
    data: EncounterCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """
    Inicia una visita en INTAKE.
    La dentición (adulto/mixta/infantil) se deriva de la edad.
    """
    patient = PatientIdentity(
        patient_id=data.patient_id, name=data.patient_name, age=data.age
    )
    ctx = runtime.encounters.start_encounter(patient, doctor_id=data.doctor_id)
    return encounter_to_response(ctx)


@router.get("", response_model=list[EncounterResponse])
async def list_active_encounters(runtime: ClinicRuntime = Depends(get_runtime)):
    """Visitas activas (no cerradas ni abandonadas)."""
    return [encounter_to_response(c) for c in runtime.encounters.list_active()]


@router.get("/{visit_id}", response_model=EncounterResponse)
async def get_encounter(visit_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    return encounter_to_response(runtime.encounters.get(visit_id))


@router.post("/{visit_id}/complaints", response_model=EncounterResponse)
async def add_chief_complaint(
    visit_id: str,
    data: ChiefComplaintCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    ctx = runtime.encounters.add_chief_complaint(visit_id, data.complaint)
    return encounter_to_response(ctx)


@router.post("/{visit_id}/advance", response_model=EncounterResponse)
async def advance_stage(visit_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    """
    Avanza a la siguiente etapa.
    422 si la etapa actual no cumple su predicado de completitud.
    """
    return encounter_to_response(runtime.encounters.advance(visit_id))


@router.post("/{visit_id}/abandon", response_model=EncounterResponse)
async def abandon_encounter(
    visit_id: str,
    data: EncounterAbandon,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """Abandona la visita; los tratamientos pendientes se cancelan sin facturar."""
    return encounter_to_response(runtime.encounters.abandon(visit_id, data.reason))


@router.put("/{visit_id}/post-op", response_model=EncounterResponse)
async def set_post_op_instructions(
    visit_id: str,
    data: PostOpInstructionsUpdate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    ctx = runtime.encounters.set_post_op_instructions(visit_id, data.instructions)
    return encounter_to_response(ctx)


@router.get("/{visit_id}/events")
async def list_encounter_events(visit_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    """Eventos emitidos para la visita, en orden de publicación."""
    runtime.encounters.get(visit_id)
    return [e.model_dump(mode="json") for e in runtime.bus.events(visit_id=visit_id)]


# ── Riesgo clínico ───────────────────────────────────

@router.post("/{visit_id}/medications", response_model=RiskAssessmentResponse, status_code=201)
async def add_medication(
    visit_id: str,
    data: MedicationCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """Registra un medicamento; los de riesgo conocido generan alertas."""
    ctx = runtime.encounters.add_medication(visit_id, MedicationEntry(
        name=data.name,
        dosage=data.dosage,
        frequency=data.frequency,
        duration=data.duration,
        is_active=data.is_active,
    ))
    return risk_to_response(ctx)


@router.post("/{visit_id}/vitals", response_model=VitalsResponse, status_code=201)
async def record_vitals(
    visit_id: str,
    data: VitalsCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    vitals = runtime.encounters.record_vitals(
        visit_id, kind=data.kind, **data.model_dump(exclude={"kind"})
    )
    return vitals_to_response(vitals)


@router.patch("/{visit_id}/risk-factors", response_model=RiskAssessmentResponse)
async def update_risk_factors(
    visit_id: str,
    data: RiskFactorsUpdate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """Embarazo, modo de anestesia y clase ASA (checklist pre-anestésico)."""
    maternity = None
    if data.is_pregnant is not None or data.pregnancy_month is not None or data.is_nursing is not None:
        current = runtime.encounters.get(visit_id).maternity
        maternity = MaternityStatus(
            is_pregnant=current.is_pregnant if data.is_pregnant is None else data.is_pregnant,
            pregnancy_month=data.pregnancy_month or current.pregnancy_month,
            is_nursing=current.is_nursing if data.is_nursing is None else data.is_nursing,
        )
    ctx = runtime.encounters.set_risk_factors(
        visit_id,
        maternity=maternity,
        anesthesia_mode=data.anesthesia_mode,
        asa_class=data.asa_class,
    )
    return risk_to_response(ctx)


@router.get("/{visit_id}/risk", response_model=RiskAssessmentResponse)
async def get_risk_assessment(visit_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    """Puntaje de riesgo (0-100) recalculado con los factores actuales."""
    return risk_to_response(runtime.encounters.get(visit_id))


# ── Odontograma e índices ────────────────────────────

@router.post("/{visit_id}/teeth", response_model=FullChartResponse)
async def record_tooth_event(
    visit_id: str,
    data: ToothEventCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """
    Registra un evento del odontograma.
    Los índices clínicos se recalculan en la misma operación.
    """
    event = ToothEvent(
        tooth_id=data.tooth_id,
        status=data.status,
        surfaces=(
            frozenset(ToothSurface(s) for s in data.surfaces)
            if data.surfaces is not None else None
        ),
        notes=data.notes,
        probing_code=data.probing_code,
        procedure_id=data.procedure_id,
        reset=data.reset,
    )
    ctx = runtime.encounters.record_tooth_event(visit_id, event)
    return chart_to_response(ctx)


@router.get("/{visit_id}/chart", response_model=FullChartResponse)
async def get_chart(visit_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    return chart_to_response(runtime.encounters.get(visit_id))


@router.get("/{visit_id}/indices", response_model=ClinicalIndexSnapshot)
async def get_clinical_indices(visit_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    """Snapshot de índices (G.V. Black, Kennedy, CPOD, PSR) de la visita."""
    return runtime.encounters.get(visit_id).snapshot


# ── Diagnósticos ─────────────────────────────────────

@router.post("/{visit_id}/diagnoses", response_model=DiagnosisResponse, status_code=201)
async def add_diagnosis(
    visit_id: str,
    data: DiagnosisCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    entry = runtime.encounters.add_diagnosis(
        visit_id,
        text=data.text,
        icd_code=data.icd_code,
        teeth=data.teeth,
        is_provisional=data.is_provisional,
    )
    return diagnosis_to_response(entry)


# ── Tratamientos ─────────────────────────────────────

@router.post("/{visit_id}/treatments", response_model=TreatmentResponse, status_code=201)
async def plan_treatment(
    visit_id: str,
    data: TreatmentCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    record = runtime.encounters.plan_procedure(
        visit_id,
        procedure_code=data.procedure_code,
        procedure_name=data.procedure_name,
        category=data.category,
        teeth=data.teeth,
        session_number=data.session_number,
        total_sessions=data.total_sessions,
        next_session_date=data.next_session_date,
        notes=data.notes,
    )
    return treatment_to_response(record)


@router.post("/{visit_id}/treatments/{record_id}/start", response_model=TreatmentResponse)
async def start_treatment(
    visit_id: str, record_id: str, runtime: ClinicRuntime = Depends(get_runtime)
):
    return treatment_to_response(runtime.encounters.start_procedure(visit_id, record_id))


@router.post("/{visit_id}/treatments/{record_id}/complete", response_model=TreatmentResponse)
async def complete_treatment(
    visit_id: str, record_id: str, runtime: ClinicRuntime = Depends(get_runtime)
):
    """
    Completa el tratamiento y solicita facturación/stock una sola vez.
    Reintentos sobre un tratamiento completado no emiten nada.
    """
    return treatment_to_response(runtime.encounters.complete_procedure(visit_id, record_id))


@router.post("/{visit_id}/treatments/{record_id}/cancel", response_model=TreatmentResponse)
async def cancel_treatment(
    visit_id: str,
    record_id: str,
    data: TreatmentCancel,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    record = runtime.encounters.cancel_procedure(visit_id, record_id, data.reason)
    return treatment_to_response(record)


@router.patch("/{visit_id}/treatments/{record_id}/notes", response_model=TreatmentResponse)
async def annotate_treatment(
    visit_id: str,
    record_id: str,
    data: TreatmentAnnotate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    record = runtime.encounters.annotate_procedure(visit_id, record_id, data.notes)
    return treatment_to_response(record)
