"""
Servicio de encuentros: state machine de etapas + registro de visitas.

Cada EncounterContext vive en el registro por visit_id mientras está
activo y pasa al archivo al cerrarse o abandonarse. Toda mutación del
odontograma recalcula el snapshot antes de confirmar ambos: quien lee el
contexto nunca ve un diente actualizado con índices viejos.
"""

import logging
import threading
from datetime import date, datetime
from typing import Callable

from app.core.clock import Clock, utcnow
from app.core.event_bus import EventBus
from app.core.exceptions import (
    EncounterNotFound,
    InvalidClinicalValue,
    InvalidStageOperation,
    InvalidToothReference,
    MissingToothLocked,
    StageIncompletePrecondition,
    TreatmentRecordNotFound,
)
from app.models.dental_chart import DentalChart, ToothEvent, ToothState, ToothStatus
from app.models.dentition import valid_teeth
from app.models.encounter import (
    CHARTING_STAGES,
    PLANNING_STAGES,
    AnesthesiaMode,
    AsaClass,
    DiagnosisEntry,
    EncounterContext,
    EncounterStage,
    MaternityStatus,
    MedicationEntry,
    PatientIdentity,
    VitalsRecord,
    VitalsType,
    next_stage,
)
from app.models.treatment_record import (
    TreatmentCategory,
    TreatmentRecord,
    TreatmentStatus,
)
from app.schemas.encounter import (
    DiagnosisResponse,
    EncounterResponse,
    FullChartResponse,
    MedicationResponse,
    RiskAssessmentResponse,
    ToothStateResponse,
    TreatmentResponse,
    VitalsResponse,
)
from app.schemas.events import (
    ClinicalIndexSnapshotUpdated,
    ProcedureCompleted,
    StageChanged,
    ToothStateChanged,
)
from app.services.automation_service import AutomationTrigger
from app.services.risk_service import compute_risk_score, flag_medication
from app.services.shadow_index_service import recompute

logger = logging.getLogger(__name__)

# Procedimientos que requieren evaluación WARS (terceros molares impactados)
WARS_PROCEDURES = frozenset({"SURGICAL_EXTRACTION"})

# ── Predicados de completitud por etapa ──────────────
# Retornan el motivo por el que la etapa está incompleta, o None.

def _intake_incomplete(ctx: EncounterContext) -> str | None:
    if not ctx.chief_complaints:
        return "se requiere al menos un motivo de consulta"
    return None


def _examination_incomplete(ctx: EncounterContext) -> str | None:
    if not ctx.chart.charted_teeth():
        return "se requiere al menos un diente registrado en el odontograma"
    return None


def _diagnosis_incomplete(ctx: EncounterContext) -> str | None:
    if not any(d.text.strip() for d in ctx.diagnoses):
        return "se requiere al menos un diagnóstico"
    return None


def _plan_incomplete(ctx: EncounterContext) -> str | None:
    active = ctx.treatments_with_status(
        TreatmentStatus.PLANNED, TreatmentStatus.IN_PROGRESS, TreatmentStatus.COMPLETED
    )
    if not active:
        return "se requiere al menos un tratamiento planificado"
    return None


def _execution_incomplete(ctx: EncounterContext) -> str | None:
    if ctx.treatments_with_status(TreatmentStatus.IN_PROGRESS):
        return "hay tratamientos en curso"
    if not ctx.treatments_with_status(TreatmentStatus.COMPLETED):
        return "se requiere al menos un tratamiento completado"
    return None


def _post_op_incomplete(ctx: EncounterContext) -> str | None:
    if not ctx.post_op_instructions.strip():
        return "se requieren indicaciones post-operatorias"
    return None


STAGE_COMPLETENESS: dict[EncounterStage, Callable[[EncounterContext], str | None]] = {
    EncounterStage.INTAKE: _intake_incomplete,
    EncounterStage.EXAMINATION: _examination_incomplete,
    EncounterStage.INVESTIGATION: lambda ctx: None,
    EncounterStage.DIAGNOSIS: _diagnosis_incomplete,
    EncounterStage.TREATMENT_PLAN: _plan_incomplete,
    EncounterStage.EXECUTION: _execution_incomplete,
    EncounterStage.POST_OP: _post_op_incomplete,
}


class EncounterService:
    def __init__(
        self,
        bus: EventBus,
        automation: AutomationTrigger,
        clock: Clock = utcnow,
    ) -> None:
        self.bus = bus
        self.automation = automation
        self.clock = clock
        self._active: dict[str, EncounterContext] = {}
        self._archive: dict[str, EncounterContext] = {}
        self._registry_lock = threading.Lock()

    # ── Registro ─────────────────────────────────────

    def start_encounter(self, patient: PatientIdentity, doctor_id: str) -> EncounterContext:
        """Abre una visita en INTAKE con odontograma por defecto según la edad."""
        chart = DentalChart.for_mode(patient.dentition_mode)
        ctx = EncounterContext(
            patient=patient,
            doctor_id=doctor_id,
            chart=chart,
            snapshot=recompute(chart),
            started_at=self.clock(),
        )
        with self._registry_lock:
            self._active[ctx.visit_id] = ctx
        logger.info(
            f"Encuentro {ctx.visit_id} iniciado: paciente {patient.patient_id} "
            f"({chart.dentition_mode.value})"
        )
        return ctx

    def get(self, visit_id: str) -> EncounterContext:
        """Encuentro activo o archivado."""
        ctx = self._active.get(visit_id) or self._archive.get(visit_id)
        if ctx is None:
            raise EncounterNotFound(visit_id)
        return ctx

    def list_active(self) -> list[EncounterContext]:
        with self._registry_lock:
            return sorted(self._active.values(), key=lambda c: c.started_at)

    def _require_stage(
        self, visit_id: str, operation: str, allowed: frozenset[EncounterStage] | None = None
    ) -> EncounterContext:
        ctx = self.get(visit_id)
        if ctx.is_terminal or (allowed is not None and ctx.stage not in allowed):
            raise InvalidStageOperation(operation, ctx.stage.value)
        return ctx

    def _archive_context(self, ctx: EncounterContext) -> None:
        with self._registry_lock:
            self._active.pop(ctx.visit_id, None)
            self._archive[ctx.visit_id] = ctx

    def prune_archive(self, before: datetime) -> int:
        """Descarta del archivo las visitas terminadas antes de `before`."""
        with self._registry_lock:
            stale = [
                visit_id
                for visit_id, ctx in self._archive.items()
                if ctx.finished_at is not None and ctx.finished_at < before
            ]
            for visit_id in stale:
                del self._archive[visit_id]
        if stale:
            logger.info(f"{len(stale)} encuentros archivados descartados")
        return len(stale)

    # ── Transiciones de etapa ────────────────────────

    def advance(self, visit_id: str) -> EncounterContext:
        """
        Pasa a la siguiente etapa si la actual está completa.

        Raises:
            StageIncompletePrecondition: sin mutar el contexto.
            InvalidStageOperation: si el encuentro es terminal.
        """
        ctx = self._require_stage(visit_id, "advance")
        reason = STAGE_COMPLETENESS[ctx.stage](ctx)
        if reason is not None:
            raise StageIncompletePrecondition(ctx.stage.value, reason)

        previous = ctx.stage
        ctx.stage = next_stage(previous)
        if ctx.stage == EncounterStage.CLOSED:
            ctx.finished_at = self.clock()
            self._archive_context(ctx)

        logger.info(f"Encuentro {visit_id}: {previous.value} → {ctx.stage.value}")
        self.bus.publish(StageChanged(
            occurred_at=self.clock(),
            patient_id=ctx.patient_id,
            visit_id=visit_id,
            previous_stage=previous.value,
            new_stage=ctx.stage.value,
        ))
        return ctx

    def abandon(self, visit_id: str, reason: str) -> EncounterContext:
        """Abandona la visita. Cancela lo pendiente sin efectos de facturación."""
        ctx = self._require_stage(visit_id, "abandon")
        for record in ctx.treatments_with_status(
            TreatmentStatus.PLANNED, TreatmentStatus.IN_PROGRESS
        ):
            record.cancel(f"Encuentro abandonado: {reason}")

        previous = ctx.stage
        ctx.stage = EncounterStage.ABANDONED
        ctx.abandon_reason = reason
        ctx.finished_at = self.clock()
        self._archive_context(ctx)

        logger.info(f"Encuentro {visit_id} abandonado en {previous.value}: {reason}")
        self.bus.publish(StageChanged(
            occurred_at=self.clock(),
            patient_id=ctx.patient_id,
            visit_id=visit_id,
            previous_stage=previous.value,
            new_stage=ctx.stage.value,
            reason=reason,
        ))
        return ctx

    # ── Datos de la visita ───────────────────────────

    def add_chief_complaint(self, visit_id: str, complaint: str) -> EncounterContext:
        ctx = self._require_stage(
            visit_id, "add_chief_complaint", frozenset({EncounterStage.INTAKE})
        )
        complaint = complaint.strip()
        if not complaint:
            raise InvalidClinicalValue("complaint", "no puede estar vacío")
        ctx.chief_complaints.append(complaint)
        return ctx

    def add_diagnosis(
        self,
        visit_id: str,
        text: str,
        icd_code: str | None = None,
        teeth: list[str] | None = None,
        is_provisional: bool = True,
    ) -> DiagnosisEntry:
        ctx = self._require_stage(
            visit_id, "add_diagnosis", frozenset({EncounterStage.DIAGNOSIS})
        )
        text = text.strip()
        if not text:
            raise InvalidClinicalValue("text", "el diagnóstico no puede estar vacío")
        teeth = teeth or []
        self._validate_teeth(ctx, teeth)

        entry = DiagnosisEntry(
            text=text,
            icd_code=icd_code,
            teeth=tuple(sorted(set(teeth))),
            is_provisional=is_provisional,
        )
        ctx.diagnoses.append(entry)
        logger.info(f"Diagnóstico agregado a {visit_id}: {icd_code or text}")
        return entry

    def set_post_op_instructions(self, visit_id: str, instructions: str) -> EncounterContext:
        ctx = self._require_stage(
            visit_id, "set_post_op_instructions", frozenset({EncounterStage.POST_OP})
        )
        ctx.post_op_instructions = instructions.strip()
        return ctx

    # ── Riesgo clínico ───────────────────────────────

    def add_medication(self, visit_id: str, entry: MedicationEntry) -> EncounterContext:
        """Registra un medicamento y sus alertas de riesgo conocidas."""
        ctx = self._require_stage(visit_id, "add_medication")
        if not entry.name.strip():
            raise InvalidClinicalValue("name", "el medicamento no puede estar vacío")

        flagged, alerts = flag_medication(entry)
        ctx.medications.append(flagged)
        ctx.risk_alerts.extend(alerts)
        if alerts:
            logger.warning(
                f"Medicamento de riesgo en {visit_id}: {entry.name} "
                f"({', '.join(flagged.risk_flags)})"
            )
        return ctx

    def record_vitals(
        self,
        visit_id: str,
        kind: VitalsType = VitalsType.ROUTINE,
        **measurements,
    ) -> VitalsRecord:
        ctx = self._require_stage(visit_id, "record_vitals")
        spo2 = measurements.get("spo2")
        if spo2 is not None and not 0 <= spo2 <= 100:
            raise InvalidClinicalValue("spo2", "debe estar entre 0 y 100")
        vitals = VitalsRecord(recorded_at=self.clock(), kind=kind, **measurements)
        ctx.vitals.append(vitals)
        return vitals

    def set_risk_factors(
        self,
        visit_id: str,
        maternity: MaternityStatus | None = None,
        anesthesia_mode: AnesthesiaMode | None = None,
        asa_class: AsaClass | None = None,
    ) -> EncounterContext:
        """Actualiza solo los factores provistos; los demás se conservan."""
        ctx = self._require_stage(visit_id, "set_risk_factors")
        if maternity is not None:
            month = maternity.pregnancy_month
            if month is not None and not 1 <= month <= 9:
                raise InvalidClinicalValue("pregnancy_month", "debe estar entre 1 y 9")
            ctx.maternity = maternity
        if anesthesia_mode is not None:
            ctx.anesthesia_mode = anesthesia_mode
        if asa_class is not None:
            ctx.asa_class = asa_class
        return ctx

    # ── Odontograma ──────────────────────────────────

    def _validate_teeth(self, ctx: EncounterContext, teeth: list[str]) -> None:
        mode = ctx.patient.dentition_mode
        allowed = valid_teeth(mode)
        for tooth_id in teeth:
            if tooth_id not in allowed:
                raise InvalidToothReference(tooth_id, mode.value)

    def record_tooth_event(self, visit_id: str, event: ToothEvent) -> EncounterContext:
        """
        Aplica una edición al odontograma y recalcula el snapshot.
        Diente y snapshot se confirman juntos, o ninguno.
        """
        ctx = self._require_stage(visit_id, "record_tooth_event", CHARTING_STAGES)
        self._validate_teeth(ctx, [event.tooth_id])
        if event.probing_code is not None and not 0 <= event.probing_code <= 4:
            raise InvalidClinicalValue("probing_code", "debe estar entre 0 y 4")

        current = ctx.chart.get(event.tooth_id)
        if event.reset:
            updated = current.reset()
        elif current.status == ToothStatus.MISSING:
            raise MissingToothLocked(event.tooth_id)
        else:
            updated = current

        changes = {}
        if event.status is not None:
            changes["status"] = event.status
        if event.surfaces is not None:
            changes["surfaces"] = frozenset(event.surfaces)
        if event.notes is not None:
            changes["notes"] = event.notes
        if event.probing_code is not None:
            changes["probing_code"] = event.probing_code
        if event.procedure_id is not None:
            changes["procedures"] = updated.procedures + (event.procedure_id,)
        updated = updated.with_changes(**changes)
        if updated.status == ToothStatus.MISSING and updated.surfaces:
            updated = updated.with_changes(surfaces=frozenset())

        chart = ctx.chart.with_tooth(updated)
        snapshot = recompute(chart)
        ctx.chart, ctx.snapshot = chart, snapshot

        logger.debug(
            f"Diente {event.tooth_id} en {visit_id}: "
            f"{current.status.value} → {updated.status.value}"
        )
        self.bus.publish(ToothStateChanged(
            occurred_at=self.clock(),
            patient_id=ctx.patient_id,
            visit_id=visit_id,
            tooth_id=event.tooth_id,
            previous_status=current.status.value,
            new_status=updated.status.value,
            surfaces=updated.surface_codes(),
        ))
        self.bus.publish(ClinicalIndexSnapshotUpdated(
            occurred_at=self.clock(),
            patient_id=ctx.patient_id,
            visit_id=visit_id,
            snapshot=snapshot,
        ))
        return ctx

    # ── Tratamientos ─────────────────────────────────

    def get_treatment(self, visit_id: str, record_id: str) -> TreatmentRecord:
        ctx = self.get(visit_id)
        record = ctx.treatments.get(record_id)
        if record is None:
            raise TreatmentRecordNotFound(record_id)
        return record

    def plan_procedure(
        self,
        visit_id: str,
        procedure_code: str,
        procedure_name: str,
        category: TreatmentCategory,
        teeth: list[str] | None = None,
        session_number: int | None = None,
        total_sessions: int | None = None,
        next_session_date: date | None = None,
        notes: str = "",
    ) -> TreatmentRecord:
        ctx = self._require_stage(visit_id, "plan_procedure", PLANNING_STAGES)
        teeth = sorted(set(teeth or []))
        self._validate_teeth(ctx, teeth)
        if session_number is not None and total_sessions is not None:
            if not 1 <= session_number <= total_sessions:
                raise InvalidClinicalValue(
                    "session_number", f"debe estar entre 1 y {total_sessions}"
                )

        record = TreatmentRecord(
            patient_id=ctx.patient_id,
            visit_id=visit_id,
            doctor_id=ctx.doctor_id,
            procedure_code=procedure_code,
            procedure_name=procedure_name,
            category=category,
            teeth=teeth,
            created_at=self.clock(),
            notes=notes,
            session_number=session_number,
            total_sessions=total_sessions,
            next_session_date=next_session_date,
        )
        ctx.treatments[record.id] = record
        if procedure_code in WARS_PROCEDURES:
            ctx.wars_required = True
        logger.info(f"Tratamiento {procedure_code} planificado en {visit_id} ({record.id})")
        return record

    def start_procedure(self, visit_id: str, record_id: str) -> TreatmentRecord:
        self._require_stage(
            visit_id, "start_procedure", frozenset({EncounterStage.EXECUTION})
        )
        record = self.get_treatment(visit_id, record_id)
        record.start()
        return record

    def complete_procedure(self, visit_id: str, record_id: str) -> TreatmentRecord:
        """
        Completa el tratamiento y dispara la automatización una sola vez.
        Repetir la llamada sobre un registro completado es un no-op.
        """
        ctx = self._require_stage(
            visit_id, "complete_procedure", frozenset({EncounterStage.EXECUTION})
        )
        record = self.get_treatment(visit_id, record_id)
        if not record.mark_completed(self.clock()):
            logger.debug(f"Tratamiento {record_id} ya completado, no-op")
            return record

        logger.info(f"Tratamiento {record.procedure_code} completado en {visit_id}")
        self.bus.publish(ProcedureCompleted(
            occurred_at=record.completed_at,
            patient_id=ctx.patient_id,
            visit_id=visit_id,
            treatment_record_id=record.id,
            procedure_code=record.procedure_code,
            teeth=list(record.teeth),
            completed_at=record.completed_at,
        ))
        self.automation.on_procedure_completed(record)
        return record

    def cancel_procedure(
        self, visit_id: str, record_id: str, reason: str | None = None
    ) -> TreatmentRecord:
        self._require_stage(visit_id, "cancel_procedure", PLANNING_STAGES)
        record = self.get_treatment(visit_id, record_id)
        record.cancel(reason)
        logger.info(f"Tratamiento {record_id} cancelado en {visit_id}")
        return record

    def annotate_procedure(self, visit_id: str, record_id: str, notes: str) -> TreatmentRecord:
        """Notas clínicas: permitido en cualquier etapa, incluso archivado."""
        record = self.get_treatment(visit_id, record_id)
        record.annotate(notes)
        return record


# ── Conversión a schemas de respuesta ────────────────

def tooth_to_response(state: ToothState) -> ToothStateResponse:
    return ToothStateResponse(
        tooth_id=state.tooth_id,
        status=state.status,
        surfaces=state.surface_codes(),
        notes=state.notes,
        procedures=list(state.procedures),
        probing_code=state.probing_code,
    )


def treatment_to_response(record: TreatmentRecord) -> TreatmentResponse:
    return TreatmentResponse(
        id=record.id,
        visit_id=record.visit_id,
        procedure_code=record.procedure_code,
        procedure_name=record.procedure_name,
        category=record.category,
        teeth=list(record.teeth),
        status=record.status,
        billed_already=record.billed_already,
        created_at=record.created_at,
        completed_at=record.completed_at,
        notes=record.notes,
        cancellation_reason=record.cancellation_reason,
        session_number=record.session_number,
        total_sessions=record.total_sessions,
        next_session_date=record.next_session_date,
    )


def diagnosis_to_response(entry: DiagnosisEntry) -> DiagnosisResponse:
    return DiagnosisResponse(
        text=entry.text,
        icd_code=entry.icd_code,
        teeth=list(entry.teeth),
        is_provisional=entry.is_provisional,
    )


def medication_to_response(entry: MedicationEntry) -> MedicationResponse:
    return MedicationResponse(
        name=entry.name,
        dosage=entry.dosage,
        frequency=entry.frequency,
        duration=entry.duration,
        is_active=entry.is_active,
        risk_flags=list(entry.risk_flags),
    )


def vitals_to_response(vitals: VitalsRecord) -> VitalsResponse:
    return VitalsResponse(
        recorded_at=vitals.recorded_at,
        kind=vitals.kind,
        temperature=vitals.temperature,
        bp_systolic=vitals.bp_systolic,
        bp_diastolic=vitals.bp_diastolic,
        heart_rate=vitals.heart_rate,
        spo2=vitals.spo2,
        respiratory_rate=vitals.respiratory_rate,
    )


def risk_to_response(ctx: EncounterContext) -> RiskAssessmentResponse:
    latest = ctx.latest_vitals
    return RiskAssessmentResponse(
        visit_id=ctx.visit_id,
        risk_score=compute_risk_score(ctx),
        risk_alerts=list(ctx.risk_alerts),
        medications=[medication_to_response(m) for m in ctx.medications],
        latest_vitals=vitals_to_response(latest) if latest is not None else None,
        is_pregnant=ctx.maternity.is_pregnant,
        trimester=ctx.maternity.trimester,
        anesthesia_mode=ctx.anesthesia_mode,
        asa_class=ctx.asa_class,
        wars_required=ctx.wars_required,
    )


def encounter_to_response(ctx: EncounterContext) -> EncounterResponse:
    return EncounterResponse(
        visit_id=ctx.visit_id,
        patient_id=ctx.patient_id,
        patient_name=ctx.patient.name,
        age=ctx.patient.age,
        dentition_mode=ctx.chart.dentition_mode.value,
        doctor_id=ctx.doctor_id,
        stage=ctx.stage.value,
        started_at=ctx.started_at,
        finished_at=ctx.finished_at,
        chief_complaints=list(ctx.chief_complaints),
        diagnoses=[diagnosis_to_response(d) for d in ctx.diagnoses],
        treatments=[treatment_to_response(t) for t in ctx.treatments.values()],
        post_op_instructions=ctx.post_op_instructions,
        abandon_reason=ctx.abandon_reason,
        charted_teeth=[tooth_to_response(t) for t in ctx.chart.charted_teeth()],
        risk=risk_to_response(ctx),
    )


def chart_to_response(ctx: EncounterContext) -> FullChartResponse:
    return FullChartResponse(
        visit_id=ctx.visit_id,
        dentition_mode=ctx.chart.dentition_mode.value,
        teeth=[tooth_to_response(t) for _, t in sorted(ctx.chart.teeth.items())],
        snapshot=ctx.snapshot,
    )
