"""
Modelo EncounterContext — una visita activa con state machine de etapas.

Etapas en orden obligatorio (sin saltos):
    INTAKE → EXAMINATION → INVESTIGATION → DIAGNOSIS
           → TREATMENT_PLAN → EXECUTION → POST_OP → CLOSED
Desde cualquier etapa no terminal se puede pasar a ABANDONED.
CLOSED y ABANDONED son terminales.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from app.models.dental_chart import DentalChart
from app.models.dentition import DentitionMode, dentition_mode
from app.models.treatment_record import TreatmentRecord, TreatmentStatus
from app.schemas.clinical_index import ClinicalIndexSnapshot


class EncounterStage(str, enum.Enum):
    INTAKE = "INTAKE"
    EXAMINATION = "EXAMINATION"
    INVESTIGATION = "INVESTIGATION"
    DIAGNOSIS = "DIAGNOSIS"
    TREATMENT_PLAN = "TREATMENT_PLAN"
    EXECUTION = "EXECUTION"
    POST_OP = "POST_OP"
    CLOSED = "CLOSED"
    ABANDONED = "ABANDONED"


STAGE_ORDER: tuple[EncounterStage, ...] = (
    EncounterStage.INTAKE,
    EncounterStage.EXAMINATION,
    EncounterStage.INVESTIGATION,
    EncounterStage.DIAGNOSIS,
    EncounterStage.TREATMENT_PLAN,
    EncounterStage.EXECUTION,
    EncounterStage.POST_OP,
    EncounterStage.CLOSED,
)

TERMINAL_STAGES = frozenset({EncounterStage.CLOSED, EncounterStage.ABANDONED})

# Etapas en las que se aceptan eventos del odontograma
CHARTING_STAGES = frozenset({
    EncounterStage.EXAMINATION,
    EncounterStage.INVESTIGATION,
    EncounterStage.EXECUTION,
})

# Etapas en las que se pueden planificar procedimientos
PLANNING_STAGES = frozenset({
    EncounterStage.TREATMENT_PLAN,
    EncounterStage.EXECUTION,
})


def next_stage(stage: EncounterStage) -> EncounterStage | None:
    """Siguiente etapa en el orden clínico; None si es terminal."""
    if stage in TERMINAL_STAGES:
        return None
    return STAGE_ORDER[STAGE_ORDER.index(stage) + 1]


@dataclass(frozen=True)
class PatientIdentity:
    patient_id: str
    name: str
    age: int

    @property
    def dentition_mode(self) -> DentitionMode:
        return dentition_mode(self.age)


class AnesthesiaMode(str, enum.Enum):
    LOCAL = "LA"
    GENERAL = "GA"


class AsaClass(str, enum.Enum):
    I = "I"
    II = "II"
    III = "III"
    IV = "IV"
    V = "V"
    VI = "VI"


class VitalsType(str, enum.Enum):
    PRE_OP = "PRE_OP"
    POST_OP = "POST_OP"
    ROUTINE = "ROUTINE"


@dataclass(frozen=True)
class MedicationEntry:
    name: str
    dosage: str = ""
    frequency: str = ""
    duration: str | None = None
    is_active: bool = True
    risk_flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class VitalsRecord:
    recorded_at: datetime
    kind: VitalsType = VitalsType.ROUTINE
    temperature: float | None = None
    bp_systolic: int | None = None
    bp_diastolic: int | None = None
    heart_rate: int | None = None
    spo2: int | None = None
    respiratory_rate: int | None = None


@dataclass(frozen=True)
class MaternityStatus:
    is_pregnant: bool = False
    pregnancy_month: int | None = None
    is_nursing: bool = False

    @property
    def trimester(self) -> int | None:
        if not self.is_pregnant or not self.pregnancy_month:
            return None
        if self.pregnancy_month <= 3:
            return 1
        if self.pregnancy_month <= 6:
            return 2
        return 3


@dataclass(frozen=True)
class DiagnosisEntry:
    text: str
    icd_code: str | None = None
    teeth: tuple[str, ...] = ()
    is_provisional: bool = True


@dataclass
class EncounterContext:
    patient: PatientIdentity
    doctor_id: str
    chart: DentalChart
    snapshot: ClinicalIndexSnapshot
    visit_id: str = field(default_factory=lambda: f"visit_{uuid.uuid4().hex[:12]}")
    stage: EncounterStage = EncounterStage.INTAKE
    started_at: datetime | None = None
    finished_at: datetime | None = None
    chief_complaints: list[str] = field(default_factory=list)
    diagnoses: list[DiagnosisEntry] = field(default_factory=list)
    treatments: dict[str, TreatmentRecord] = field(default_factory=dict)
    post_op_instructions: str = ""
    abandon_reason: str | None = None

    # Factores de riesgo clínico
    medications: list[MedicationEntry] = field(default_factory=list)
    risk_alerts: list[str] = field(default_factory=list)
    vitals: list[VitalsRecord] = field(default_factory=list)
    maternity: MaternityStatus = field(default_factory=MaternityStatus)
    anesthesia_mode: AnesthesiaMode | None = None
    asa_class: AsaClass | None = None
    wars_required: bool = False

    @property
    def patient_id(self) -> str:
        return self.patient.patient_id

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def latest_vitals(self) -> VitalsRecord | None:
        return self.vitals[-1] if self.vitals else None

    def treatments_with_status(self, *statuses: TreatmentStatus) -> list[TreatmentRecord]:
        return [t for t in self.treatments.values() if t.status in statuses]
