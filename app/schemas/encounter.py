"""
Schemas de la API de encuentros: visita, odontograma, diagnósticos
y tratamientos.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from app.models.dental_chart import ToothStatus, ToothSurface
from app.models.encounter import AnesthesiaMode, AsaClass, VitalsType
from app.models.treatment_record import TreatmentCategory, TreatmentStatus
from app.schemas.clinical_index import ClinicalIndexSnapshot


def _fdi_format(v: str) -> str:
    # La validez según la dentición del paciente se verifica en el servicio
    if len(v) != 2 or not v.isdigit():
        raise ValueError(f"Número FDI inválido: '{v}'. Formato de dos dígitos, ej. '16'")
    return v


# ── Requests ─────────────────────────────────────────

class EncounterCreate(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    patient_name: str = Field(..., min_length=1, max_length=200)
    age: int = Field(..., ge=0, le=130, description="Edad en años (define la dentición)")
    doctor_id: str = Field(..., min_length=1, max_length=64)


class ChiefComplaintCreate(BaseModel):
    complaint: str = Field(..., min_length=1, max_length=500)


class ToothEventCreate(BaseModel):
    tooth_id: str = Field(..., description="Número FDI del diente")
    status: ToothStatus | None = None
    surfaces: list[str] | None = Field(
        None, description="Superficies afectadas: ['M','D','O','B','L']"
    )
    notes: str | None = Field(None, max_length=2000)
    probing_code: int | None = Field(None, ge=0, le=4, description="Código PSR 0-4")
    procedure_id: str | None = None
    reset: bool = False

    @field_validator("tooth_id")
    @classmethod
    def validate_tooth(cls, v: str) -> str:
        return _fdi_format(v)

    @field_validator("surfaces")
    @classmethod
    def validate_surfaces(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        valid = {s.value for s in ToothSurface}
        for s in v:
            if s.upper() not in valid:
                raise ValueError(
                    f"Superficie inválida: '{s}'. Válidas: {', '.join(sorted(valid))}"
                )
        return sorted({s.upper() for s in v})


class DiagnosisCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)
    icd_code: str | None = Field(None, max_length=10, description="Código CIE-10")
    teeth: list[str] = []
    is_provisional: bool = True

    @field_validator("teeth")
    @classmethod
    def validate_teeth(cls, v: list[str]) -> list[str]:
        return [_fdi_format(t) for t in v]


class TreatmentCreate(BaseModel):
    procedure_code: str = Field(..., min_length=1, max_length=50)
    procedure_name: str = Field(..., min_length=1, max_length=200)
    category: TreatmentCategory
    teeth: list[str] = []
    session_number: int | None = Field(None, ge=1)
    total_sessions: int | None = Field(None, ge=1)
    next_session_date: date | None = None
    notes: str = Field("", max_length=2000)

    @field_validator("teeth")
    @classmethod
    def validate_teeth(cls, v: list[str]) -> list[str]:
        return [_fdi_format(t) for t in v]


class TreatmentCancel(BaseModel):
    reason: str | None = Field(None, max_length=500)


class TreatmentAnnotate(BaseModel):
    notes: str = Field(..., max_length=2000)


class PostOpInstructionsUpdate(BaseModel):
    instructions: str = Field(..., min_length=1, max_length=5000)


class EncounterAbandon(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class MedicationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field("", max_length=100)
    frequency: str = Field("", max_length=100)
    duration: str | None = Field(None, max_length=100)
    is_active: bool = True


class VitalsCreate(BaseModel):
    kind: VitalsType = VitalsType.ROUTINE
    temperature: float | None = Field(None, ge=30, le=45)
    bp_systolic: int | None = Field(None, ge=40, le=300)
    bp_diastolic: int | None = Field(None, ge=20, le=200)
    heart_rate: int | None = Field(None, ge=20, le=250)
    spo2: int | None = Field(None, ge=0, le=100)
    respiratory_rate: int | None = Field(None, ge=4, le=80)


class RiskFactorsUpdate(BaseModel):
    is_pregnant: bool | None = None
    pregnancy_month: int | None = Field(None, ge=1, le=9)
    is_nursing: bool | None = None
    anesthesia_mode: AnesthesiaMode | None = None
    asa_class: AsaClass | None = None


# ── Responses ────────────────────────────────────────

class ToothStateResponse(BaseModel):
    tooth_id: str
    status: ToothStatus
    surfaces: list[str] = []
    notes: str = ""
    procedures: list[str] = []
    probing_code: int | None = None


class DiagnosisResponse(BaseModel):
    text: str
    icd_code: str | None = None
    teeth: list[str] = []
    is_provisional: bool


class TreatmentResponse(BaseModel):
    id: str
    visit_id: str
    procedure_code: str
    procedure_name: str
    category: TreatmentCategory
    teeth: list[str]
    status: TreatmentStatus
    billed_already: bool
    created_at: datetime | None = None
    completed_at: datetime | None = None
    notes: str = ""
    cancellation_reason: str | None = None
    session_number: int | None = None
    total_sessions: int | None = None
    next_session_date: date | None = None


class MedicationResponse(BaseModel):
    name: str
    dosage: str = ""
    frequency: str = ""
    duration: str | None = None
    is_active: bool = True
    risk_flags: list[str] = []


class VitalsResponse(BaseModel):
    recorded_at: datetime
    kind: VitalsType
    temperature: float | None = None
    bp_systolic: int | None = None
    bp_diastolic: int | None = None
    heart_rate: int | None = None
    spo2: int | None = None
    respiratory_rate: int | None = None


class RiskAssessmentResponse(BaseModel):
    """Puntaje de riesgo clínico (0-100) y sus factores."""
    visit_id: str
    risk_score: int
    risk_alerts: list[str] = []
    medications: list[MedicationResponse] = []
    latest_vitals: VitalsResponse | None = None
    is_pregnant: bool = False
    trimester: int | None = None
    anesthesia_mode: AnesthesiaMode | None = None
    asa_class: AsaClass | None = None
    wars_required: bool = False


class EncounterResponse(BaseModel):
    visit_id: str
    patient_id: str
    patient_name: str
    age: int
    dentition_mode: str
    doctor_id: str
    stage: str
    started_at: datetime | None = None
    finished_at: datetime | None = None
    chief_complaints: list[str]
    diagnoses: list[DiagnosisResponse]
    treatments: list[TreatmentResponse]
    post_op_instructions: str
    abandon_reason: str | None = None
    charted_teeth: list[ToothStateResponse]
    risk: RiskAssessmentResponse


class FullChartResponse(BaseModel):
    """Odontograma completo de la visita con sus índices derivados."""
    visit_id: str
    dentition_mode: str
    teeth: list[ToothStateResponse]
    snapshot: ClinicalIndexSnapshot

