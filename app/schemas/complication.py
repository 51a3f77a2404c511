"""
Schemas de complicaciones post-operatorias y su SLA.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.complication import ReporterType, ResolutionOutcome, Severity


class ComplicationCreate(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    visit_id: str | None = None
    answers: list[int] = Field(
        ..., description="Índice de la opción elegida en cada pregunta del triaje"
    )
    reporter: ReporterType = ReporterType.PATIENT
    symptom: str = Field("", max_length=1000)


class ComplicationResolve(BaseModel):
    resolved_by: str = Field(..., min_length=1, max_length=64)
    outcome: ResolutionOutcome = ResolutionOutcome.RESOLVED
    note: str | None = Field(None, max_length=2000)


class EscalationEntryResponse(BaseModel):
    level: int
    triggered_at: datetime
    action: str
    channel: str
    recipient: str


class TimeRemainingResponse(BaseModel):
    hours: int
    minutes: int
    is_breached: bool
    is_resolved: bool
    urgency: str


class ComplicationResponse(BaseModel):
    id: str
    patient_id: str
    visit_id: str | None = None
    reporter: ReporterType
    symptom: str
    severity: Severity
    triage_path: list[str]
    created_at: datetime
    sla_deadline: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_note: str | None = None
    outcome: ResolutionOutcome | None = None
    escalated: bool
    escalation_level: int
    escalation_history: list[EscalationEntryResponse] = []
    penalty_applied: bool = False
    apology_sent: bool = False
    time_remaining: TimeRemainingResponse


class TriageNodeResponse(BaseModel):
    """Nodo del árbol de triaje para el flujo de chat."""
    id: str
    kind: str  # question | severity
    prompt: str | None = None
    options: list[str] = []
    severity: Severity | None = None
    advice: str | None = None


class SlaSweepResponse(BaseModel):
    emitted: int
    events: list[dict]
