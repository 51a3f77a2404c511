"""
Modelo ComplicationReport — complicación post-operatoria con SLA de 18 h.

Resolución y escalamiento se confirman bajo el lock del reporte: un
escalamiento que llega después de la resolución es un no-op. Resolver
después de un escalamiento ya emitido está permitido y no lo retracta.
"""

import enum
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

SLA_HOURS = 18
SLA_DURATION = timedelta(hours=SLA_HOURS)


class Severity(str, enum.Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EMERGENCY = "emergency"


class ResolutionOutcome(str, enum.Enum):
    RESOLVED = "resolved"
    SCHEDULED_VISIT = "scheduled_visit"
    MONITORING = "monitoring"
    EMERGENCY = "emergency"


class ReporterType(str, enum.Enum):
    PATIENT = "patient"
    CLINICIAN = "clinician"


@dataclass(frozen=True)
class EscalationEntry:
    """Paso de la escalera registrado en el historial del reporte."""
    level: int
    triggered_at: datetime
    action: str
    channel: str
    recipient: str


@dataclass
class ComplicationReport:
    patient_id: str
    severity: Severity
    created_at: datetime
    visit_id: str | None = None
    reporter: ReporterType = ReporterType.PATIENT
    symptom: str = ""
    triage_path: tuple[str, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    sla_deadline: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_note: str | None = None
    outcome: ResolutionOutcome | None = None
    escalated: bool = False
    escalation_level: int = 0
    escalation_history: list[EscalationEntry] = field(default_factory=list)
    penalty_applied: bool = False
    apology_sent: bool = False

    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.sla_deadline is None:
            self.sla_deadline = self.created_at + SLA_DURATION
        if not self.escalation_history:
            self.escalation_history.append(EscalationEntry(
                level=0,
                triggered_at=self.created_at,
                action="Complicación reportada: alerta creada",
                channel="dashboard",
                recipient="clinic_admin",
            ))

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None and not self.escalated

    def try_escalate(
        self,
        level: int | None = None,
        entry: EscalationEntry | None = None,
        penalize: bool = False,
    ) -> bool:
        """
        Marca escalado si sigue sin resolver y sin escalar. Primer commit gana.
        Con `penalize` el vencimiento aplica la penalidad y la disculpa al
        paciente en el mismo commit.
        """
        with self._lock:
            if self.resolved_at is not None or self.escalated:
                return False
            self.escalated = True
            if level is not None:
                self.escalation_level = level
            if entry is not None:
                self.escalation_history.append(entry)
            if penalize:
                self.penalty_applied = True
                self.apology_sent = True
            return True

    def try_raise_level(self, level: int, entry: EscalationEntry | None = None) -> bool:
        """Sube el nivel de recordatorio una sola vez por nivel."""
        with self._lock:
            if self.resolved_at is not None or self.escalated:
                return False
            if level <= self.escalation_level:
                return False
            self.escalation_level = level
            if entry is not None:
                self.escalation_history.append(entry)
            return True

    def try_resolve(
        self,
        at: datetime,
        resolved_by: str,
        outcome: ResolutionOutcome,
        note: str | None = None,
    ) -> bool:
        """Registra la resolución. Una segunda resolución es un no-op."""
        with self._lock:
            if self.resolved_at is not None:
                return False
            self.resolved_at = at
            self.resolved_by = resolved_by
            self.outcome = outcome
            self.resolution_note = note
            return True
