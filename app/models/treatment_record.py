"""
Modelo TreatmentRecord — procedimiento del encuentro con state machine.

Estados válidos y transiciones:
    planned → in_progress → completed
    planned → completed
    planned → cancelled
    in_progress → cancelled

billed_already se fija una única vez mediante compare-and-set; a partir de
ahí solo se aceptan cambios en campos no financieros (notas).
"""

import enum
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

from app.core.exceptions import BilledRecordImmutable, InvalidTreatmentTransition


class TreatmentStatus(str, enum.Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TreatmentCategory(str, enum.Enum):
    DIAGNOSTIC = "diagnostic"
    PREVENTIVE = "preventive"
    RESTORATIVE = "restorative"
    ENDODONTIC = "endodontic"
    PROSTHODONTIC = "prosthodontic"
    SURGICAL = "surgical"
    ORTHODONTIC = "orthodontic"
    PERIODONTIC = "periodontic"


# ── Transiciones válidas de la state machine ─────────
VALID_TRANSITIONS: dict[TreatmentStatus, list[TreatmentStatus]] = {
    TreatmentStatus.PLANNED: [
        TreatmentStatus.IN_PROGRESS,
        TreatmentStatus.COMPLETED,
        TreatmentStatus.CANCELLED,
    ],
    TreatmentStatus.IN_PROGRESS: [
        TreatmentStatus.COMPLETED,
        TreatmentStatus.CANCELLED,
    ],
    # Estados terminales: no tienen transiciones
    TreatmentStatus.COMPLETED: [],
    TreatmentStatus.CANCELLED: [],
}

# Campos que no pueden cambiar una vez facturado el registro
FINANCIAL_FIELDS = frozenset({
    "patient_id",
    "visit_id",
    "doctor_id",
    "procedure_code",
    "procedure_name",
    "category",
    "teeth",
    "status",
    "completed_at",
})


def is_valid_transition(current: TreatmentStatus, new: TreatmentStatus) -> bool:
    """Verifica si una transición de estado es válida."""
    return new in VALID_TRANSITIONS.get(current, [])


@dataclass
class TreatmentRecord:
    patient_id: str
    visit_id: str
    doctor_id: str
    procedure_code: str
    procedure_name: str
    category: TreatmentCategory
    teeth: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: TreatmentStatus = TreatmentStatus.PLANNED
    created_at: datetime | None = None
    completed_at: datetime | None = None
    notes: str = ""
    cancellation_reason: str | None = None

    # ── Multi-sesión (ej. RCT) ───────────────────────
    session_number: int | None = None
    total_sessions: int | None = None
    next_session_date: date | None = None
    billed_already: bool = False

    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def __setattr__(self, name: str, value) -> None:
        if name in FINANCIAL_FIELDS and self.__dict__.get("billed_already", False):
            raise BilledRecordImmutable(self.__dict__.get("id", "?"), name)
        super().__setattr__(name, value)

    @property
    def is_multi_session(self) -> bool:
        return bool(self.total_sessions and self.total_sessions > 1)

    @property
    def quantity(self) -> int:
        return len(self.teeth) or 1

    def _transition(self, target: TreatmentStatus) -> None:
        if not is_valid_transition(self.status, target):
            raise InvalidTreatmentTransition(self.id, self.status.value, target.value)
        self.status = target

    def start(self) -> None:
        with self._lock:
            self._transition(TreatmentStatus.IN_PROGRESS)

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            self._transition(TreatmentStatus.CANCELLED)
            self.cancellation_reason = reason

    def mark_completed(self, at: datetime) -> bool:
        """
        Compare-and-set a completed. Retorna False si ya estaba completado
        (doble click / reintento), sin error.
        """
        with self._lock:
            if self.status == TreatmentStatus.COMPLETED:
                return False
            self._transition(TreatmentStatus.COMPLETED)
            self.completed_at = at
            return True

    def claim_billing(self) -> bool:
        """Compare-and-set de billed_already: solo el primer llamador gana."""
        with self._lock:
            if self.billed_already:
                return False
            self.billed_already = True
            return True

    def annotate(self, notes: str) -> None:
        """Notas clínicas: permitido incluso después de facturar."""
        self.notes = notes
