"""
Triaje de complicaciones post-operatorias.

El árbol de decisión es finito y explícito: cada nodo es una pregunta
(con opciones que apuntan al siguiente nodo) o una severidad terminal.
Se recorre por índice de opción, sin callbacks anidados.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from app.core.clock import Clock, utcnow
from app.core.event_bus import EventBus
from app.core.exceptions import (
    ComplicationNotFound,
    IncompleteTriagePath,
    InvalidTriageAnswer,
)
from app.models.complication import (
    ComplicationReport,
    EscalationEntry,
    ReporterType,
    Severity,
)
from app.schemas.events import ComplicationClassified, UrgentEscalation

logger = logging.getLogger(__name__)


# ── Nodos del árbol ──────────────────────────────────

@dataclass(frozen=True)
class TriageOption:
    label: str
    next: str


@dataclass(frozen=True)
class QuestionNode:
    id: str
    prompt: str
    options: tuple[TriageOption, ...]


@dataclass(frozen=True)
class SeverityNode:
    id: str
    severity: Severity
    advice: str


TriageNode = Union[QuestionNode, SeverityNode]


@dataclass(frozen=True)
class TriageResult:
    severity: Severity
    path: tuple[str, ...]
    advice: str


def _q(node_id: str, prompt: str, *options: tuple[str, str]) -> QuestionNode:
    return QuestionNode(
        id=node_id,
        prompt=prompt,
        options=tuple(TriageOption(label=label, next=nxt) for label, nxt in options),
    )


def _s(node_id: str, severity: Severity, advice: str) -> SeverityNode:
    return SeverityNode(id=node_id, severity=severity, advice=advice)


TRIAGE_ROOT = "start"

TRIAGE_TREE: dict[str, TriageNode] = {n.id: n for n in (
    _q("start", "¿Cómo se siente después del procedimiento?",
       ("Bien, cicatrizando", "end_healing"),
       ("Algo de molestia", "discomfort_type"),
       ("Tengo una preocupación", "concern_type"),
       ("Necesito ayuda urgente", "emergency_type")),

    # Molestias
    _q("discomfort_type", "¿Qué tipo de molestia tiene?",
       ("Dolor", "pain_level"),
       ("Sensibilidad", "end_sensitivity"),
       ("Inflamación", "swelling_level"),
       ("Sangrado", "bleeding_level")),
    _q("pain_level", "En una escala de 1 a 10, ¿qué tan fuerte es el dolor?",
       ("1-3 (leve)", "end_pain_mild"),
       ("4-6 (moderado)", "end_pain_moderate"),
       ("7-10 (severo)", "end_pain_severe")),
    _q("swelling_level", "¿Qué tan inflamada está la zona?",
       ("Leve, apenas se nota", "end_swelling_mild"),
       ("Moderada, visible", "end_swelling_moderate"),
       ("Severa, dificulta comer o hablar", "end_swelling_severe")),
    _q("bleeding_level", "¿Cuánto sangrado tiene?",
       ("Leve, saliva rosada", "end_bleeding_normal"),
       ("Moderado, necesito escupir seguido", "bleeding_recheck"),
       ("Abundante y continuo", "end_bleeding_heavy")),
    _q("bleeding_recheck", "Tras 30 minutos de presión con gasa, ¿mejoró el sangrado?",
       ("Sí, mejoró", "end_bleeding_controlled"),
       ("No, sigue sangrando", "end_bleeding_heavy")),

    # Preocupaciones
    _q("concern_type", "¿Cuál es su preocupación?",
       ("El dolor no disminuye", "pain_level"),
       ("La mordida se siente extraña", "end_bite"),
       ("Se salió la obturación/provisional", "end_filling"),
       ("Adormecimiento prolongado", "numbness_check"),
       ("Fiebre", "fever_check")),
    _q("numbness_check", "¿Hace cuánto tiempo tiene adormecimiento?",
       ("Unas horas", "end_numbness_normal"),
       ("Más de 24 horas", "end_numbness_prolonged")),
    _q("fever_check", "¿Tiene fiebre?",
       ("Febrícula (37.5-38 °C)", "end_fever_low"),
       ("Fiebre alta (más de 38.3 °C)", "end_fever_high")),

    # Emergencias
    _q("emergency_type", "¿Qué está ocurriendo?",
       ("Dificultad para respirar", "end_call_emergency"),
       ("Sangrado incontrolable", "end_bleeding_heavy"),
       ("Inflamación que cierra la garganta", "end_call_emergency"),
       ("Fiebre alta con escalofríos", "end_fever_high")),

    # Severidades terminales
    _s("end_healing", Severity.LOW, "Continúe con las indicaciones post-operatorias."),
    _s("end_sensitivity", Severity.LOW, "Use pasta desensibilizante y evite alimentos muy fríos."),
    _s("end_pain_mild", Severity.LOW, "Analgésico indicado y compresas frías; es esperable."),
    _s("end_pain_moderate", Severity.MODERATE, "El equipo revisará su caso; mantenga la analgesia."),
    _s("end_pain_severe", Severity.HIGH, "El doctor será notificado para contactarle."),
    _s("end_swelling_mild", Severity.LOW, "Compresas frías las primeras 24 horas."),
    _s("end_swelling_moderate", Severity.MODERATE, "El equipo revisará su caso; mantenga la cabeza elevada."),
    _s("end_swelling_severe", Severity.HIGH, "El doctor será notificado para contactarle."),
    _s("end_bleeding_normal", Severity.LOW, "Es normal las primeras 24 horas; muerda una gasa."),
    _s("end_bleeding_controlled", Severity.LOW, "Evite enjuagues y esfuerzos por 24 horas."),
    _s("end_bleeding_heavy", Severity.EMERGENCY, "Presione con gasa y acuda a la clínica de inmediato."),
    _s("end_bite", Severity.MODERATE, "Se agendará un ajuste oclusal."),
    _s("end_filling", Severity.MODERATE, "Se agendará una cita para reponer la obturación."),
    _s("end_numbness_normal", Severity.LOW, "El efecto anestésico puede durar varias horas."),
    _s("end_numbness_prolonged", Severity.HIGH, "Se requiere evaluación por posible parestesia."),
    _s("end_fever_low", Severity.MODERATE, "Hidratación y control de temperatura cada 4 horas."),
    _s("end_fever_high", Severity.EMERGENCY, "Acuda a la clínica o a emergencias de inmediato."),
    _s("end_call_emergency", Severity.EMERGENCY, "Llame a emergencias de inmediato."),
)}


def triage(answers: list[int]) -> TriageResult:
    """
    Recorre el árbol desde la raíz con los índices de opción elegidos.

    Raises:
        InvalidTriageAnswer: índice fuera de rango o respuestas de sobra.
        IncompleteTriagePath: las respuestas terminan en una pregunta.
    """
    node = TRIAGE_TREE[TRIAGE_ROOT]
    path = [node.id]
    for answer in answers:
        if isinstance(node, SeverityNode):
            raise InvalidTriageAnswer(node.id, answer, 0)
        if not 0 <= answer < len(node.options):
            raise InvalidTriageAnswer(node.id, answer, len(node.options))
        node = TRIAGE_TREE[node.options[answer].next]
        path.append(node.id)

    if isinstance(node, QuestionNode):
        raise IncompleteTriagePath(node.id)
    return TriageResult(severity=node.severity, path=tuple(path), advice=node.advice)


# ── Mesa de complicaciones ───────────────────────────

class ComplicationDesk:
    """Registro de reportes de complicación; la fuente que barre el SLA."""

    def __init__(self, bus: EventBus, clock: Clock = utcnow) -> None:
        self.bus = bus
        self.clock = clock
        self._reports: dict[str, ComplicationReport] = {}
        self._lock = threading.Lock()

    def report(
        self,
        patient_id: str,
        answers: list[int],
        visit_id: str | None = None,
        reporter: ReporterType = ReporterType.PATIENT,
        symptom: str = "",
        created_at: datetime | None = None,
    ) -> ComplicationReport:
        """
        Clasifica por el árbol y crea el reporte con deadline a +18 h.
        Emergencia: escalamiento urgente inmediato, fuera del timer del SLA.
        """
        result = triage(answers)
        now = created_at or self.clock()
        report = ComplicationReport(
            patient_id=patient_id,
            severity=result.severity,
            created_at=now,
            visit_id=visit_id,
            reporter=reporter,
            symptom=symptom,
            triage_path=result.path,
        )
        with self._lock:
            self._reports[report.id] = report

        logger.info(
            f"Complicación {report.id} del paciente {patient_id}: "
            f"{result.severity.value} (vía {' → '.join(result.path)})"
        )
        self.bus.publish(ComplicationClassified(
            occurred_at=now,
            patient_id=patient_id,
            visit_id=visit_id,
            report_id=report.id,
            severity=result.severity.value,
        ))

        if result.severity == Severity.EMERGENCY:
            self._escalate_urgent(report, now)
        return report

    def _escalate_urgent(self, report: ComplicationReport, now: datetime) -> None:
        entry = EscalationEntry(
            level=0,
            triggered_at=now,
            action="Escalamiento urgente",
            channel="sms",
            recipient="doctor,admin",
        )
        if not report.try_escalate(entry=entry):
            return
        logger.warning(f"Escalamiento urgente de la complicación {report.id}")
        self.bus.publish(UrgentEscalation(
            occurred_at=now,
            patient_id=report.patient_id,
            visit_id=report.visit_id,
            report_id=report.id,
        ))

    def get(self, report_id: str) -> ComplicationReport:
        report = self._reports.get(report_id)
        if report is None:
            raise ComplicationNotFound(report_id)
        return report

    def list_reports(self, open_only: bool = False) -> list[ComplicationReport]:
        with self._lock:
            reports = sorted(self._reports.values(), key=lambda r: r.created_at)
        if open_only:
            reports = [r for r in reports if r.is_open]
        return reports

    def prune_resolved(self, before: datetime) -> int:
        """Descarta los reportes resueltos antes de `before`. Retorna cuántos."""
        with self._lock:
            stale = [
                report_id
                for report_id, report in self._reports.items()
                if report.resolved_at is not None and report.resolved_at < before
            ]
            for report_id in stale:
                del self._reports[report_id]
        if stale:
            logger.info(f"{len(stale)} reportes resueltos descartados del registro")
        return len(stale)
