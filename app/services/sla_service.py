"""
Monitor del SLA de complicaciones (18 h).

Escalera de escalamiento desde la creación del reporte:
    +6 h  nivel 1: recordatorio al doctor (push)
    +12 h nivel 2: recordatorio a doctor y admin (SMS)
    +17 h nivel 3: advertencia final (SMS al doctor, WhatsApp al admin)
    +18 h nivel 4: SLA vencido: escalated=True, penalidad y disculpa
                    automática al paciente

El barrido es el único actor concurrente con la resolución manual; ambos
confirman bajo el lock del reporte y el primero en confirmar gana.
La guarda contra duplicados es el flag/nivel del reporte, no el reloj.
Cada paso confirmado queda en el historial del reporte y publica una
solicitud de notificación por destinatario.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.clock import Clock, utcnow
from app.core.event_bus import EventBus
from app.models.complication import (
    SLA_HOURS,
    ComplicationReport,
    EscalationEntry,
    ResolutionOutcome,
)
from app.schemas.complication import (
    ComplicationResponse,
    EscalationEntryResponse,
    TimeRemainingResponse,
)
from app.schemas.events import (
    ComplicationResolved,
    DomainEvent,
    EscalationNotificationRequested,
    SlaBreached,
    SlaReminderIssued,
)
from app.services.complication_service import ComplicationDesk

logger = logging.getLogger(__name__)

# (horas desde la creación, nivel)
REMINDER_LADDER: tuple[tuple[int, int], ...] = ((6, 1), (12, 2), (17, 3))
BREACH_LEVEL = 4

APOLOGY_MESSAGE = (
    "La clínica lamenta la demora en responder a su consulta. Su salud es "
    "nuestra prioridad y un miembro del equipo le contactará de inmediato. "
    "Si es urgente, llámenos directamente."
)


@dataclass(frozen=True)
class EscalationStep:
    level: int
    action: str
    description: str
    # (canal, destinatario)
    deliveries: tuple[tuple[str, str], ...]

    @property
    def recipients(self) -> str:
        return ",".join(dict.fromkeys(r for _, r in self.deliveries))

    @property
    def history_channel(self) -> str:
        return "sms" if self.level >= 2 else "push"


ESCALATION_STEPS: dict[int, EscalationStep] = {
    1: EscalationStep(1, "send_reminder", "Primer recordatorio", (("push", "doctor"),)),
    2: EscalationStep(
        2, "send_reminder", "Segundo recordatorio (SMS/WhatsApp)",
        (("sms", "doctor"), ("sms", "admin")),
    ),
    3: EscalationStep(
        3, "final_warning", "Advertencia final",
        (("sms", "doctor"), ("whatsapp", "admin")),
    ),
    4: EscalationStep(
        4, "apply_penalty", "SLA vencido: penalidad aplicada",
        (("sms", "patient"), ("push", "patient")),
    ),
}


@dataclass(frozen=True)
class SlaTimeRemaining:
    hours: int
    minutes: int
    is_breached: bool
    is_resolved: bool
    urgency: str  # green | yellow | red | critical


def time_remaining(report: ComplicationReport, now: datetime) -> SlaTimeRemaining:
    """Tiempo restante hasta el deadline con banda de urgencia."""
    remaining = report.sla_deadline - now
    if report.resolved_at is not None:
        return SlaTimeRemaining(0, 0, is_breached=False, is_resolved=True, urgency="green")
    if remaining <= timedelta(0):
        return SlaTimeRemaining(0, 0, is_breached=True, is_resolved=False, urgency="critical")

    total_minutes = int(remaining.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours >= 12:
        urgency = "green"
    elif hours >= 6:
        urgency = "yellow"
    elif hours >= 1:
        urgency = "red"
    else:
        urgency = "critical"
    return SlaTimeRemaining(hours, minutes, is_breached=False, is_resolved=False, urgency=urgency)


def _history_entry(step: EscalationStep, now: datetime) -> EscalationEntry:
    return EscalationEntry(
        level=step.level,
        triggered_at=now,
        action=step.description,
        channel=step.history_channel,
        recipient=step.recipients,
    )


def _step_message(step: EscalationStep, report: ComplicationReport, hours_elapsed: float) -> str:
    if step.action == "apply_penalty":
        return APOLOGY_MESSAGE
    if step.action == "final_warning":
        return (
            f"ADVERTENCIA FINAL: la complicación {report.id} ({report.severity.value}) "
            f"del paciente {report.patient_id} vence en menos de 1 h"
        )
    return (
        f"Complicación {report.severity.value} del paciente {report.patient_id} "
        f"sin respuesta hace {hours_elapsed} h (nivel {step.level})"
    )


class SlaMonitor:
    def __init__(self, desk: ComplicationDesk, bus: EventBus, clock: Clock = utcnow) -> None:
        self.desk = desk
        self.bus = bus
        self.clock = clock

    def evaluate(self, now: datetime | None = None) -> list[DomainEvent]:
        """
        Barrido de reportes abiertos. Idempotente: repetirlo con el mismo
        `now` no emite nada nuevo.

        Returns:
            Eventos de SLA emitidos (recordatorio o vencimiento). Las
            notificaciones derivadas se publican en el bus junto a ellos.
        """
        now = now or self.clock()
        events: list[DomainEvent] = []
        for report in self.desk.list_reports(open_only=True):
            event = self._evaluate_report(report, now)
            if event is not None:
                events.append(event)
        if events:
            logger.info(f"Barrido SLA: {len(events)} eventos emitidos")
        return events

    def _evaluate_report(self, report: ComplicationReport, now: datetime) -> DomainEvent | None:
        elapsed = now - report.created_at
        hours_elapsed = round(elapsed.total_seconds() / 3600, 2)

        if now >= report.sla_deadline:
            step = ESCALATION_STEPS[BREACH_LEVEL]
            if not report.try_escalate(
                BREACH_LEVEL, entry=_history_entry(step, now), penalize=True
            ):
                return None
            logger.warning(
                f"SLA de {SLA_HOURS} h vencido para la complicación {report.id} "
                f"(paciente {report.patient_id}); penalidad aplicada"
            )
            event = SlaBreached(
                occurred_at=now,
                patient_id=report.patient_id,
                visit_id=report.visit_id,
                report_id=report.id,
                sla_deadline=report.sla_deadline,
                penalty_applied=report.penalty_applied,
            )
        else:
            level = 0
            for hours, ladder_level in REMINDER_LADDER:
                if elapsed >= timedelta(hours=hours):
                    level = ladder_level
            if level == 0:
                return None
            step = ESCALATION_STEPS[level]
            if not report.try_raise_level(level, entry=_history_entry(step, now)):
                return None
            logger.info(f"Recordatorio SLA nivel {level} para la complicación {report.id}")
            event = SlaReminderIssued(
                occurred_at=now,
                patient_id=report.patient_id,
                visit_id=report.visit_id,
                report_id=report.id,
                level=level,
                hours_elapsed=hours_elapsed,
            )

        self.bus.publish(event)
        self._notify(report, step, now, hours_elapsed)
        return event

    def _notify(
        self, report: ComplicationReport, step: EscalationStep, now: datetime, hours_elapsed: float
    ) -> None:
        message = _step_message(step, report, hours_elapsed)
        for channel, recipient in step.deliveries:
            self.bus.publish(EscalationNotificationRequested(
                occurred_at=now,
                patient_id=report.patient_id,
                visit_id=report.visit_id,
                report_id=report.id,
                level=step.level,
                action=step.action,
                channel=channel,
                recipient=recipient,
                message=message,
            ))

    def resolve(
        self,
        report_id: str,
        resolved_by: str,
        outcome: ResolutionOutcome = ResolutionOutcome.RESOLVED,
        note: str | None = None,
    ) -> ComplicationReport:
        """
        Registra la resolución. Una segunda resolución es un no-op; resolver
        después de un escalamiento está permitido y no lo retracta.
        """
        report = self.desk.get(report_id)
        now = self.clock()
        if not report.try_resolve(now, resolved_by, outcome, note):
            logger.debug(f"Complicación {report_id} ya resuelta, no-op")
            return report

        logger.info(f"Complicación {report_id} resuelta por {resolved_by}: {outcome.value}")
        self.bus.publish(ComplicationResolved(
            occurred_at=now,
            patient_id=report.patient_id,
            visit_id=report.visit_id,
            report_id=report.id,
            outcome=outcome.value,
            after_escalation=report.escalated,
        ))
        return report


# ── Conversión a schemas de respuesta ────────────────

def report_to_response(report: ComplicationReport, now: datetime) -> ComplicationResponse:
    remaining = time_remaining(report, now)
    return ComplicationResponse(
        id=report.id,
        patient_id=report.patient_id,
        visit_id=report.visit_id,
        reporter=report.reporter,
        symptom=report.symptom,
        severity=report.severity,
        triage_path=list(report.triage_path),
        created_at=report.created_at,
        sla_deadline=report.sla_deadline,
        resolved_at=report.resolved_at,
        resolved_by=report.resolved_by,
        resolution_note=report.resolution_note,
        outcome=report.outcome,
        escalated=report.escalated,
        escalation_level=report.escalation_level,
        escalation_history=[
            EscalationEntryResponse(
                level=e.level,
                triggered_at=e.triggered_at,
                action=e.action,
                channel=e.channel,
                recipient=e.recipient,
            )
            for e in report.escalation_history
        ],
        penalty_applied=report.penalty_applied,
        apology_sent=report.apology_sent,
        time_remaining=TimeRemainingResponse(
            hours=remaining.hours,
            minutes=remaining.minutes,
            is_breached=remaining.is_breached,
            is_resolved=remaining.is_resolved,
            urgency=remaining.urgency,
        ),
    )
