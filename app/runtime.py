"""
Contenedor explícito del estado de la clínica en proceso.

Se construye una vez al iniciar (lifespan de FastAPI) y se pasa por
referencia a los handlers; no hay singletons globales de estado clínico.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Request

from app.config import Settings, get_settings
from app.core.clock import Clock, utcnow
from app.core.event_bus import EventBus
from app.schemas.events import EscalationNotificationRequested, StockDeductionRequested
from app.services.automation_service import AutomationTrigger
from app.services.catalog_service import CatalogService
from app.services.complication_service import ComplicationDesk
from app.services.encounter_service import EncounterService
from app.services.sla_service import SlaMonitor

logger = logging.getLogger(__name__)


@dataclass
class ClinicRuntime:
    bus: EventBus
    catalog: CatalogService
    automation: AutomationTrigger
    encounters: EncounterService
    complications: ComplicationDesk
    sla: SlaMonitor
    history_retention: timedelta = timedelta(hours=72)

    def prune_history(self, now: datetime) -> int:
        """Descarta visitas archivadas y reportes resueltos fuera de la retención."""
        cutoff = now - self.history_retention
        return self.encounters.prune_archive(cutoff) + self.complications.prune_resolved(cutoff)


def build_runtime(settings: Settings | None = None, clock: Clock = utcnow) -> ClinicRuntime:
    settings = settings or get_settings()
    bus = EventBus(max_events=settings.EVENT_LOG_MAX_EVENTS)

    catalog = CatalogService()
    if settings.LOAD_DEFAULT_CATALOG:
        catalog.load_defaults()
    # El kardex es el colaborador que aplica las deducciones solicitadas
    bus.subscribe(StockDeductionRequested, catalog.apply_deduction)

    automation = AutomationTrigger(
        bus, catalog, follow_up_days=settings.FOLLOW_UP_DEFAULT_DAYS, clock=clock
    )
    encounters = EncounterService(bus, automation, clock=clock)
    complications = ComplicationDesk(bus, clock=clock)
    sla = SlaMonitor(complications, bus, clock=clock)

    if settings.NOTIFICATIONS_VIA_CELERY:
        from app.tasks.notification_tasks import enqueue_notification

        bus.subscribe(EscalationNotificationRequested, enqueue_notification)

    logger.info("Runtime clínico inicializado")
    return ClinicRuntime(
        bus=bus,
        catalog=catalog,
        automation=automation,
        encounters=encounters,
        complications=complications,
        sla=sla,
        history_retention=timedelta(hours=settings.HISTORY_RETENTION_HOURS),
    )


def get_runtime(request: Request) -> ClinicRuntime:
    """Dependency de FastAPI: runtime creado en el lifespan."""
    return request.app.state.runtime
