"""
Bus de eventos en proceso.

Registra cada evento publicado (outbox consultable por visita) y lo
despacha sincrónicamente a los suscriptores del tipo correspondiente.
La persistencia y el transporte de los eventos son responsabilidad de los
colaboradores externos que se suscriben aquí.

Un suscriptor que falla se registra en el log y no interrumpe el despacho
al resto de suscriptores ni del lote. El outbox conserva como máximo
`max_events` eventos; al superarlo se descartan los más antiguos.
"""

import logging
import threading
from collections import defaultdict, deque
from typing import Callable

from app.schemas.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]

DEFAULT_MAX_EVENTS = 10_000


class EventBus:
    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)
        self._log: deque[DomainEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self._log.append(event)
        logger.debug(f"Evento {event.event_type} (visita={event.visit_id})")
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        f"Suscriptor {getattr(handler, '__qualname__', handler)} falló "
                        f"con {event.event_type} (evento {event.event_id})"
                    )

    def publish_all(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def events(
        self,
        *,
        visit_id: str | None = None,
        event_type: type[DomainEvent] | None = None,
    ) -> list[DomainEvent]:
        """Eventos publicados, opcionalmente filtrados por visita y tipo."""
        with self._lock:
            events = list(self._log)
        if visit_id is not None:
            events = [e for e in events if e.visit_id == visit_id]
        if event_type is not None:
            events = [e for e in events if isinstance(e, event_type)]
        return events
