"""
Tareas Celery para entregar las notificaciones del escalamiento de SLA.

El proceso de la API publica EscalationNotificationRequested en su bus;
enqueue_notification lo serializa y lo encola aquí para que el worker lo
entregue fuera del request.
"""

import logging

from app.schemas.events import EscalationNotificationRequested
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=2,
    default_retry_delay=30,
    name="complications.deliver_notification",
)
def deliver_notification_task(self, payload: dict):
    """Entrega una notificación de escalamiento (push, SMS o WhatsApp)."""
    from app.services.notification_service import (
        NotificationDeliveryError,
        deliver_notification,
    )

    try:
        return deliver_notification(payload)
    except NotificationDeliveryError as exc:
        logger.error(f"Error entregando notificación: {exc.message}")
        raise self.retry(exc=exc)


def enqueue_notification(event: EscalationNotificationRequested) -> None:
    """Suscriptor del bus: encola la entrega en el worker."""
    deliver_notification_task.delay(event.model_dump(mode="json"))
    logger.debug(
        f"Notificación {event.channel} para {event.recipient} encolada "
        f"(complicación {event.report_id})"
    )
