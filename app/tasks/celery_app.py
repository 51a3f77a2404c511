"""
Configuración de Celery para la entrega asíncrona de notificaciones.
"""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from app.config import get_settings
from app.core.logging import setup_logging

settings = get_settings()

celery_app = Celery(
    "clinical_cockpit",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    setup_logging(settings.LOG_LEVEL)


# Auto-descubrir tareas en app/tasks/
celery_app.autodiscover_tasks(["app.tasks"], related_name="notification_tasks")
