"""
Tests de la entrega de notificaciones de escalamiento y de su tarea Celery.
"""

import json
from datetime import timedelta

import httpx
import pytest

from app.config import Settings
from app.runtime import build_runtime
from app.schemas.events import EscalationNotificationRequested
from app.services import notification_service
from app.services.notification_service import NotificationDeliveryError, deliver_notification
from app.tasks import notification_tasks
from app.tasks.notification_tasks import deliver_notification_task, enqueue_notification

GATEWAY_URL = "https://gateway.clinica.test/notify"


def _payload(**overrides) -> dict:
    event = EscalationNotificationRequested(
        patient_id="pat-001",
        report_id="comp-001",
        level=2,
        action="send_reminder",
        channel=overrides.pop("channel", "sms"),
        recipient=overrides.pop("recipient", "doctor"),
        message="Complicación moderate del paciente pat-001 sin respuesta hace 12.0 h (nivel 2)",
    )
    return event.model_dump(mode="json") | overrides


def _gateway_settings(**kwargs) -> Settings:
    return Settings(NOTIFICATION_GATEWAY_URL=GATEWAY_URL, **kwargs)


class FakeTask:
    def __init__(self):
        self.payloads = []

    def delay(self, payload):
        self.payloads.append(payload)


# ── Entrega ──────────────────────────────────────────

def test_without_gateway_delivery_is_simulated():
    result = deliver_notification(_payload(), settings=Settings(NOTIFICATION_GATEWAY_URL=""))
    assert result == {"status": "simulated", "channel": "sms", "recipient": "doctor"}


def test_delivery_posts_payload_with_bearer_token():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(202, json={"queued": True})

    payload = _payload(channel="whatsapp", recipient="admin")
    result = deliver_notification(
        payload,
        settings=_gateway_settings(NOTIFICATION_GATEWAY_TOKEN="tok-123"),
        transport=httpx.MockTransport(handler),
    )

    assert result["status"] == "sent"
    assert len(sent) == 1
    assert str(sent[0].url) == GATEWAY_URL
    assert sent[0].headers["Authorization"] == "Bearer tok-123"
    body = json.loads(sent[0].content)
    assert body["channel"] == "whatsapp"
    assert body["report_id"] == "comp-001"
    assert body["level"] == 2


def test_gateway_error_status_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    with pytest.raises(NotificationDeliveryError) as exc_info:
        deliver_notification(_payload(), settings=_gateway_settings(), transport=transport)
    assert exc_info.value.status_code == 500


def test_gateway_timeout_raises():
    def handler(request):
        raise httpx.ConnectTimeout("sin respuesta", request=request)

    with pytest.raises(NotificationDeliveryError):
        deliver_notification(
            _payload(), settings=_gateway_settings(), transport=httpx.MockTransport(handler)
        )


def test_invalid_channel_is_rejected():
    with pytest.raises(NotificationDeliveryError):
        deliver_notification(_payload(channel="fax"), settings=Settings(NOTIFICATION_GATEWAY_URL=""))


# ── Tarea Celery ─────────────────────────────────────

def test_task_delivers_with_current_settings(monkeypatch):
    monkeypatch.setattr(
        notification_service, "get_settings", lambda: Settings(NOTIFICATION_GATEWAY_URL="")
    )
    assert deliver_notification_task(_payload())["status"] == "simulated"


def test_task_retries_on_delivery_error(monkeypatch):
    retries = []

    def failing_delivery(payload):
        raise NotificationDeliveryError("Gateway respondió 503", status_code=503)

    def fake_retry(exc=None, **kwargs):
        retries.append(exc)
        return RuntimeError("reintento programado")

    monkeypatch.setattr(notification_service, "deliver_notification", failing_delivery)
    monkeypatch.setattr(deliver_notification_task, "retry", fake_retry)

    with pytest.raises(RuntimeError, match="reintento programado"):
        deliver_notification_task(_payload())
    assert [e.status_code for e in retries] == [503]


def test_enqueue_serializes_event(monkeypatch):
    fake = FakeTask()
    monkeypatch.setattr(notification_tasks, "deliver_notification_task", fake)

    enqueue_notification(EscalationNotificationRequested(**_payload()))

    assert len(fake.payloads) == 1
    assert fake.payloads[0]["channel"] == "sms"
    assert isinstance(fake.payloads[0]["occurred_at"], str)


def test_runtime_enqueues_escalation_notifications(monkeypatch, clock):
    fake = FakeTask()
    monkeypatch.setattr(notification_tasks, "deliver_notification_task", fake)
    runtime = build_runtime(Settings(NOTIFICATIONS_VIA_CELERY=True), clock=clock)

    runtime.complications.report("pat-001", [1, 0, 1])
    runtime.sla.evaluate(clock() + timedelta(hours=12))

    assert [(p["level"], p["recipient"]) for p in fake.payloads] == [(2, "doctor"), (2, "admin")]


def test_runtime_without_celery_does_not_enqueue(monkeypatch, clock):
    fake = FakeTask()
    monkeypatch.setattr(notification_tasks, "deliver_notification_task", fake)
    runtime = build_runtime(Settings(NOTIFICATIONS_VIA_CELERY=False), clock=clock)

    runtime.complications.report("pat-001", [1, 0, 1])
    runtime.sla.evaluate(clock() + timedelta(hours=12))

    assert fake.payloads == []
    assert len(runtime.bus.events(event_type=EscalationNotificationRequested)) == 2
