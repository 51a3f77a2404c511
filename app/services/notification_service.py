"""
Entrega de notificaciones de escalamiento al gateway de mensajería de la
clínica (push, SMS, WhatsApp).

Sin NOTIFICATION_GATEWAY_URL configurada el envío se simula y solo queda
en el log.
"""

import logging

import httpx

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

VALID_CHANNELS = {"push", "sms", "whatsapp"}


class NotificationDeliveryError(Exception):
    """Error al entregar una notificación al gateway."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def deliver_notification(
    payload: dict,
    settings: Settings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict:
    """
    Envía una notificación serializada (EscalationNotificationRequested).

    Returns:
        dict con status ("sent" | "simulated"), canal y destinatario.

    Raises:
        NotificationDeliveryError: canal inválido o fallo del gateway.
    """
    settings = settings or get_settings()
    channel = payload.get("channel", "")
    recipient = payload.get("recipient", "")
    if channel not in VALID_CHANNELS:
        raise NotificationDeliveryError(f"Canal de notificación inválido: '{channel}'")

    if not settings.NOTIFICATION_GATEWAY_URL:
        logger.warning("Gateway de notificaciones no configurado — simulando envío")
        logger.info(
            f"[SIMULATED {channel.upper()}] To: {recipient} | "
            f"Message: {payload.get('message', '')[:80]}..."
        )
        return {"status": "simulated", "channel": channel, "recipient": recipient}

    headers = {"Content-Type": "application/json"}
    if settings.NOTIFICATION_GATEWAY_TOKEN:
        headers["Authorization"] = f"Bearer {settings.NOTIFICATION_GATEWAY_TOKEN}"

    try:
        with httpx.Client(timeout=10.0, transport=transport) as client:
            response = client.post(
                settings.NOTIFICATION_GATEWAY_URL, json=payload, headers=headers
            )
    except httpx.TimeoutException:
        raise NotificationDeliveryError("Timeout al contactar el gateway de notificaciones")
    except httpx.RequestError as exc:
        raise NotificationDeliveryError(f"Error de conexión con el gateway: {exc}")

    if response.status_code >= 400:
        raise NotificationDeliveryError(
            f"Gateway respondió {response.status_code}", status_code=response.status_code
        )

    logger.info(
        f"Notificación {channel} enviada a {recipient} "
        f"(complicación {payload.get('report_id')}, nivel {payload.get('level')})"
    )
    return {"status": "sent", "channel": channel, "recipient": recipient}
