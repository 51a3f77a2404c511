"""Reloj inyectable: los servicios reciben un callable que retorna ahora (UTC)."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
