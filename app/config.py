"""
Configuración central de la aplicación.
Usa Pydantic BaseSettings para validar variables de entorno.
"""

from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────
    APP_NAME: str = "Clinical Cockpit"
    APP_ENV: str = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # ── Server ───────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ─────────────────────────────────────────
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # ── Celery ───────────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TIMEZONE: str = "Asia/Kolkata"

    # ── SLA de complicaciones ────────────────────────
    SLA_SWEEP_INTERVAL_SECONDS: int = 300
    SLA_SWEEP_IN_PROCESS: bool = True

    # ── Notificaciones ───────────────────────────────
    NOTIFICATIONS_VIA_CELERY: bool = True
    NOTIFICATION_GATEWAY_URL: str = ""
    NOTIFICATION_GATEWAY_TOKEN: str = ""

    # ── Retención en memoria ─────────────────────────
    EVENT_LOG_MAX_EVENTS: int = 10_000
    HISTORY_RETENTION_HOURS: int = 72

    # ── Automatización ───────────────────────────────
    FOLLOW_UP_DEFAULT_DAYS: int = 7
    LOAD_DEFAULT_CATALOG: bool = True

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL inválido: {v}")
        return level

    @field_validator(
        "SLA_SWEEP_INTERVAL_SECONDS",
        "FOLLOW_UP_DEFAULT_DAYS",
        "EVENT_LOG_MAX_EVENTS",
        "HISTORY_RETENTION_HOURS",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Debe ser un entero positivo")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
