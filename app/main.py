"""
Punto de entrada de la aplicación FastAPI.
Configura logging, CORS, manejo de errores, el runtime clínico y monta
los routers.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_v1_router
from app.config import get_settings
from app.core.exceptions import ClinicalWorkflowError
from app.core.logging import setup_logging
from app.runtime import ClinicRuntime, build_runtime

settings = get_settings()
logger = logging.getLogger(__name__)


async def _sla_sweep_loop(runtime: ClinicRuntime, interval: int) -> None:
    """
    Barrido periódico del SLA, independiente de cualquier sesión de UI.
    Cada ciclo también descarta el historial fuera de la retención.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            runtime.sla.evaluate()
            runtime.prune_history(runtime.sla.clock())
        except Exception:
            logger.exception("Error en el barrido SLA; se reintenta en el próximo ciclo")


# ── Lifecycle ────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Eventos de inicio y cierre de la aplicación."""
    # Startup
    setup_logging(settings.LOG_LEVEL)
    app.state.runtime = build_runtime(settings)
    sweeper = None
    if settings.SLA_SWEEP_IN_PROCESS:
        sweeper = asyncio.create_task(
            _sla_sweep_loop(app.state.runtime, settings.SLA_SWEEP_INTERVAL_SECONDS)
        )
    logger.info(f"{settings.APP_NAME} iniciando en modo {settings.APP_ENV}")
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    logger.info(f"{settings.APP_NAME} cerrando...")


# ── App ──────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    description="Motor de flujo clínico odontológico: encuentros, índices, automatización y SLA",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Exception Handlers ──────────────────────────────
@app.exception_handler(ClinicalWorkflowError)
async def clinical_workflow_exception_handler(request: Request, exc: ClinicalWorkflowError):
    """Errores tipados del dominio: 422 precondición, 404 no encontrado."""
    logger.info(f"{exc.code} en {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura excepciones no manejadas para evitar exponer detalles internos."""
    logger.exception(f"Error no manejado en {request.method} {request.url.path}")
    if settings.DEBUG:
        # En desarrollo, mostrar detalles
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": str(exc), "type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Error interno del servidor"},
    )


# ── Routers ──────────────────────────────────────────
app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


# ── Health Check ─────────────────────────────────────
@app.get("/health", tags=["Health"])
async def health_check():
    """Endpoint de health check para monitoreo."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "environment": settings.APP_ENV,
    }
