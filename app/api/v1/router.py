"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from app.api.v1.catalog import router as catalog_router
from app.api.v1.complications import router as complications_router
from app.api.v1.encounters import router as encounters_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    encounters_router,
    prefix="/encounters",
    tags=["Encuentros clínicos"],
)

api_v1_router.include_router(
    complications_router,
    prefix="/complications",
    tags=["Complicaciones"],
)

api_v1_router.include_router(
    catalog_router,
    prefix="/catalog",
    tags=["Catálogos"],
)
