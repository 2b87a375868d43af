"""
Point d'entrée principal de l'API ClassPlanner.
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401  enregistre tous les modèles dans Base.metadata avant les routers
from app.config import settings
from app.exceptions import SchedulingError
from app.routers import attendance, classes, occurrences, schedules
from app.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _consolidate_on_startup() -> None:
    """Fusionne les créneaux en double avant d'accepter des requêtes (si activé)."""
    from app.database import SessionLocal
    from app.services.consolidation_service import consolidate_slots

    db = SessionLocal()
    try:
        report = consolidate_slots(db)
        logger.info(
            "Fusion au démarrage : %d groupe(s) fusionné(s), %d ignoré(s), %d doublon(s) supprimé(s)",
            report.groups_merged, report.groups_skipped, report.duplicates_deleted,
        )
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : fusion optionnelle des créneaux, puis scheduler APScheduler."""
    if settings.CONSOLIDATE_SLOTS_ON_STARTUP:
        _consolidate_on_startup()
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="ClassPlanner API",
    description="API de planification des cours récurrents et de suivi des présences",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : autorise tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept", "X-Actor-Id", "X-Actor-Role"],
)


app.include_router(schedules.router)
app.include_router(occurrences.router)
app.include_router(attendance.router)
app.include_router(classes.router)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Traduit les erreurs métier des services en réponse HTTP (404, 409, 403, 400)."""
    logger.info("Requête refusée (%s) : %s", type(exc).__name__, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "ClassPlanner API", "version": "0.1.0"}
