"""
Planificateur APScheduler pour la génération automatique des séances.

Si AUTO_GENERATION_ENABLED est actif, un job quotidien (à AUTO_GENERATION_HOUR)
génère les séances de tous les créneaux actifs pour les AUTO_GENERATION_DAYS_AHEAD
prochains jours. La génération étant idempotente, les séances existantes sont ignorées.
"""

import logging
from datetime import date, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import select

from app.config import settings
from app.database import SessionLocal
from app.models.schedule import RecurringSlot

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _generate_upcoming_occurrences() -> None:
    """
    Tâche planifiée : génère les séances des créneaux actifs sur [aujourd'hui, J+N].
    Import local pour éviter les imports circulaires.
    """
    from app.services.occurrence_service import generate_occurrences

    start = date.today()
    end = start + timedelta(days=settings.AUTO_GENERATION_DAYS_AHEAD)
    db = SessionLocal()
    try:
        slot_ids = list(db.execute(
            select(RecurringSlot.id).where(RecurringSlot.is_active.is_(True))
        ).scalars().all())

        if not slot_ids:
            logger.info("Génération automatique : aucun créneau actif.")
            return

        report = generate_occurrences(db, slot_ids, start, end)
        logger.info(
            "Génération automatique %s → %s : %d créée(s), %d ignorée(s), %d en échec",
            start, end, report.total_created, report.total_skipped, report.total_failed,
        )
    except Exception as exc:
        logger.error("Erreur lors de la génération automatique des séances : %s", exc)
    finally:
        db.close()


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    if settings.AUTO_GENERATION_ENABLED:
        scheduler.add_job(
            _generate_upcoming_occurrences,
            trigger="cron",
            hour=settings.AUTO_GENERATION_HOUR,
            minute=0,
            id="occurrence_auto_generation",
            replace_existing=True,
        )
    scheduler.start()
    logger.info(
        "Scheduler démarré, génération automatique %s.",
        f"chaque jour à {settings.AUTO_GENERATION_HOUR}h" if settings.AUTO_GENERATION_ENABLED else "désactivée",
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
