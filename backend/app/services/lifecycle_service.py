"""
Cycle de vie des séances.

scheduled → not_started → in_progress → completed, cancelled depuis tout état non terminal.
Seule la validité du statut cible est contrôlée : aucun ordre de transition n'est
imposé (un retour arrière comme completed → scheduled est accepté et journalisé).
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import InvalidStatus, OccurrenceNotFound
from app.models.enums import OccurrenceStatus
from app.models.occurrence import Occurrence
from app.schemas.occurrence import OccurrenceResponse

logger = logging.getLogger(__name__)


def parse_status(value: Union[str, OccurrenceStatus]) -> OccurrenceStatus:
    if isinstance(value, OccurrenceStatus):
        return value
    try:
        return OccurrenceStatus(value)
    except ValueError:
        accepted = ", ".join(s.value for s in OccurrenceStatus)
        raise InvalidStatus(f"Statut de séance invalide : '{value}'. Valeurs acceptées : {accepted}")


def transition(
    db: Session,
    occurrence_id: uuid.UUID,
    target_status: Union[str, OccurrenceStatus],
    actor_id: Optional[uuid.UUID],
    reason: Optional[str] = None,
) -> OccurrenceResponse:
    """
    Fait passer une séance au statut cible.

    - in_progress : actual_start_at = maintenant, started_by = acteur
    - completed   : actual_end_at = maintenant, completed_by = acteur
    - cancelled   : cancellation_reason renseigné si un motif est fourni
    Lève InvalidStatus ou OccurrenceNotFound avant toute modification.
    """
    status = parse_status(target_status)

    occurrence = db.get(Occurrence, occurrence_id)
    if occurrence is None:
        raise OccurrenceNotFound("Séance introuvable.")

    previous = occurrence.status
    if previous is not None and OccurrenceStatus(previous).is_terminal and status != previous:
        logger.warning(
            "Séance %s : sortie de l'état terminal %s vers %s (acteur %s)",
            occurrence_id, OccurrenceStatus(previous).value, status.value, actor_id,
        )

    now = datetime.now(timezone.utc)
    occurrence.status = status
    occurrence.updated_at = now

    if status == OccurrenceStatus.IN_PROGRESS:
        occurrence.actual_start_at = now
        occurrence.started_by = actor_id
    elif status == OccurrenceStatus.COMPLETED:
        occurrence.actual_end_at = now
        occurrence.completed_by = actor_id
    elif status == OccurrenceStatus.CANCELLED and reason:
        occurrence.cancellation_reason = reason

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(occurrence)

    logger.info("Séance %s : %s → %s", occurrence_id, getattr(previous, "value", previous), status.value)
    return OccurrenceResponse.model_validate(occurrence)


def start_occurrence(db: Session, occurrence_id: uuid.UUID, actor_id: Optional[uuid.UUID]) -> OccurrenceResponse:
    return transition(db, occurrence_id, OccurrenceStatus.IN_PROGRESS, actor_id)


def complete_occurrence(db: Session, occurrence_id: uuid.UUID, actor_id: Optional[uuid.UUID]) -> OccurrenceResponse:
    return transition(db, occurrence_id, OccurrenceStatus.COMPLETED, actor_id)


def cancel_occurrence(
    db: Session,
    occurrence_id: uuid.UUID,
    actor_id: Optional[uuid.UUID],
    reason: Optional[str] = None,
) -> OccurrenceResponse:
    return transition(db, occurrence_id, OccurrenceStatus.CANCELLED, actor_id, reason=reason)
