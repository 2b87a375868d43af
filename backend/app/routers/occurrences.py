"""
Router pour les séances : génération en masse, création ponctuelle, consultation
et cycle de vie (démarrage, clôture, annulation).
"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import Actor, get_current_actor, require_roles
from app.database import get_db
from app.models.enums import OccurrenceStatus, UserRole
from app.schemas.occurrence import (
    GenerateRequest,
    GenerationReport,
    OccurrenceCancel,
    OccurrenceCreate,
    OccurrenceResponse,
    OccurrenceStatusUpdate,
    TeacherOccurrenceResponse,
)
from app.services import lifecycle_service, occurrence_service

router = APIRouter(prefix="/api/v1/occurrences", tags=["Séances"])

require_staff = require_roles(UserRole.ADMIN, UserRole.TEACHER)


@router.post(
    "/generate",
    response_model=GenerationReport,
    summary="Générer les séances d'une période",
)
def generate_occurrences(
    data: GenerateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
):
    """
    Crée une séance par (créneau, date) de la période dont le jour correspond au créneau.

    Comportement :
    - Idempotent : une séance déjà existante est ignorée (pas d'erreur)
    - Période inversée ou liste vide : rapport vide
    - Créneau inconnu : rapporté en échec, les autres sont traités
    """
    return occurrence_service.generate_occurrences(
        db, data.slot_ids, data.start_date, data.end_date, generated_by=actor.id
    )


@router.post("", response_model=OccurrenceResponse, status_code=201, summary="Créer une séance ponctuelle")
def create_occurrence(
    data: OccurrenceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Réservé aux enseignants rattachés à la classe du créneau. 409 si la séance existe déjà."""
    return occurrence_service.create_adhoc_occurrence(db, data.slot_id, data.date, actor, notes=data.notes)


@router.get("", response_model=List[OccurrenceResponse], summary="Lister les séances")
def list_occurrences(
    class_id: Optional[uuid.UUID] = None,
    slot_id: Optional[uuid.UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[OccurrenceStatus] = None,
    db: Session = Depends(get_db),
):
    return occurrence_service.list_occurrences(
        db, class_id=class_id, slot_id=slot_id, date_from=date_from, date_to=date_to, status=status
    )


@router.get("/mine", response_model=List[TeacherOccurrenceResponse], summary="Mes séances à venir")
def list_my_occurrences(
    days_ahead: int = Query(default=7, ge=0, le=60),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.TEACHER)),
):
    """Séances des classes de l'enseignant, d'aujourd'hui à J+days_ahead, avec compteurs de présences."""
    return occurrence_service.list_teacher_occurrences(db, actor.id, date.today(), days_ahead=days_ahead)


@router.get("/{occurrence_id}", response_model=OccurrenceResponse, summary="Détail d'une séance")
def get_occurrence(occurrence_id: uuid.UUID, db: Session = Depends(get_db)):
    occurrence = occurrence_service.get_occurrence_or_raise(db, occurrence_id)
    return OccurrenceResponse.model_validate(occurrence)


# --- Cycle de vie ---

@router.patch("/{occurrence_id}/status", response_model=OccurrenceResponse, summary="Changer le statut")
def update_status(
    occurrence_id: uuid.UUID,
    data: OccurrenceStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """
    Passe la séance au statut demandé (scheduled, not_started, in_progress, completed, cancelled).
    in_progress et completed horodatent le début / la fin réels avec l'acteur.
    """
    return lifecycle_service.transition(db, occurrence_id, data.status, actor.id, reason=data.reason)


@router.post("/{occurrence_id}/start", response_model=OccurrenceResponse, summary="Démarrer une séance")
def start_occurrence(
    occurrence_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return lifecycle_service.start_occurrence(db, occurrence_id, actor.id)


@router.post("/{occurrence_id}/complete", response_model=OccurrenceResponse, summary="Clôturer une séance")
def complete_occurrence(
    occurrence_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return lifecycle_service.complete_occurrence(db, occurrence_id, actor.id)


@router.post("/{occurrence_id}/cancel", response_model=OccurrenceResponse, summary="Annuler une séance")
def cancel_occurrence(
    occurrence_id: uuid.UUID,
    data: Optional[OccurrenceCancel] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    reason = data.reason if data else None
    return lifecycle_service.cancel_occurrence(db, occurrence_id, actor.id, reason=reason)
