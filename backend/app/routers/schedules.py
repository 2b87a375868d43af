"""
Router pour les créneaux hebdomadaires récurrents, leurs enseignants et la fusion des doublons.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.auth import Actor, require_roles
from app.database import get_db
from app.models.enums import UserRole
from app.schemas.schedule import (
    ConsolidationReport,
    SlotCreate,
    SlotResponse,
    SlotTeacherAdd,
    SlotUpdate,
    TeacherAssignmentResponse,
)
from app.services import consolidation_service, schedule_service

router = APIRouter(prefix="/api/v1/slots", tags=["Créneaux"])

require_admin = require_roles(UserRole.ADMIN)


@router.post("", response_model=SlotResponse, status_code=201, summary="Créer un créneau")
def create_slot(data: SlotCreate, db: Session = Depends(get_db), actor: Actor = Depends(require_admin)):
    """Crée un créneau hebdomadaire, avec ses enseignants. 409 si l'horaire existe déjà pour la classe."""
    return schedule_service.create_slot(db, data, created_by=actor.id)


@router.get("", response_model=List[SlotResponse], summary="Lister les créneaux")
def list_slots(
    class_id: Optional[uuid.UUID] = None,
    teacher_id: Optional[uuid.UUID] = None,
    day_of_week: Optional[int] = Query(default=None, ge=0, le=6),
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    return schedule_service.list_slots(
        db, class_id=class_id, teacher_id=teacher_id, day_of_week=day_of_week, is_active=is_active
    )


@router.post("/consolidate", response_model=ConsolidationReport, summary="Fusionner les créneaux en double")
def consolidate_slots(
    dry_run: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """
    Regroupe les créneaux partageant (classe, jour, début, fin) en un seul créneau
    multi-enseignants et repointe leurs séances. Idempotent.
    dry_run=true : renvoie le rapport sans rien modifier.
    """
    return consolidation_service.consolidate_slots(db, dry_run=dry_run)


@router.get("/{slot_id}", response_model=SlotResponse, summary="Détail d'un créneau")
def get_slot(slot_id: uuid.UUID, db: Session = Depends(get_db)):
    return schedule_service.get_slot(db, slot_id)


@router.patch("/{slot_id}", response_model=SlotResponse, summary="Modifier un créneau")
def update_slot(
    slot_id: uuid.UUID,
    data: SlotUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """Modifie horaire, salle ou enseignants. Les séances déjà générées ne sont pas modifiées."""
    return schedule_service.update_slot(db, slot_id, data, updated_by=actor.id)


@router.delete("/{slot_id}", status_code=204, summary="Supprimer un créneau")
def delete_slot(
    slot_id: uuid.UUID,
    cascade: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """
    Supprime un créneau. Bloqué (409) si des séances le référencent,
    sauf cascade=true qui supprime aussi ses séances et leurs présences.
    """
    schedule_service.delete_slot(db, slot_id, cascade=cascade)


# --- Enseignants du créneau ---

@router.get("/{slot_id}/teachers", response_model=List[TeacherAssignmentResponse], summary="Enseignants d'un créneau")
def list_teachers(slot_id: uuid.UUID, db: Session = Depends(get_db)):
    schedule_service.get_slot_or_raise(db, slot_id)
    return schedule_service.list_teachers(db, slot_id)


@router.post("/{slot_id}/teachers", response_model=SlotResponse, summary="Affecter un enseignant")
def add_teacher(
    slot_id: uuid.UUID,
    data: SlotTeacherAdd,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """Affecte un enseignant au créneau. Un enseignant déjà affecté est ignoré."""
    return schedule_service.add_teacher(db, slot_id, data.teacher_id, assigned_by=actor.id)


@router.delete("/{slot_id}/teachers/{teacher_id}", status_code=204, summary="Retirer un enseignant")
def remove_teacher(
    slot_id: uuid.UUID,
    teacher_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    success = schedule_service.remove_teacher(db, slot_id, teacher_id)
    if not success:
        raise HTTPException(status_code=404, detail="Lien créneau-enseignant introuvable.")
