"""
Router pour l'effectif des classes (élèves inscrits, enseignants rattachés)
et la suppression explicite d'une classe.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.auth import Actor, require_roles
from app.database import get_db
from app.models.enums import UserRole
from app.schemas.school_class import ClassRosterResponse, ClassStudentsEnroll, ClassTeachersAssign
from app.services import roster_service

router = APIRouter(prefix="/api/v1/classes", tags=["Classes"])

require_admin = require_roles(UserRole.ADMIN)


@router.get("/{class_id}/roster", response_model=ClassRosterResponse, summary="Effectif d'une classe")
def get_roster(class_id: uuid.UUID, db: Session = Depends(get_db)):
    return roster_service.get_roster(db, class_id)


@router.delete("/{class_id}", status_code=204, summary="Supprimer une classe")
def delete_class(
    class_id: uuid.UUID,
    cascade: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """
    Supprime une classe. Bloqué (409) tant qu'elle possède des créneaux,
    sauf cascade=true qui supprime créneaux, séances et présences.
    """
    roster_service.delete_class(db, class_id, cascade=cascade)


# --- Élèves ---

@router.post("/{class_id}/students", response_model=ClassRosterResponse, summary="Inscrire des élèves")
def enroll_students(
    class_id: uuid.UUID,
    data: ClassStudentsEnroll,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """Inscrit un ou plusieurs élèves. Les élèves déjà inscrits sont ignorés."""
    return roster_service.enroll_students(db, class_id, data.student_ids)


@router.delete("/{class_id}/students/{student_id}", status_code=204, summary="Désinscrire un élève")
def withdraw_student(
    class_id: uuid.UUID,
    student_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    success = roster_service.withdraw_student(db, class_id, student_id)
    if not success:
        raise HTTPException(status_code=404, detail="Lien classe-élève introuvable.")


# --- Enseignants ---

@router.post("/{class_id}/teachers", response_model=ClassRosterResponse, summary="Rattacher des enseignants")
def assign_teachers(
    class_id: uuid.UUID,
    data: ClassTeachersAssign,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """Rattache un ou plusieurs enseignants. Les enseignants déjà rattachés sont ignorés."""
    return roster_service.assign_class_teachers(db, class_id, data.teacher_ids)


@router.delete("/{class_id}/teachers/{teacher_id}", status_code=204, summary="Détacher un enseignant")
def remove_teacher(
    class_id: uuid.UUID,
    teacher_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    success = roster_service.remove_class_teacher(db, class_id, teacher_id)
    if not success:
        raise HTTPException(status_code=404, detail="Lien classe-enseignant introuvable.")
