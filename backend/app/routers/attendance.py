"""
Router pour les présences : feuille d'appel d'une séance, saisie unitaire et en masse,
matrice par classe et synthèse par élève.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import Actor, require_roles
from app.database import get_db
from app.models.enums import UserRole
from app.schemas.attendance import (
    AttendanceBatchReport,
    AttendanceBatchRequest,
    AttendanceRecordRequest,
    AttendanceRecordResponse,
    ClassAttendanceMatrix,
    RosterAttendanceRow,
    StudentClassSummary,
)
from app.services import attendance_service, attendance_stats_service

router = APIRouter(prefix="/api/v1", tags=["Présences"])

require_staff = require_roles(UserRole.ADMIN, UserRole.TEACHER)


@router.get(
    "/occurrences/{occurrence_id}/attendance",
    response_model=List[RosterAttendanceRow],
    summary="Feuille d'appel d'une séance",
)
def get_occurrence_attendance(occurrence_id: uuid.UUID, db: Session = Depends(get_db)):
    """Tous les élèves inscrits avec leur présence ; sans saisie, l'élève est affiché absent."""
    return attendance_service.get_occurrence_attendance(db, occurrence_id)


@router.put(
    "/occurrences/{occurrence_id}/attendance",
    response_model=AttendanceBatchReport,
    summary="Saisir les présences en masse",
)
def record_attendance_batch(
    occurrence_id: uuid.UUID,
    data: AttendanceBatchRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """
    Enregistre les présences d'une séance ligne par ligne (mise à jour si déjà saisies).
    Une ligne invalide est rapportée en échec sans bloquer les autres.
    """
    return attendance_service.record_attendance_batch(db, occurrence_id, data.entries, recorded_by=actor.id)


@router.put(
    "/occurrences/{occurrence_id}/attendance/{student_id}",
    response_model=AttendanceRecordResponse,
    summary="Saisir la présence d'un élève",
)
def record_attendance(
    occurrence_id: uuid.UUID,
    student_id: uuid.UUID,
    data: AttendanceRecordRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return attendance_service.record_attendance(
        db, occurrence_id, student_id, data.status, notes=data.notes, recorded_by=actor.id
    )


@router.get(
    "/classes/{class_id}/attendance",
    response_model=ClassAttendanceMatrix,
    summary="Matrice de présences d'une classe",
)
def get_class_attendance(class_id: uuid.UUID, db: Session = Depends(get_db)):
    """Élèves × séances, compteurs par statut et taux de présence par élève."""
    return attendance_stats_service.build_matrix(db, class_id)


@router.get(
    "/students/{student_id}/attendance",
    response_model=List[StudentClassSummary],
    summary="Synthèse des présences d'un élève",
)
def get_student_attendance(student_id: uuid.UUID, db: Session = Depends(get_db)):
    return attendance_stats_service.student_summary(db, student_id)
