"""
Saisie des présences par séance.

Une ligne par (séance, élève) : une nouvelle saisie met à jour la ligne
existante (statut, notes, heure d'arrivée, auteur). L'heure d'arrivée n'est
renseignée que pour present / late.

L'inscription de l'élève dans la classe n'est pas vérifiée ici : c'est la
feuille d'appel (get_occurrence_attendance) qui part de l'effectif.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import InvalidStatus, NotFound, OccurrenceNotFound
from app.models.attendance import AttendanceRecord
from app.models.enums import AttendanceStatus
from app.models.occurrence import Occurrence
from app.models.schedule import RecurringSlot
from app.models.student import Student
from app.schemas.attendance import (
    AttendanceBatchReport,
    AttendanceEntry,
    AttendanceItemFailure,
    AttendanceRecordResponse,
    RosterAttendanceRow,
)
from app.schemas.batch import batch_status
from app.services.roster_service import get_enrolled_students

logger = logging.getLogger(__name__)


def parse_attendance_status(value: Union[str, AttendanceStatus]) -> AttendanceStatus:
    if isinstance(value, AttendanceStatus):
        return value
    try:
        return AttendanceStatus(value)
    except ValueError:
        accepted = ", ".join(s.value for s in AttendanceStatus)
        raise InvalidStatus(f"Statut de présence invalide : '{value}'. Valeurs acceptées : {accepted}")


def _get_occurrence_or_raise(db: Session, occurrence_id: uuid.UUID) -> Occurrence:
    occurrence = db.get(Occurrence, occurrence_id)
    if occurrence is None:
        raise OccurrenceNotFound("Séance introuvable.")
    return occurrence


def _upsert(
    db: Session,
    occurrence_id: uuid.UUID,
    student_id: uuid.UUID,
    status: AttendanceStatus,
    notes: Optional[str],
    recorded_by: Optional[uuid.UUID],
) -> AttendanceRecord:
    now = datetime.now(timezone.utc)
    checked_in_at = now if status.checks_in else None

    record = db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.occurrence_id == occurrence_id,
            AttendanceRecord.student_id == student_id,
        )
    ).scalar()

    if record is None:
        record = AttendanceRecord(
            occurrence_id=occurrence_id,
            student_id=student_id,
            status=status,
            notes=notes,
            checked_in_at=checked_in_at,
            recorded_by=recorded_by,
        )
        db.add(record)
    else:
        record.status = status
        record.notes = notes
        record.checked_in_at = checked_in_at
        record.recorded_by = recorded_by
        record.updated_at = now
    return record


def record_attendance(
    db: Session,
    occurrence_id: uuid.UUID,
    student_id: uuid.UUID,
    status: Union[str, AttendanceStatus],
    notes: Optional[str] = None,
    recorded_by: Optional[uuid.UUID] = None,
) -> AttendanceRecordResponse:
    """
    Enregistre (ou met à jour) la présence d'un élève à une séance.
    Lève InvalidStatus, OccurrenceNotFound ou NotFound (élève) sans rien écrire.
    """
    parsed = parse_attendance_status(status)
    _get_occurrence_or_raise(db, occurrence_id)
    if db.get(Student, student_id) is None:
        raise NotFound("Élève introuvable.")

    record = _upsert(db, occurrence_id, student_id, parsed, notes, recorded_by)
    try:
        db.commit()
    except IntegrityError:
        # Insertion concurrente pour le même couple : on repasse en mise à jour
        db.rollback()
        record = _upsert(db, occurrence_id, student_id, parsed, notes, recorded_by)
        db.commit()

    db.refresh(record)
    return AttendanceRecordResponse.model_validate(record)


def record_attendance_batch(
    db: Session,
    occurrence_id: uuid.UUID,
    entries: list[AttendanceEntry],
    recorded_by: Optional[uuid.UUID] = None,
) -> AttendanceBatchReport:
    """
    Saisie en masse pour une séance.

    Chaque ligne est traitée dans son propre savepoint : une ligne invalide
    (statut inconnu, élève inconnu, élève en double dans le lot) est rapportée
    en échec sans interrompre les autres. Seule une séance inexistante fait
    échouer l'appel entier (OccurrenceNotFound).
    """
    _get_occurrence_or_raise(db, occurrence_id)

    succeeded: list[uuid.UUID] = []
    failed: list[AttendanceItemFailure] = []

    requested_ids = {e.student_id for e in entries}
    known_students = set()
    if requested_ids:
        known_students = set(db.execute(
            select(Student.id).where(Student.id.in_(requested_ids))
        ).scalars().all())

    seen_in_batch: set[uuid.UUID] = set()
    for entry in entries:
        if entry.student_id in seen_in_batch:
            failed.append(AttendanceItemFailure(student_id=entry.student_id, reason="Élève en double dans le lot."))
            continue
        seen_in_batch.add(entry.student_id)

        try:
            status = parse_attendance_status(entry.status)
        except InvalidStatus as exc:
            failed.append(AttendanceItemFailure(student_id=entry.student_id, reason=str(exc)))
            continue

        if entry.student_id not in known_students:
            failed.append(AttendanceItemFailure(student_id=entry.student_id, reason="Élève introuvable."))
            continue

        try:
            with db.begin_nested():
                _upsert(db, occurrence_id, entry.student_id, status, entry.notes, recorded_by)
            succeeded.append(entry.student_id)
        except SQLAlchemyError as exc:
            logger.warning("Présence de l'élève %s non enregistrée : %s", entry.student_id, exc)
            failed.append(AttendanceItemFailure(student_id=entry.student_id, reason="Erreur d'enregistrement."))

    db.commit()

    logger.info(
        "Présences séance %s : %d reçues, %d enregistrées, %d en échec",
        occurrence_id, len(entries), len(succeeded), len(failed),
    )
    return AttendanceBatchReport(
        status=batch_status(len(succeeded), len(failed)),
        succeeded=succeeded,
        failed=failed,
        total_received=len(entries),
        total_succeeded=len(succeeded),
        total_failed=len(failed),
    )


def get_occurrence_attendance(db: Session, occurrence_id: uuid.UUID) -> list[RosterAttendanceRow]:
    """
    Feuille d'appel : tous les élèves inscrits dans la classe de la séance,
    avec leur présence. Sans saisie, l'élève apparaît absent (recorded=False).
    """
    occurrence = _get_occurrence_or_raise(db, occurrence_id)
    slot = db.get(RecurringSlot, occurrence.slot_id)
    students = get_enrolled_students(db, slot.class_id)

    records = {
        r.student_id: r
        for r in db.execute(
            select(AttendanceRecord).where(AttendanceRecord.occurrence_id == occurrence_id)
        ).scalars().all()
    }

    rows = []
    for student in students:
        record = records.get(student.id)
        rows.append(RosterAttendanceRow(
            student_id=student.id,
            first_name=student.first_name,
            last_name=student.last_name,
            status=record.status if record else AttendanceStatus.ABSENT,
            recorded=record is not None,
            notes=record.notes if record else None,
            checked_in_at=record.checked_in_at if record else None,
        ))
    return rows
