"""
Agrégation des présences : matrice élèves × séances d'une classe et synthèse par élève.

Taux de présence = arrondi((present + late) / séances saisies × 100).
Les séances sans saisie pour l'élève sont exclues du dénominateur ; taux 0 si rien n'est saisi.
Lecture seule.
"""

import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import NotFound
from app.models.attendance import AttendanceRecord
from app.models.enums import AttendanceStatus
from app.models.occurrence import Occurrence
from app.models.schedule import RecurringSlot
from app.models.school_class import SchoolClass
from app.models.student import Student
from app.schemas.attendance import (
    AttendanceStats,
    ClassAttendanceMatrix,
    ClassBrief,
    MatrixEntry,
    MatrixOccurrence,
    StudentAttendanceRow,
    StudentBrief,
    StudentClassSummary,
)
from app.services.roster_service import get_class_or_raise, get_enrolled_students


def compute_stats(statuses: Iterable[Optional[AttendanceStatus]]) -> AttendanceStats:
    """Compte chaque statut ; None (aucune saisie) n'est compté nulle part."""
    counts = {s: 0 for s in AttendanceStatus}
    for status in statuses:
        if status is not None:
            counts[AttendanceStatus(status)] += 1
    return AttendanceStats(**{s.value: n for s, n in counts.items()})


def attendance_rate(stats: AttendanceStats) -> int:
    """Pourcentage arrondi à l'entier le plus proche (0,5 vers le haut)."""
    recorded = stats.present + stats.late + stats.absent + stats.excused + stats.sick
    if recorded == 0:
        return 0
    attended = stats.present + stats.late
    return (200 * attended + recorded) // (2 * recorded)


def build_student_rows(
    occurrences: list[Occurrence],
    students: list[Student],
    records: Iterable[AttendanceRecord],
) -> list[StudentAttendanceRow]:
    """Une ligne par élève, une entrée par séance (dans l'ordre des séances fournies)."""
    by_key = {(r.occurrence_id, r.student_id): r for r in records}

    rows = []
    for student in students:
        entries = []
        for occurrence in occurrences:
            record = by_key.get((occurrence.id, student.id))
            entries.append(MatrixEntry(
                occurrence_id=occurrence.id,
                date=occurrence.date,
                occurrence_status=occurrence.status,
                attendance_status=record.status if record else None,
                notes=record.notes if record else None,
                checked_in_at=record.checked_in_at if record else None,
            ))
        stats = compute_stats(e.attendance_status for e in entries)
        rows.append(StudentAttendanceRow(
            student=StudentBrief(
                id=student.id,
                first_name=student.first_name,
                last_name=student.last_name,
                email=student.email,
            ),
            attendance=entries,
            stats=stats,
            attendance_rate=attendance_rate(stats),
        ))
    return rows


def build_matrix(db: Session, class_id: uuid.UUID) -> ClassAttendanceMatrix:
    """Matrice de présences d'une classe. Lève NotFound si la classe n'existe pas."""
    school_class = get_class_or_raise(db, class_id)

    occurrences = list(db.execute(
        select(Occurrence)
        .join(RecurringSlot, RecurringSlot.id == Occurrence.slot_id)
        .where(RecurringSlot.class_id == class_id)
        .order_by(Occurrence.date, RecurringSlot.start_time)
    ).scalars().all())

    students = get_enrolled_students(db, class_id)

    records: list[AttendanceRecord] = []
    if occurrences and students:
        records = list(db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.occurrence_id.in_([o.id for o in occurrences]))
        ).scalars().all())

    return ClassAttendanceMatrix(
        school_class=ClassBrief(id=school_class.id, name=school_class.name, code=school_class.code),
        occurrences=[
            MatrixOccurrence(
                id=o.id,
                date=o.date,
                status=o.status,
                actual_start_at=o.actual_start_at,
                actual_end_at=o.actual_end_at,
            )
            for o in occurrences
        ],
        total_students=len(students),
        total_occurrences=len(occurrences),
        rows=build_student_rows(occurrences, students, records),
    )


def student_summary(db: Session, student_id: uuid.UUID) -> list[StudentClassSummary]:
    """
    Synthèse d'un élève par classe, à partir de ses présences saisies uniquement.
    Lève NotFound si l'élève n'existe pas.
    """
    if db.get(Student, student_id) is None:
        raise NotFound("Élève introuvable.")

    rows = db.execute(
        select(AttendanceRecord, Occurrence, SchoolClass)
        .join(Occurrence, Occurrence.id == AttendanceRecord.occurrence_id)
        .join(RecurringSlot, RecurringSlot.id == Occurrence.slot_id)
        .join(SchoolClass, SchoolClass.id == RecurringSlot.class_id)
        .where(AttendanceRecord.student_id == student_id)
        .order_by(SchoolClass.name, Occurrence.date)
    ).all()

    by_class: dict[uuid.UUID, tuple[SchoolClass, list[MatrixEntry]]] = {}
    for record, occurrence, school_class in rows:
        _, history = by_class.setdefault(school_class.id, (school_class, []))
        history.append(MatrixEntry(
            occurrence_id=occurrence.id,
            date=occurrence.date,
            occurrence_status=occurrence.status,
            attendance_status=record.status,
            notes=record.notes,
            checked_in_at=record.checked_in_at,
        ))

    summaries = []
    for school_class, history in by_class.values():
        stats = compute_stats(e.attendance_status for e in history)
        summaries.append(StudentClassSummary(
            class_id=school_class.id,
            class_name=school_class.name,
            total_recorded=len(history),
            stats=stats,
            attendance_rate=attendance_rate(stats),
            history=history,
        ))
    return summaries
