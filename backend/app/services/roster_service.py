"""
Effectif des classes : élèves inscrits et enseignants rattachés.
Consommé en lecture par la feuille d'appel, la matrice de présences et la
création de séances ponctuelles.
"""

import uuid
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.exceptions import ClassInUse, NotFound
from app.models.attendance import AttendanceRecord
from app.models.occurrence import Occurrence
from app.models.schedule import RecurringSlot, SlotTeacher
from app.models.school_class import ClassStudent, ClassTeacher, SchoolClass
from app.models.student import Student
from app.schemas.school_class import ClassRosterResponse, RosterStudent

logger = logging.getLogger(__name__)


def get_class_or_raise(db: Session, class_id: uuid.UUID) -> SchoolClass:
    school_class = db.get(SchoolClass, class_id)
    if school_class is None:
        raise NotFound("Classe introuvable.")
    return school_class


def get_enrolled_students(db: Session, class_id: uuid.UUID) -> list[Student]:
    """Élèves actuellement inscrits, triés par nom puis prénom."""
    return list(db.execute(
        select(Student)
        .join(ClassStudent, ClassStudent.student_id == Student.id)
        .where(ClassStudent.class_id == class_id)
        .order_by(Student.last_name, Student.first_name)
    ).scalars().all())


def is_class_teacher(db: Session, class_id: uuid.UUID, teacher_id: uuid.UUID) -> bool:
    return db.get(ClassTeacher, (class_id, teacher_id)) is not None


def get_roster(db: Session, class_id: uuid.UUID) -> ClassRosterResponse:
    get_class_or_raise(db, class_id)
    students = get_enrolled_students(db, class_id)
    teacher_ids = db.execute(
        select(ClassTeacher.teacher_id)
        .where(ClassTeacher.class_id == class_id)
        .order_by(ClassTeacher.assigned_at)
    ).scalars().all()
    return ClassRosterResponse(
        class_id=class_id,
        students=[RosterStudent.model_validate(s) for s in students],
        teacher_ids=list(teacher_ids),
    )


def enroll_students(db: Session, class_id: uuid.UUID, student_ids: list[uuid.UUID]) -> ClassRosterResponse:
    """
    Inscrit des élèves dans une classe.
    Les élèves déjà inscrits sont ignorés (pas de doublon).
    """
    get_class_or_raise(db, class_id)

    existing = set(db.execute(
        select(ClassStudent.student_id)
        .where(ClassStudent.class_id == class_id)
    ).scalars().all())

    to_insert = [
        {"class_id": class_id, "student_id": sid}
        for sid in student_ids
        if sid not in existing
    ]
    if to_insert:
        db.bulk_insert_mappings(ClassStudent, to_insert)
        db.commit()
        logger.info("Classe %s : %d élève(s) inscrit(s)", class_id, len(to_insert))

    return get_roster(db, class_id)


def withdraw_student(db: Session, class_id: uuid.UUID, student_id: uuid.UUID) -> bool:
    """Désinscrit un élève. Ses présences passées sont conservées."""
    link = db.get(ClassStudent, (class_id, student_id))
    if link is None:
        return False
    db.delete(link)
    db.commit()
    return True


def assign_class_teachers(db: Session, class_id: uuid.UUID, teacher_ids: list[uuid.UUID]) -> ClassRosterResponse:
    """Rattache des enseignants à une classe. Les enseignants déjà rattachés sont ignorés."""
    get_class_or_raise(db, class_id)

    existing = set(db.execute(
        select(ClassTeacher.teacher_id)
        .where(ClassTeacher.class_id == class_id)
    ).scalars().all())

    to_insert = [
        {"class_id": class_id, "teacher_id": tid}
        for tid in teacher_ids
        if tid not in existing
    ]
    if to_insert:
        db.bulk_insert_mappings(ClassTeacher, to_insert)
        db.commit()

    return get_roster(db, class_id)


def remove_class_teacher(db: Session, class_id: uuid.UUID, teacher_id: uuid.UUID) -> bool:
    link = db.get(ClassTeacher, (class_id, teacher_id))
    if link is None:
        return False
    db.delete(link)
    db.commit()
    return True


def delete_class(db: Session, class_id: uuid.UUID, cascade: bool = False) -> None:
    """
    Supprime une classe.

    Bloqué (ClassInUse) tant que la classe possède des créneaux, sauf cascade=True :
    dans ce cas créneaux, enseignants des créneaux, séances et présences sont
    supprimés dans la même transaction.
    """
    school_class = get_class_or_raise(db, class_id)

    slot_ids = db.execute(
        select(RecurringSlot.id).where(RecurringSlot.class_id == class_id)
    ).scalars().all()

    if slot_ids and not cascade:
        raise ClassInUse(
            f"Impossible de supprimer cette classe : {len(slot_ids)} créneau(x) lui appartiennent."
        )

    try:
        if slot_ids:
            occurrence_ids = select(Occurrence.id).where(Occurrence.slot_id.in_(slot_ids))
            db.execute(delete(AttendanceRecord).where(AttendanceRecord.occurrence_id.in_(occurrence_ids)))
            db.execute(delete(Occurrence).where(Occurrence.slot_id.in_(slot_ids)))
            db.execute(delete(SlotTeacher).where(SlotTeacher.slot_id.in_(slot_ids)))
            db.execute(delete(RecurringSlot).where(RecurringSlot.id.in_(slot_ids)))
        db.delete(school_class)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Classe %s supprimée (%d créneau(x) en cascade)", class_id, len(slot_ids))
