"""
Service métier pour les créneaux hebdomadaires récurrents et leurs enseignants.

Un créneau ne modifie que ses propres champs : ses séances gardent la même
référence (elles portent déjà leur date) et ne sont pas touchées par un
changement d'horaire ou de salle.
"""

import uuid
import logging
from datetime import time
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import InvalidSlot, NotFound, SlotConflict, SlotInUse
from app.models.attendance import AttendanceRecord
from app.models.occurrence import Occurrence
from app.models.schedule import RecurringSlot, SlotTeacher
from app.models.school_class import SchoolClass
from app.models.user import User
from app.schemas.schedule import SlotCreate, SlotResponse, SlotUpdate, TeacherAssignmentResponse

logger = logging.getLogger(__name__)

# Nom de contrainte (PostgreSQL) ou colonnes citées (SQLite) dans le message du pilote
TIME_KEY_MARKERS = ("uq_recurring_slot_time_key", "recurring_slots.class_id")
SLOT_TEACHER_MARKERS = ("uq_slot_teacher", "slot_teachers.slot_id")


def create_slot(db: Session, data: SlotCreate, created_by: Optional[uuid.UUID] = None) -> SlotResponse:
    """
    Crée un créneau et ses affectations d'enseignants dans la même transaction.
    Lève NotFound si la classe ou un enseignant n'existe pas, SlotConflict si la clé horaire est déjà prise.
    """
    if db.get(SchoolClass, data.class_id) is None:
        raise NotFound("Classe introuvable.")

    _ensure_time_key_free(db, data.class_id, data.day_of_week, data.start_time, data.end_time)
    _ensure_teachers_exist(db, data.teacher_ids)

    slot = RecurringSlot(
        class_id=data.class_id,
        day_of_week=data.day_of_week,
        start_time=data.start_time,
        end_time=data.end_time,
        location=data.location,
        notes=data.notes,
        is_active=data.is_active,
        created_by=created_by,
    )
    db.add(slot)
    try:
        db.flush()  # Obtenir l'ID avant d'insérer les enseignants
        if data.teacher_ids:
            db.bulk_insert_mappings(SlotTeacher, [
                {"slot_id": slot.id, "teacher_id": tid, "assigned_by": created_by}
                for tid in data.teacher_ids
            ])
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _violates(exc, *TIME_KEY_MARKERS):
            raise SlotConflict("Un créneau existe déjà pour cette classe à cet horaire.")
        raise

    db.refresh(slot)
    logger.info(
        "Créneau créé : %s (classe %s, jour %d, %s–%s, %d enseignant(s))",
        slot.id, slot.class_id, slot.day_of_week, slot.start_time, slot.end_time, len(data.teacher_ids),
    )
    return _to_response(db, slot)


def get_slot_or_raise(db: Session, slot_id: uuid.UUID) -> RecurringSlot:
    slot = db.get(RecurringSlot, slot_id)
    if slot is None:
        raise NotFound("Créneau introuvable.")
    return slot


def get_slot(db: Session, slot_id: uuid.UUID) -> SlotResponse:
    return _to_response(db, get_slot_or_raise(db, slot_id))


def list_slots(
    db: Session,
    class_id: Optional[uuid.UUID] = None,
    teacher_id: Optional[uuid.UUID] = None,
    day_of_week: Optional[int] = None,
    is_active: Optional[bool] = None,
) -> list[SlotResponse]:
    """Liste les créneaux filtrés, triés par jour puis heure de début."""
    query = select(RecurringSlot)
    if teacher_id is not None:
        query = query.where(
            RecurringSlot.id.in_(
                select(SlotTeacher.slot_id).where(SlotTeacher.teacher_id == teacher_id)
            )
        )
    if class_id is not None:
        query = query.where(RecurringSlot.class_id == class_id)
    if day_of_week is not None:
        query = query.where(RecurringSlot.day_of_week == day_of_week)
    if is_active is not None:
        query = query.where(RecurringSlot.is_active.is_(is_active))

    slots = db.execute(
        query.order_by(RecurringSlot.day_of_week, RecurringSlot.start_time)
    ).scalars().all()
    return [_to_response(db, s) for s in slots]


def update_slot(
    db: Session,
    slot_id: uuid.UUID,
    data: SlotUpdate,
    updated_by: Optional[uuid.UUID] = None,
) -> SlotResponse:
    """
    Met à jour les champs fournis d'un créneau.
    Si teacher_ids est fourni, l'ensemble des enseignants est remplacé.
    Les séances existantes ne sont pas modifiées.
    """
    slot = get_slot_or_raise(db, slot_id)

    update_data = data.model_dump(exclude_unset=True, exclude={"teacher_ids"})

    day_of_week = update_data.get("day_of_week", slot.day_of_week)
    start_time = update_data.get("start_time", slot.start_time)
    end_time = update_data.get("end_time", slot.end_time)
    if start_time >= end_time:
        raise InvalidSlot("L'heure de début doit précéder l'heure de fin.")

    if (day_of_week, start_time, end_time) != (slot.day_of_week, slot.start_time, slot.end_time):
        _ensure_time_key_free(db, slot.class_id, day_of_week, start_time, end_time, exclude_id=slot.id)
    if data.teacher_ids:
        _ensure_teachers_exist(db, data.teacher_ids)

    for field, value in update_data.items():
        setattr(slot, field, value)

    try:
        if data.teacher_ids is not None:
            db.execute(delete(SlotTeacher).where(SlotTeacher.slot_id == slot.id))
            if data.teacher_ids:
                db.bulk_insert_mappings(SlotTeacher, [
                    {"slot_id": slot.id, "teacher_id": tid, "assigned_by": updated_by}
                    for tid in data.teacher_ids
                ])
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _violates(exc, *TIME_KEY_MARKERS):
            raise SlotConflict("Un créneau existe déjà pour cette classe à cet horaire.")
        raise

    db.refresh(slot)
    return _to_response(db, slot)


def delete_slot(db: Session, slot_id: uuid.UUID, cascade: bool = False) -> None:
    """
    Supprime un créneau (ses affectations d'enseignants suivent en cascade).

    Lève SlotInUse si des séances le référencent encore, sauf cascade=True :
    les séances et leurs présences sont alors supprimées avec lui.
    """
    slot = get_slot_or_raise(db, slot_id)

    nb_occurrences = db.execute(
        select(func.count())
        .select_from(Occurrence)
        .where(Occurrence.slot_id == slot_id)
    ).scalar() or 0

    if nb_occurrences and not cascade:
        raise SlotInUse(
            f"Impossible de supprimer ce créneau : {nb_occurrences} séance(s) le référencent."
        )

    try:
        if nb_occurrences:
            occurrence_ids = select(Occurrence.id).where(Occurrence.slot_id == slot_id)
            db.execute(delete(AttendanceRecord).where(AttendanceRecord.occurrence_id.in_(occurrence_ids)))
            db.execute(delete(Occurrence).where(Occurrence.slot_id == slot_id))
        db.execute(delete(SlotTeacher).where(SlotTeacher.slot_id == slot_id))
        db.delete(slot)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Créneau %s supprimé (%d séance(s) supprimée(s))", slot_id, nb_occurrences)


# --- Enseignants d'un créneau ---

def add_teacher(
    db: Session,
    slot_id: uuid.UUID,
    teacher_id: uuid.UUID,
    assigned_by: Optional[uuid.UUID] = None,
) -> SlotResponse:
    """Affecte un enseignant au créneau. Déjà affecté → aucun effet, pas d'erreur."""
    slot = get_slot_or_raise(db, slot_id)
    if db.get(User, teacher_id) is None:
        raise NotFound("Enseignant introuvable.")

    existing = db.execute(
        select(SlotTeacher).where(
            SlotTeacher.slot_id == slot_id,
            SlotTeacher.teacher_id == teacher_id,
        )
    ).scalar()

    if existing is None:
        db.add(SlotTeacher(slot_id=slot_id, teacher_id=teacher_id, assigned_by=assigned_by))
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            # Affectation concurrente identique : même résultat final
            if not _violates(exc, *SLOT_TEACHER_MARKERS):
                raise

    return _to_response(db, slot)


def remove_teacher(db: Session, slot_id: uuid.UUID, teacher_id: uuid.UUID) -> bool:
    """Retire un enseignant du créneau. Retourne True si retiré, False si lien inexistant."""
    link = db.execute(
        select(SlotTeacher).where(
            SlotTeacher.slot_id == slot_id,
            SlotTeacher.teacher_id == teacher_id,
        )
    ).scalar()
    if link is None:
        return False
    db.delete(link)
    db.commit()
    return True


def list_teachers(db: Session, slot_id: uuid.UUID) -> list[SlotTeacher]:
    """Enseignants affectés, du plus ancien au plus récent (départage par ID)."""
    return list(db.execute(
        select(SlotTeacher)
        .where(SlotTeacher.slot_id == slot_id)
        .order_by(SlotTeacher.assigned_at, SlotTeacher.teacher_id)
    ).scalars().all())


def _ensure_time_key_free(
    db: Session,
    class_id: uuid.UUID,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    query = select(RecurringSlot.id).where(
        RecurringSlot.class_id == class_id,
        RecurringSlot.day_of_week == day_of_week,
        RecurringSlot.start_time == start_time,
        RecurringSlot.end_time == end_time,
    )
    if exclude_id is not None:
        query = query.where(RecurringSlot.id != exclude_id)

    if db.execute(query.limit(1)).scalar() is not None:
        raise SlotConflict("Un créneau existe déjà pour cette classe à cet horaire.")


def _to_response(db: Session, slot: RecurringSlot) -> SlotResponse:
    """Construit le schéma de réponse avec la liste des enseignants affectés."""
    teachers = list_teachers(db, slot.id)
    return SlotResponse(
        id=slot.id,
        class_id=slot.class_id,
        day_of_week=slot.day_of_week,
        start_time=slot.start_time,
        end_time=slot.end_time,
        location=slot.location,
        notes=slot.notes,
        is_active=slot.is_active,
        created_by=slot.created_by,
        created_at=slot.created_at,
        updated_at=slot.updated_at,
        teachers=[TeacherAssignmentResponse.model_validate(t) for t in teachers],
    )


def _ensure_teachers_exist(db: Session, teacher_ids: list[uuid.UUID]) -> None:
    """Lève NotFound si l'un des enseignants n'existe pas."""
    if not teacher_ids:
        return
    found = set(db.execute(select(User.id).where(User.id.in_(teacher_ids))).scalars().all())
    missing = [tid for tid in teacher_ids if tid not in found]
    if missing:
        raise NotFound(f"Enseignant introuvable : {missing[0]}.")


def _violates(exc: IntegrityError, *markers: str) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in markers)
