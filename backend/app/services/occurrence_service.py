"""
Génération des séances à partir des créneaux récurrents.

Pour chaque jour de la période [début, fin] et chaque créneau dont le jour de
la semaine correspond, une séance « scheduled » est créée, sauf si elle existe
déjà pour ce (créneau, date). L'enseignant par défaut est la première
affectation du créneau (la plus ancienne, départage par ID enseignant).

La génération est un traitement best-effort : elle renvoie un rapport
(créées / ignorées / en échec) et ne s'interrompt jamais sur un élément.
"""

import uuid
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth import Actor
from app.exceptions import NotFound, OccurrenceExists, Unauthorized
from app.models.attendance import AttendanceRecord
from app.models.enums import AttendanceStatus, OccurrenceStatus, UserRole
from app.models.occurrence import Occurrence
from app.models.schedule import RecurringSlot, SlotTeacher
from app.models.school_class import ClassStudent, ClassTeacher, SchoolClass
from app.schemas.batch import batch_status
from app.schemas.occurrence import (
    GeneratedItem,
    GenerationFailure,
    GenerationReport,
    OccurrenceResponse,
    TeacherOccurrenceResponse,
)
from app.services.roster_service import is_class_teacher

logger = logging.getLogger(__name__)

OccurrenceKey = tuple[uuid.UUID, date]


class WeeklySlot(Protocol):
    id: uuid.UUID
    day_of_week: int


def day_of_week(d: date) -> int:
    """Jour de la semaine au format des créneaux : 0 = dimanche … 6 = samedi."""
    return d.isoweekday() % 7


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Jours de start à end inclus ; rien si end < start."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def expand_occurrences(
    slots: Iterable[WeeklySlot],
    start: date,
    end: date,
    existing: Iterable[OccurrenceKey] = (),
) -> list[OccurrenceKey]:
    """
    Clés (slot_id, date) à créer sur la période, dans l'ordre chronologique.
    Les clés présentes dans existing (ou déjà produites) sont ignorées.
    """
    slots = list(slots)
    seen = set(existing)
    keys: list[OccurrenceKey] = []
    for current in iter_dates(start, end):
        weekday = day_of_week(current)
        for slot in slots:
            if slot.day_of_week != weekday:
                continue
            key = (slot.id, current)
            if key in seen:
                continue
            seen.add(key)
            keys.append(key)
    return keys


def resolve_default_teachers(db: Session, slot_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, uuid.UUID]:
    """Premier enseignant de chaque créneau : affectation la plus ancienne, puis plus petit ID."""
    slot_ids = list(slot_ids)
    if not slot_ids:
        return {}
    rows = db.execute(
        select(SlotTeacher.slot_id, SlotTeacher.teacher_id)
        .where(SlotTeacher.slot_id.in_(slot_ids))
        .order_by(SlotTeacher.slot_id, SlotTeacher.assigned_at, SlotTeacher.teacher_id)
    ).all()

    defaults: dict[uuid.UUID, uuid.UUID] = {}
    for slot_id, teacher_id in rows:
        defaults.setdefault(slot_id, teacher_id)
    return defaults


def generate_occurrences(
    db: Session,
    slot_ids: list[uuid.UUID],
    start: date,
    end: date,
    generated_by: Optional[uuid.UUID] = None,
) -> GenerationReport:
    """
    Crée les séances des créneaux donnés sur [start, end].

    - Ensemble vide ou end < start → rapport vide, pas d'erreur.
    - Créneau inconnu → élément en échec, les autres créneaux sont traités.
    - Séance déjà existante → ignorée (y compris conflit de clé dû à une génération concurrente).
    - Créneau sans enseignant → séances avec teacher_id nul.
    """
    slot_ids = list(dict.fromkeys(slot_ids))
    created: list[GeneratedItem] = []
    skipped: list[GeneratedItem] = []
    failed: list[GenerationFailure] = []

    if not slot_ids or end < start:
        return _report(len(slot_ids), created, skipped, failed)

    slots = db.execute(
        select(RecurringSlot).where(RecurringSlot.id.in_(slot_ids))
    ).scalars().all()
    found = {s.id for s in slots}
    failed.extend(
        GenerationFailure(slot_id=sid, reason="Créneau introuvable.")
        for sid in slot_ids
        if sid not in found
    )

    existing: set[OccurrenceKey] = set()
    if found:
        existing = {
            (row[0], row[1])
            for row in db.execute(
                select(Occurrence.slot_id, Occurrence.date).where(
                    Occurrence.slot_id.in_(found),
                    Occurrence.date >= start,
                    Occurrence.date <= end,
                )
            ).all()
        }

    candidates = expand_occurrences(slots, start, end)
    staged = [key for key in candidates if key not in existing]
    skipped.extend(GeneratedItem(slot_id=k[0], date=k[1]) for k in candidates if k in existing)

    if staged:
        teachers = resolve_default_teachers(db, found)
        generated_at = datetime.now()

        def build(key: OccurrenceKey) -> Occurrence:
            return Occurrence(
                slot_id=key[0],
                date=key[1],
                teacher_id=teachers.get(key[0]),
                status=OccurrenceStatus.SCHEDULED,
                generated_by=generated_by,
                generated_at=generated_at,
            )

        try:
            with db.begin_nested():
                db.add_all([build(key) for key in staged])
            created.extend(GeneratedItem(slot_id=k[0], date=k[1]) for k in staged)
        except IntegrityError:
            # Une génération concurrente a inséré certaines séances : reprise ligne à ligne
            logger.info("Conflit de clé pendant la génération, reprise ligne à ligne (%d séances)", len(staged))
            for key in staged:
                item = GeneratedItem(slot_id=key[0], date=key[1])
                try:
                    with db.begin_nested():
                        db.add(build(key))
                    created.append(item)
                except IntegrityError:
                    skipped.append(item)
                except SQLAlchemyError as exc:
                    logger.warning("Séance %s du %s non créée : %s", key[0], key[1], exc)
                    failed.append(GenerationFailure(slot_id=key[0], date=key[1], reason="Erreur d'insertion."))
        except SQLAlchemyError:
            db.rollback()
            logger.error("Génération %s → %s annulée", start, end, exc_info=True)
            raise

        db.commit()

    logger.info(
        "Génération %s → %s : %d créneau(x), %d créée(s), %d ignorée(s), %d en échec",
        start, end, len(slot_ids), len(created), len(skipped), len(failed),
    )
    return _report(len(slot_ids), created, skipped, failed)


def create_adhoc_occurrence(
    db: Session,
    slot_id: uuid.UUID,
    occurrence_date: date,
    actor: Actor,
    notes: Optional[str] = None,
) -> OccurrenceResponse:
    """
    Crée une séance ponctuelle hors génération, à l'initiative d'un enseignant.

    L'acteur doit être un enseignant rattaché à la classe du créneau (Unauthorized sinon).
    Lève NotFound si le créneau n'existe pas, OccurrenceExists si la séance existe déjà.
    """
    if actor.role != UserRole.TEACHER:
        raise Unauthorized("Seul un enseignant peut créer une séance ponctuelle.")

    slot = db.get(RecurringSlot, slot_id)
    if slot is None:
        raise NotFound("Créneau introuvable.")

    if not is_class_teacher(db, slot.class_id, actor.id):
        raise Unauthorized("Vous n'êtes pas rattaché à cette classe.")

    existing = db.execute(
        select(Occurrence.id).where(
            Occurrence.slot_id == slot_id,
            Occurrence.date == occurrence_date,
        )
    ).scalar()
    if existing is not None:
        raise OccurrenceExists("Une séance existe déjà pour ce créneau à cette date.")

    occurrence = Occurrence(
        slot_id=slot_id,
        date=occurrence_date,
        teacher_id=actor.id,
        status=OccurrenceStatus.SCHEDULED,
        notes=notes,
        generated_by=actor.id,
        generated_at=datetime.now(),
    )
    db.add(occurrence)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise OccurrenceExists("Une séance existe déjà pour ce créneau à cette date.")
    db.refresh(occurrence)

    logger.info("Séance ponctuelle créée : créneau %s le %s par %s", slot_id, occurrence_date, actor.id)
    return OccurrenceResponse.model_validate(occurrence)


def get_occurrence_or_raise(db: Session, occurrence_id: uuid.UUID) -> Occurrence:
    occurrence = db.get(Occurrence, occurrence_id)
    if occurrence is None:
        raise NotFound("Séance introuvable.")
    return occurrence


def list_occurrences(
    db: Session,
    class_id: Optional[uuid.UUID] = None,
    slot_id: Optional[uuid.UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[OccurrenceStatus] = None,
) -> list[OccurrenceResponse]:
    """Séances filtrées, triées par date puis heure de début du créneau."""
    query = select(Occurrence).join(RecurringSlot, RecurringSlot.id == Occurrence.slot_id)
    if class_id is not None:
        query = query.where(RecurringSlot.class_id == class_id)
    if slot_id is not None:
        query = query.where(Occurrence.slot_id == slot_id)
    if date_from is not None:
        query = query.where(Occurrence.date >= date_from)
    if date_to is not None:
        query = query.where(Occurrence.date <= date_to)
    if status is not None:
        query = query.where(Occurrence.status == status)

    occurrences = db.execute(
        query.order_by(Occurrence.date, RecurringSlot.start_time)
    ).scalars().all()
    return [OccurrenceResponse.model_validate(o) for o in occurrences]


def list_teacher_occurrences(
    db: Session,
    teacher_id: uuid.UUID,
    today: date,
    days_ahead: int = 7,
) -> list[TeacherOccurrenceResponse]:
    """
    Séances à venir des classes d'un enseignant (aujourd'hui → +days_ahead),
    avec effectif et compteurs de présences déjà saisies.
    """
    rows = db.execute(
        select(Occurrence, RecurringSlot, SchoolClass)
        .join(RecurringSlot, RecurringSlot.id == Occurrence.slot_id)
        .join(SchoolClass, SchoolClass.id == RecurringSlot.class_id)
        .join(ClassTeacher, ClassTeacher.class_id == SchoolClass.id)
        .where(
            ClassTeacher.teacher_id == teacher_id,
            Occurrence.date >= today,
            Occurrence.date <= today + timedelta(days=days_ahead),
        )
        .order_by(Occurrence.date, RecurringSlot.start_time)
    ).all()
    if not rows:
        return []

    class_ids = {row[2].id for row in rows}
    enrolled = dict(db.execute(
        select(ClassStudent.class_id, func.count())
        .where(ClassStudent.class_id.in_(class_ids))
        .group_by(ClassStudent.class_id)
    ).all())

    counts: dict[uuid.UUID, dict[AttendanceStatus, int]] = defaultdict(dict)
    for occurrence_id, status, nb in db.execute(
        select(AttendanceRecord.occurrence_id, AttendanceRecord.status, func.count())
        .where(AttendanceRecord.occurrence_id.in_([row[0].id for row in rows]))
        .group_by(AttendanceRecord.occurrence_id, AttendanceRecord.status)
    ).all():
        counts[occurrence_id][AttendanceStatus(status)] = nb

    result = []
    for occurrence, slot, school_class in rows:
        stats = counts.get(occurrence.id, {})
        present = stats.get(AttendanceStatus.PRESENT, 0)
        late = stats.get(AttendanceStatus.LATE, 0)
        result.append(TeacherOccurrenceResponse(
            id=occurrence.id,
            class_id=school_class.id,
            class_name=school_class.name,
            class_code=school_class.code,
            date=occurrence.date,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            status=occurrence.status,
            student_count=enrolled.get(school_class.id, 0),
            attendance_recorded=sum(stats.values()) > 0,
            attended_count=present + late,
            present_count=present,
            late_count=late,
            absent_count=stats.get(AttendanceStatus.ABSENT, 0),
        ))
    return result


def _report(
    requested: int,
    created: list[GeneratedItem],
    skipped: list[GeneratedItem],
    failed: list[GenerationFailure],
) -> GenerationReport:
    return GenerationReport(
        status=batch_status(len(created) + len(skipped), len(failed)),
        requested_slots=requested,
        created=created,
        skipped=skipped,
        failed=failed,
        total_created=len(created),
        total_skipped=len(skipped),
        total_failed=len(failed),
    )
