"""
Fusion des créneaux en double.

Historique : chaque enseignant d'un même horaire avait son propre créneau
(colonne legacy_teacher_id) au lieu d'un créneau unique avec plusieurs
enseignants. La fusion regroupe les créneaux par (classe, jour, début, fin) :
- le plus ancien devient le créneau conservé (keeper) ;
- tous les enseignants du groupe lui sont affectés (insertion idempotente) ;
- les séances des doublons sont repointées vers lui, leur enseignant vide est
  renseigné depuis le legacy_teacher_id du doublon ;
- les doublons sont supprimés ;
- les séances propres au keeper sans enseignant reçoivent son legacy_teacher_id.
legacy_teacher_id est ensuite vidé : une seconde exécution ne trouve plus rien à faire.

Le plan est calculé par une fonction pure sur un instantané des données,
puis appliqué dans une seule transaction.
"""

import uuid
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.models.occurrence import Occurrence
from app.models.schedule import RecurringSlot, SlotTeacher
from app.schemas.schedule import ConsolidationConflict, ConsolidationReport

logger = logging.getLogger(__name__)

TimeKey = tuple[uuid.UUID, int, time, time]


@dataclass(frozen=True)
class SlotSnapshot:
    id: uuid.UUID
    class_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    legacy_teacher_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None

    @property
    def time_key(self) -> TimeKey:
        return (self.class_id, self.day_of_week, self.start_time, self.end_time)

    @classmethod
    def from_model(cls, slot: RecurringSlot) -> "SlotSnapshot":
        return cls(
            id=slot.id,
            class_id=slot.class_id,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            legacy_teacher_id=slot.legacy_teacher_id,
            created_at=slot.created_at,
            created_by=slot.created_by,
        )


@dataclass(frozen=True)
class OccurrenceSnapshot:
    slot_id: uuid.UUID
    date: date
    teacher_id: Optional[uuid.UUID] = None


@dataclass
class GroupPlan:
    keeper: SlotSnapshot
    duplicates: list[SlotSnapshot]
    teachers_to_add: list[uuid.UUID]
    occurrences_repointed: int = 0
    occurrences_backfilled: int = 0
    # Dates où keeper et doublon ont chacun une séance : repointer violerait (slot, date)
    conflicting_dates: list[date] = field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return bool(self.conflicting_dates)


@dataclass
class ConsolidationPlan:
    groups_found: int
    groups: list[GroupPlan]


def group_slots(slots: Iterable[SlotSnapshot]) -> dict[TimeKey, list[SlotSnapshot]]:
    """Regroupe par clé horaire, chaque groupe trié du plus ancien au plus récent."""
    ordered = sorted(slots, key=lambda s: (s.created_at or datetime.min, str(s.id)))
    groups: dict[TimeKey, list[SlotSnapshot]] = {}
    for slot in ordered:
        groups.setdefault(slot.time_key, []).append(slot)
    return groups


def candidate_slot_ids(slots: Iterable[SlotSnapshot]) -> set[uuid.UUID]:
    """Créneaux concernés par la fusion : membres d'un groupe > 1 ou porteurs d'un legacy_teacher_id."""
    ids: set[uuid.UUID] = set()
    for members in group_slots(slots).values():
        if len(members) > 1 or members[0].legacy_teacher_id is not None:
            ids.update(m.id for m in members)
    return ids


def plan_consolidation(
    slots: Iterable[SlotSnapshot],
    assignments: Iterable[tuple[uuid.UUID, uuid.UUID]],
    occurrences: Iterable[OccurrenceSnapshot] = (),
) -> ConsolidationPlan:
    """
    Calcule le plan de fusion sans rien écrire.

    assignments : couples (slot_id, teacher_id) existants.
    occurrences : séances des créneaux concernés (voir candidate_slot_ids).
    Un groupe déjà fusionné (un seul créneau, sans legacy_teacher_id) ne produit aucune étape.
    """
    groups = group_slots(slots)

    assigned: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
    for slot_id, teacher_id in assignments:
        assigned[slot_id].add(teacher_id)

    by_slot: dict[uuid.UUID, list[OccurrenceSnapshot]] = defaultdict(list)
    for occ in occurrences:
        by_slot[occ.slot_id].append(occ)

    plans: list[GroupPlan] = []
    for members in groups.values():
        keeper, duplicates = members[0], members[1:]
        if not duplicates and keeper.legacy_teacher_id is None:
            continue

        # Union ordonnée des enseignants du groupe (legacy puis affectations)
        teachers: list[uuid.UUID] = []
        for member in members:
            candidates = [member.legacy_teacher_id] if member.legacy_teacher_id else []
            candidates += sorted(assigned[member.id], key=str)
            for teacher_id in candidates:
                if teacher_id not in teachers:
                    teachers.append(teacher_id)

        group = GroupPlan(
            keeper=keeper,
            duplicates=duplicates,
            teachers_to_add=[t for t in teachers if t not in assigned[keeper.id]],
        )

        if keeper.legacy_teacher_id is not None:
            group.occurrences_backfilled += sum(1 for o in by_slot[keeper.id] if o.teacher_id is None)

        seen_dates = {o.date for o in by_slot[keeper.id]}
        conflicts: set[date] = set()
        for dup in duplicates:
            for occ in by_slot[dup.id]:
                if occ.date in seen_dates:
                    conflicts.add(occ.date)
                seen_dates.add(occ.date)
                group.occurrences_repointed += 1
                if occ.teacher_id is None and dup.legacy_teacher_id is not None:
                    group.occurrences_backfilled += 1
        group.conflicting_dates = sorted(conflicts)

        plans.append(group)

    return ConsolidationPlan(groups_found=len(groups), groups=plans)


def consolidate_slots(db: Session, dry_run: bool = False) -> ConsolidationReport:
    """
    Fusionne les créneaux en double dans une transaction unique.

    dry_run=True : calcule et renvoie le rapport sans écrire.
    Les groupes bloqués (séances à la même date sur keeper et doublon) sont
    laissés intacts et listés dans le rapport pour correction manuelle.
    """
    slots = [
        SlotSnapshot.from_model(s)
        for s in db.execute(
            select(RecurringSlot).order_by(RecurringSlot.created_at, RecurringSlot.id)
        ).scalars().all()
    ]
    candidates = candidate_slot_ids(slots)

    assignments: list[tuple[uuid.UUID, uuid.UUID]] = []
    occurrences: list[OccurrenceSnapshot] = []
    if candidates:
        assignments = [
            (row[0], row[1])
            for row in db.execute(
                select(SlotTeacher.slot_id, SlotTeacher.teacher_id)
                .where(SlotTeacher.slot_id.in_(candidates))
            ).all()
        ]
        occurrences = [
            OccurrenceSnapshot(slot_id=row[0], date=row[1], teacher_id=row[2])
            for row in db.execute(
                select(Occurrence.slot_id, Occurrence.date, Occurrence.teacher_id)
                .where(Occurrence.slot_id.in_(candidates))
            ).all()
        ]

    plan = plan_consolidation(slots, assignments, occurrences)
    applicable = [g for g in plan.groups if not g.is_blocked]
    blocked = [g for g in plan.groups if g.is_blocked]

    report = ConsolidationReport(
        dry_run=dry_run,
        groups_found=plan.groups_found,
        groups_merged=sum(1 for g in applicable if g.duplicates),
        groups_skipped=len(blocked),
        teachers_added=sum(len(g.teachers_to_add) for g in applicable),
        duplicates_deleted=sum(len(g.duplicates) for g in applicable),
        occurrences_repointed=sum(g.occurrences_repointed for g in applicable),
        occurrences_backfilled=sum(g.occurrences_backfilled for g in applicable),
        conflicts=[
            ConsolidationConflict(
                keeper_id=g.keeper.id,
                duplicate_ids=[d.id for d in g.duplicates],
                dates=g.conflicting_dates,
            )
            for g in blocked
        ],
    )

    for group in blocked:
        logger.warning(
            "Fusion impossible pour le créneau %s : séances en double aux dates %s",
            group.keeper.id, ", ".join(d.isoformat() for d in group.conflicting_dates),
        )

    if dry_run or not applicable:
        logger.info("Fusion des créneaux (dry_run=%s) : %s", dry_run, report.model_dump(exclude={"conflicts"}))
        return report

    try:
        for group in applicable:
            _apply_group(db, group)
        db.commit()
    except Exception:
        db.rollback()
        logger.error("Fusion des créneaux annulée, aucune modification enregistrée.", exc_info=True)
        raise

    logger.info(
        "Fusion des créneaux terminée : %d groupe(s) fusionné(s), %d doublon(s) supprimé(s), "
        "%d enseignant(s) ajouté(s), %d séance(s) repointée(s), %d séance(s) complétée(s)",
        report.groups_merged, report.duplicates_deleted, report.teachers_added,
        report.occurrences_repointed, report.occurrences_backfilled,
    )
    return report


def _apply_group(db: Session, group: GroupPlan) -> None:
    keeper = group.keeper

    for teacher_id in group.teachers_to_add:
        db.add(SlotTeacher(slot_id=keeper.id, teacher_id=teacher_id, assigned_by=keeper.created_by))
    db.flush()

    # Séances propres au keeper d'abord : celles des doublons gardent leur propre enseignant
    if keeper.legacy_teacher_id is not None:
        db.execute(
            update(Occurrence)
            .where(Occurrence.slot_id == keeper.id, Occurrence.teacher_id.is_(None))
            .values(teacher_id=keeper.legacy_teacher_id)
        )

    for dup in group.duplicates:
        if dup.legacy_teacher_id is not None:
            db.execute(
                update(Occurrence)
                .where(Occurrence.slot_id == dup.id, Occurrence.teacher_id.is_(None))
                .values(teacher_id=dup.legacy_teacher_id)
            )
        db.execute(
            update(Occurrence)
            .where(Occurrence.slot_id == dup.id)
            .values(slot_id=keeper.id)
        )
        db.execute(delete(SlotTeacher).where(SlotTeacher.slot_id == dup.id))
        db.execute(delete(RecurringSlot).where(RecurringSlot.id == dup.id))

    db.execute(
        update(RecurringSlot)
        .where(RecurringSlot.id == keeper.id)
        .values(legacy_teacher_id=None)
    )
    logger.debug(
        "Groupe fusionné : keeper %s, %d doublon(s), %d enseignant(s) ajouté(s)",
        keeper.id, len(group.duplicates), len(group.teachers_to_add),
    )
