"""
Tests unitaires pour la fusion des créneaux en double.
"""

import uuid
from dataclasses import replace
from datetime import date, datetime, time
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.models.schedule import SlotTeacher
from app.services.consolidation_service import (
    OccurrenceSnapshot,
    SlotSnapshot,
    candidate_slot_ids,
    consolidate_slots,
    group_slots,
    plan_consolidation,
)


CLASS_ID = uuid.uuid4()
T1 = uuid.uuid4()
T2 = uuid.uuid4()
MONDAY = date(2025, 1, 6)
NEXT_MONDAY = date(2025, 1, 13)


# --- Helpers ---

def make_slot(legacy_teacher_id=None, created_at=None, start=time(9, 0), end=time(10, 0), day=1, class_id=CLASS_ID):
    return SlotSnapshot(
        id=uuid.uuid4(),
        class_id=class_id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        legacy_teacher_id=legacy_teacher_id,
        created_at=created_at or datetime(2024, 9, 1),
    )


def make_slot_model(snapshot: SlotSnapshot):
    slot = MagicMock()
    for field in ("id", "class_id", "day_of_week", "start_time", "end_time",
                  "legacy_teacher_id", "created_at", "created_by"):
        setattr(slot, field, getattr(snapshot, field))
    return slot


def result(scalars=None, rows=None):
    r = MagicMock()
    r.scalars.return_value.all.return_value = scalars or []
    r.all.return_value = rows or []
    return r


def make_db_mock(*results):
    """Les premiers appels à db.execute renvoient les résultats fournis, les suivants un mock vide."""
    db = MagicMock()
    queue = list(results)
    db.execute.side_effect = lambda *args, **kwargs: queue.pop(0) if queue else MagicMock()
    return db


def legacy_pair():
    """Deux créneaux identiques : le plus ancien porte T1, le plus récent T2, chacun une séance sans enseignant."""
    a = make_slot(legacy_teacher_id=T1, created_at=datetime(2024, 9, 1))
    b = make_slot(legacy_teacher_id=T2, created_at=datetime(2024, 9, 2))
    occurrences = [
        OccurrenceSnapshot(slot_id=a.id, date=MONDAY),
        OccurrenceSnapshot(slot_id=b.id, date=NEXT_MONDAY),
    ]
    return a, b, occurrences


# --- Regroupement ---

def test_group_slots_trie_du_plus_ancien_au_plus_recent():
    recent = make_slot(created_at=datetime(2024, 9, 5))
    ancien = make_slot(created_at=datetime(2024, 9, 1))
    groups = group_slots([recent, ancien])
    assert list(groups.values()) == [[ancien, recent]]


def test_group_slots_cles_horaires_distinctes():
    matin = make_slot(start=time(9, 0), end=time(10, 0))
    aprem = make_slot(start=time(14, 0), end=time(15, 0))
    mardi = make_slot(day=2)
    assert len(group_slots([matin, aprem, mardi])) == 3


def test_candidate_slot_ids_ignore_creneau_deja_fusionne():
    seul = make_slot()
    assert candidate_slot_ids([seul]) == set()


def test_candidate_slot_ids_inclut_legacy_et_doublons():
    a, b, _ = legacy_pair()
    isole = make_slot(legacy_teacher_id=T1, day=3)
    assert candidate_slot_ids([a, b, isole]) == {a.id, b.id, isole.id}


# --- plan_consolidation ---

def test_plan_fusion_deux_creneaux_legacy():
    """Le plus ancien est conservé, reçoit T1 et T2, la séance du doublon est repointée."""
    a, b, occurrences = legacy_pair()
    plan = plan_consolidation([b, a], [], occurrences)

    assert plan.groups_found == 1
    assert len(plan.groups) == 1
    group = plan.groups[0]
    assert group.keeper == a
    assert group.duplicates == [b]
    assert group.teachers_to_add == [T1, T2]
    assert group.occurrences_repointed == 1
    assert group.occurrences_backfilled == 2
    assert not group.is_blocked


def test_plan_enseignant_deja_affecte_non_reajoute():
    a, b, occurrences = legacy_pair()
    plan = plan_consolidation([a, b], [(a.id, T1)], occurrences)
    assert plan.groups[0].teachers_to_add == [T2]


def test_plan_seance_avec_enseignant_non_completee():
    a = make_slot(created_at=datetime(2024, 9, 1))
    b = make_slot(legacy_teacher_id=T2, created_at=datetime(2024, 9, 2))
    occurrences = [OccurrenceSnapshot(slot_id=b.id, date=MONDAY, teacher_id=T1)]
    group = plan_consolidation([a, b], [], occurrences).groups[0]
    assert group.occurrences_repointed == 1
    assert group.occurrences_backfilled == 0


def test_plan_seconde_execution_sans_effet():
    """Après fusion : un seul créneau, legacy vidé, enseignants affectés → aucun groupe à traiter."""
    a, _, _ = legacy_pair()
    merged = replace(a, legacy_teacher_id=None)
    plan = plan_consolidation([merged], [(a.id, T1), (a.id, T2)], [OccurrenceSnapshot(a.id, MONDAY, T1)])
    assert plan.groups_found == 1
    assert plan.groups == []


def test_plan_seance_du_doublon_sans_legacy_reste_sans_enseignant():
    """L'enseignant legacy du keeper ne complète que les séances du keeper, pas celles repointées."""
    a = make_slot(legacy_teacher_id=T1, created_at=datetime(2024, 9, 1))
    b = make_slot(created_at=datetime(2024, 9, 2))
    occurrences = [
        OccurrenceSnapshot(slot_id=a.id, date=MONDAY),
        OccurrenceSnapshot(slot_id=b.id, date=NEXT_MONDAY),
    ]
    group = plan_consolidation([a, b], [], occurrences).groups[0]
    assert group.occurrences_repointed == 1
    assert group.occurrences_backfilled == 1


def test_plan_creneau_unique_legacy_complete_ses_seances():
    seul = make_slot(legacy_teacher_id=T1)
    occurrences = [
        OccurrenceSnapshot(slot_id=seul.id, date=MONDAY),
        OccurrenceSnapshot(slot_id=seul.id, date=NEXT_MONDAY, teacher_id=T2),
    ]
    group = plan_consolidation([seul], [], occurrences).groups[0]
    assert group.duplicates == []
    assert group.teachers_to_add == [T1]
    assert group.occurrences_backfilled == 1


def test_plan_conflit_de_dates_bloque_le_groupe():
    a, b, _ = legacy_pair()
    occurrences = [
        OccurrenceSnapshot(slot_id=a.id, date=MONDAY),
        OccurrenceSnapshot(slot_id=b.id, date=MONDAY),
    ]
    group = plan_consolidation([a, b], [], occurrences).groups[0]
    assert group.is_blocked
    assert group.conflicting_dates == [MONDAY]


def test_plan_aucun_creneau():
    plan = plan_consolidation([], [], [])
    assert plan.groups_found == 0
    assert plan.groups == []


# --- consolidate_slots ---

def make_consolidation_db(a, b, occurrences, assignments=()):
    return make_db_mock(
        result(scalars=[make_slot_model(a), make_slot_model(b)]),
        result(rows=list(assignments)),
        result(rows=[(o.slot_id, o.date, o.teacher_id) for o in occurrences]),
    )


def test_consolidate_dry_run_ne_modifie_rien():
    a, b, occurrences = legacy_pair()
    db = make_consolidation_db(a, b, occurrences)

    report = consolidate_slots(db, dry_run=True)

    assert report.dry_run is True
    assert report.groups_merged == 1
    assert report.duplicates_deleted == 1
    assert report.teachers_added == 2
    db.add.assert_not_called()
    db.commit.assert_not_called()


def test_consolidate_applique_dans_une_transaction():
    a, b, occurrences = legacy_pair()
    db = make_consolidation_db(a, b, occurrences)

    report = consolidate_slots(db)

    assert report.dry_run is False
    assert report.occurrences_repointed == 1
    assert report.occurrences_backfilled == 2
    added = [c.args[0] for c in db.add.call_args_list]
    assert all(isinstance(x, SlotTeacher) for x in added)
    assert {x.teacher_id for x in added} == {T1, T2}
    assert all(x.slot_id == a.id for x in added)
    db.commit.assert_called_once()
    db.rollback.assert_not_called()


def test_consolidate_groupe_bloque_laisse_intact():
    a, b, _ = legacy_pair()
    occurrences = [
        OccurrenceSnapshot(slot_id=a.id, date=MONDAY),
        OccurrenceSnapshot(slot_id=b.id, date=MONDAY),
    ]
    db = make_consolidation_db(a, b, occurrences)

    report = consolidate_slots(db)

    assert report.groups_merged == 0
    assert report.groups_skipped == 1
    assert report.conflicts[0].keeper_id == a.id
    assert report.conflicts[0].duplicate_ids == [b.id]
    assert report.conflicts[0].dates == [MONDAY]
    db.commit.assert_not_called()


def test_consolidate_erreur_annule_tout():
    a, b, occurrences = legacy_pair()
    db = make_consolidation_db(a, b, occurrences)
    db.flush.side_effect = SQLAlchemyError("panne")

    with pytest.raises(SQLAlchemyError):
        consolidate_slots(db)

    db.rollback.assert_called_once()
    db.commit.assert_not_called()


def test_consolidate_base_vide():
    db = make_db_mock(result(scalars=[]))
    report = consolidate_slots(db)
    assert report.groups_found == 0
    assert report.groups_merged == 0
    db.commit.assert_not_called()
