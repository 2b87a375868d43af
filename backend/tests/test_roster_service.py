"""
Tests unitaires pour l'effectif des classes et la suppression de classe.
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from app.exceptions import ClassInUse, NotFound
from app.schemas.school_class import ClassStudentsEnroll, ClassTeachersAssign
from app.services.roster_service import (
    assign_class_teachers,
    delete_class,
    enroll_students,
    is_class_teacher,
    withdraw_student,
)


# --- Helpers ---

def make_db_mock(school_class=None, ids=None):
    db = MagicMock()
    db.get.return_value = school_class
    db.execute.return_value.scalars.return_value.all.return_value = ids or []
    return db


# --- Schémas ---

def test_enroll_liste_vide_rejetee():
    with pytest.raises(ValidationError):
        ClassStudentsEnroll(student_ids=[])


def test_assign_teachers_dedoublonne():
    tid = uuid.uuid4()
    assert ClassTeachersAssign(teacher_ids=[tid, tid]).teacher_ids == [tid]


# --- Inscriptions ---

def test_enroll_ignore_les_eleves_deja_inscrits():
    deja, nouveau = uuid.uuid4(), uuid.uuid4()
    db = make_db_mock(school_class=MagicMock(), ids=[deja])
    with patch("app.services.roster_service.get_roster") as mock_roster:
        enroll_students(db, uuid.uuid4(), [deja, nouveau])
        mock_roster.assert_called_once()
    mappings = db.bulk_insert_mappings.call_args.args[1]
    assert [m["student_id"] for m in mappings] == [nouveau]
    db.commit.assert_called_once()


def test_enroll_classe_introuvable():
    with pytest.raises(NotFound):
        enroll_students(make_db_mock(None), uuid.uuid4(), [uuid.uuid4()])


def test_assign_teachers_tous_deja_rattaches():
    tid = uuid.uuid4()
    db = make_db_mock(school_class=MagicMock(), ids=[tid])
    with patch("app.services.roster_service.get_roster"):
        assign_class_teachers(db, uuid.uuid4(), [tid])
    db.bulk_insert_mappings.assert_not_called()
    db.commit.assert_not_called()


def test_withdraw_lien_inexistant():
    assert withdraw_student(make_db_mock(None), uuid.uuid4(), uuid.uuid4()) is False


def test_is_class_teacher():
    assert is_class_teacher(make_db_mock(MagicMock()), uuid.uuid4(), uuid.uuid4()) is True
    assert is_class_teacher(make_db_mock(None), uuid.uuid4(), uuid.uuid4()) is False


# --- delete_class ---

def test_delete_class_bloquee_par_des_creneaux():
    db = make_db_mock(school_class=MagicMock(), ids=[uuid.uuid4(), uuid.uuid4()])
    with pytest.raises(ClassInUse) as exc:
        delete_class(db, uuid.uuid4())
    assert "2" in str(exc.value)
    db.delete.assert_not_called()


def test_delete_class_cascade():
    school_class = MagicMock()
    db = make_db_mock(school_class=school_class, ids=[uuid.uuid4()])
    delete_class(db, uuid.uuid4(), cascade=True)
    # lecture des créneaux puis 4 suppressions
    assert db.execute.call_count == 5
    db.delete.assert_called_once_with(school_class)
    db.commit.assert_called_once()


def test_delete_class_sans_creneau():
    school_class = MagicMock()
    db = make_db_mock(school_class=school_class, ids=[])
    delete_class(db, uuid.uuid4())
    db.delete.assert_called_once_with(school_class)


def test_delete_class_erreur_annulee():
    db = make_db_mock(school_class=MagicMock(), ids=[])
    db.commit.side_effect = RuntimeError("panne")
    with pytest.raises(RuntimeError):
        delete_class(db, uuid.uuid4())
    db.rollback.assert_called_once()
