"""
Tests unitaires pour le service des créneaux récurrents.
"""

import uuid
from datetime import time
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from app.exceptions import InvalidSlot, NotFound, SlotConflict, SlotInUse
from app.schemas.schedule import SlotCreate, SlotUpdate
from app.services.schedule_service import (
    add_teacher,
    create_slot,
    delete_slot,
    get_slot_or_raise,
    remove_teacher,
    update_slot,
)


CLASS_ID = uuid.uuid4()


# --- Helpers ---

def make_slot_mock(slot_id=None, day=1, start=time(9, 0), end=time(10, 0)):
    slot = MagicMock()
    slot.id = slot_id or uuid.uuid4()
    slot.class_id = CLASS_ID
    slot.day_of_week = day
    slot.start_time = start
    slot.end_time = end
    return slot


def make_db_mock(get=None, scalar_value=None):
    db = MagicMock()
    db.get.return_value = get
    db.execute.return_value.scalars.return_value.all.return_value = []
    db.execute.return_value.scalar.return_value = scalar_value
    return db


def slot_create(**kwargs) -> SlotCreate:
    data = {
        "class_id": CLASS_ID,
        "day_of_week": 1,
        "start_time": time(9, 0),
        "end_time": time(10, 0),
        "location": "B204",
    }
    data.update(kwargs)
    return SlotCreate(**data)


# --- Validation des schémas ---

def test_slot_create_debut_apres_fin_rejete():
    with pytest.raises(ValidationError):
        slot_create(start_time=time(10, 0), end_time=time(9, 0))


def test_slot_create_jour_hors_bornes_rejete():
    with pytest.raises(ValidationError):
        slot_create(day_of_week=7)


def test_slot_create_enseignants_dedoublonnes():
    tid = uuid.uuid4()
    assert slot_create(teacher_ids=[tid, tid]).teacher_ids == [tid]


@pytest.mark.parametrize("field", ["day_of_week", "start_time", "end_time", "is_active"])
def test_slot_update_null_explicite_rejete(field):
    with pytest.raises(ValidationError):
        SlotUpdate(**{field: None})


def test_slot_update_champs_absents_acceptes():
    assert SlotUpdate(location=None).model_dump(exclude_unset=True) == {"location": None}


# --- create_slot ---

def test_create_slot_classe_introuvable():
    db = make_db_mock(get=None)
    with pytest.raises(NotFound):
        create_slot(db, slot_create())
    db.add.assert_not_called()


def test_create_slot_horaire_deja_pris():
    db = make_db_mock(get=MagicMock(), scalar_value=uuid.uuid4())
    with pytest.raises(SlotConflict):
        create_slot(db, slot_create())
    db.add.assert_not_called()


def test_create_slot_succes_avec_enseignants():
    db = make_db_mock(get=MagicMock(), scalar_value=None)
    t1, t2 = uuid.uuid4(), uuid.uuid4()
    db.execute.return_value.scalars.return_value.all.return_value = [t1, t2]
    with patch("app.services.schedule_service._to_response") as mock_resp:
        mock_resp.return_value = MagicMock()
        create_slot(db, slot_create(teacher_ids=[t1, t2]), created_by=uuid.uuid4())

    db.add.assert_called_once()
    db.flush.assert_called_once()
    mappings = db.bulk_insert_mappings.call_args.args[1]
    assert [m["teacher_id"] for m in mappings] == [t1, t2]
    db.commit.assert_called_once()


def test_create_slot_sans_enseignant():
    db = make_db_mock(get=MagicMock(), scalar_value=None)
    with patch("app.services.schedule_service._to_response"):
        create_slot(db, slot_create())
    db.bulk_insert_mappings.assert_not_called()


def test_create_slot_conflit_concurrent():
    db = make_db_mock(get=MagicMock(), scalar_value=None)
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("uq_recurring_slot_time_key"))
    with pytest.raises(SlotConflict):
        create_slot(db, slot_create())
    db.rollback.assert_called_once()


def test_create_slot_enseignant_introuvable():
    db = make_db_mock(get=MagicMock(), scalar_value=None)
    connu, inconnu = uuid.uuid4(), uuid.uuid4()
    db.execute.return_value.scalars.return_value.all.return_value = [connu]
    with pytest.raises(NotFound) as exc:
        create_slot(db, slot_create(teacher_ids=[connu, inconnu]))
    assert "Enseignant" in str(exc.value)
    db.add.assert_not_called()


def test_create_slot_autre_violation_non_convertie_en_conflit():
    db = make_db_mock(get=MagicMock(), scalar_value=None)
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))
    with pytest.raises(IntegrityError):
        create_slot(db, slot_create())
    db.rollback.assert_called_once()


# --- get / update ---

def test_get_slot_introuvable():
    with pytest.raises(NotFound):
        get_slot_or_raise(make_db_mock(get=None), uuid.uuid4())


def test_update_slot_debut_apres_fin():
    db = make_db_mock(get=make_slot_mock())
    with pytest.raises(InvalidSlot):
        update_slot(db, uuid.uuid4(), SlotUpdate(start_time=time(11, 0)))
    db.commit.assert_not_called()


def test_update_slot_horaire_deja_pris():
    db = make_db_mock(get=make_slot_mock(), scalar_value=uuid.uuid4())
    with pytest.raises(SlotConflict):
        update_slot(db, uuid.uuid4(), SlotUpdate(day_of_week=2))


def test_update_slot_salle_sans_controle_horaire():
    slot = make_slot_mock()
    db = make_db_mock(get=slot, scalar_value=uuid.uuid4())
    with patch("app.services.schedule_service._to_response"):
        update_slot(db, slot.id, SlotUpdate(location="A101"))
    assert slot.location == "A101"
    db.commit.assert_called_once()


def test_update_slot_remplace_les_enseignants():
    slot = make_slot_mock()
    db = make_db_mock(get=slot)
    tid = uuid.uuid4()
    db.execute.return_value.scalars.return_value.all.return_value = [tid]
    with patch("app.services.schedule_service._to_response"):
        update_slot(db, slot.id, SlotUpdate(teacher_ids=[tid]))
    mappings = db.bulk_insert_mappings.call_args.args[1]
    assert mappings == [{"slot_id": slot.id, "teacher_id": tid, "assigned_by": None}]


def test_update_slot_enseignant_introuvable():
    slot = make_slot_mock()
    db = make_db_mock(get=slot)
    with pytest.raises(NotFound):
        update_slot(db, slot.id, SlotUpdate(teacher_ids=[uuid.uuid4()]))
    db.commit.assert_not_called()


# --- delete_slot ---

def test_delete_slot_reference_par_des_seances():
    db = make_db_mock(get=make_slot_mock(), scalar_value=3)
    with pytest.raises(SlotInUse) as exc:
        delete_slot(db, uuid.uuid4())
    assert "3" in str(exc.value)
    db.delete.assert_not_called()


def test_delete_slot_cascade():
    slot = make_slot_mock()
    db = make_db_mock(get=slot, scalar_value=3)
    delete_slot(db, slot.id, cascade=True)
    db.delete.assert_called_once_with(slot)
    db.commit.assert_called_once()


def test_delete_slot_sans_seance():
    slot = make_slot_mock()
    db = make_db_mock(get=slot, scalar_value=0)
    delete_slot(db, slot.id)
    db.delete.assert_called_once_with(slot)


# --- Enseignants ---

def test_add_teacher_deja_affecte_sans_effet():
    db = make_db_mock(get=make_slot_mock(), scalar_value=MagicMock())
    with patch("app.services.schedule_service._to_response"):
        add_teacher(db, uuid.uuid4(), uuid.uuid4())
    db.add.assert_not_called()
    db.commit.assert_not_called()


def test_add_teacher_nouveau():
    db = make_db_mock(get=make_slot_mock(), scalar_value=None)
    with patch("app.services.schedule_service._to_response"):
        add_teacher(db, uuid.uuid4(), uuid.uuid4())
    db.add.assert_called_once()
    db.commit.assert_called_once()


def test_add_teacher_enseignant_introuvable():
    db = make_db_mock(scalar_value=None)
    db.get.side_effect = [make_slot_mock(), None]
    with pytest.raises(NotFound):
        add_teacher(db, uuid.uuid4(), uuid.uuid4())
    db.add.assert_not_called()


def test_add_teacher_affectation_concurrente_sans_erreur():
    db = make_db_mock(get=make_slot_mock(), scalar_value=None)
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("uq_slot_teacher"))
    with patch("app.services.schedule_service._to_response"):
        add_teacher(db, uuid.uuid4(), uuid.uuid4())
    db.rollback.assert_called_once()


def test_add_teacher_autre_violation_propagee():
    db = make_db_mock(get=make_slot_mock(), scalar_value=None)
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))
    with pytest.raises(IntegrityError):
        add_teacher(db, uuid.uuid4(), uuid.uuid4())
    db.rollback.assert_called_once()


def test_remove_teacher_lien_inexistant():
    db = make_db_mock(scalar_value=None)
    assert remove_teacher(db, uuid.uuid4(), uuid.uuid4()) is False


def test_remove_teacher_succes():
    link = MagicMock()
    db = make_db_mock(scalar_value=link)
    assert remove_teacher(db, uuid.uuid4(), uuid.uuid4()) is True
    db.delete.assert_called_once_with(link)
