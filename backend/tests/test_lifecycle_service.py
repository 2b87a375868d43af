"""
Tests unitaires pour le cycle de vie des séances.
"""

import logging
import uuid
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.exceptions import InvalidStatus, NotFound, OccurrenceNotFound
from app.models.enums import OccurrenceStatus
from app.models.occurrence import Occurrence
from app.services.lifecycle_service import (
    cancel_occurrence,
    complete_occurrence,
    parse_status,
    start_occurrence,
    transition,
)


# --- Helpers ---

def make_occurrence(status=OccurrenceStatus.SCHEDULED) -> Occurrence:
    return Occurrence(
        id=uuid.uuid4(),
        slot_id=uuid.uuid4(),
        date=date(2025, 1, 6),
        status=status,
    )


def make_db_mock(occurrence=None):
    db = MagicMock()
    db.get.return_value = occurrence
    return db


# --- parse_status ---

def test_parse_status_valeurs_acceptees():
    assert parse_status("in_progress") == OccurrenceStatus.IN_PROGRESS
    assert parse_status(OccurrenceStatus.CANCELLED) == OccurrenceStatus.CANCELLED


def test_parse_status_inconnu():
    with pytest.raises(InvalidStatus) as exc:
        parse_status("done")
    assert "done" in str(exc.value)


# --- transition ---

def test_transition_statut_invalide_sans_lecture():
    db = make_db_mock(make_occurrence())
    with pytest.raises(InvalidStatus):
        transition(db, uuid.uuid4(), "finished", uuid.uuid4())
    db.get.assert_not_called()
    db.commit.assert_not_called()


def test_transition_seance_introuvable():
    db = make_db_mock(None)
    with pytest.raises(OccurrenceNotFound):
        transition(db, uuid.uuid4(), "completed", uuid.uuid4())


def test_seance_introuvable_est_un_not_found():
    assert issubclass(OccurrenceNotFound, NotFound)


def test_start_horodate_le_debut():
    occurrence = make_occurrence(OccurrenceStatus.NOT_STARTED)
    actor_id = uuid.uuid4()
    db = make_db_mock(occurrence)

    response = start_occurrence(db, occurrence.id, actor_id)

    assert response.status == OccurrenceStatus.IN_PROGRESS
    assert occurrence.actual_start_at is not None
    assert occurrence.started_by == actor_id
    assert occurrence.actual_end_at is None
    assert occurrence.updated_at is not None
    db.commit.assert_called_once()


def test_complete_horodate_la_fin():
    occurrence = make_occurrence(OccurrenceStatus.IN_PROGRESS)
    actor_id = uuid.uuid4()
    db = make_db_mock(occurrence)

    response = complete_occurrence(db, occurrence.id, actor_id)

    assert response.status == OccurrenceStatus.COMPLETED
    assert occurrence.actual_end_at is not None
    assert occurrence.completed_by == actor_id


def test_cancel_enregistre_le_motif():
    occurrence = make_occurrence()
    db = make_db_mock(occurrence)

    response = cancel_occurrence(db, occurrence.id, uuid.uuid4(), reason="Enseignant malade")

    assert response.status == OccurrenceStatus.CANCELLED
    assert response.cancellation_reason == "Enseignant malade"


def test_cancel_sans_motif():
    occurrence = make_occurrence()
    db = make_db_mock(occurrence)
    response = cancel_occurrence(db, occurrence.id, uuid.uuid4())
    assert response.cancellation_reason is None


def test_transition_not_started_sans_horodatage():
    occurrence = make_occurrence()
    db = make_db_mock(occurrence)

    transition(db, occurrence.id, "not_started", uuid.uuid4())

    assert occurrence.status == OccurrenceStatus.NOT_STARTED
    assert occurrence.actual_start_at is None
    assert occurrence.actual_end_at is None


def test_sortie_etat_terminal_acceptee_et_journalisee(caplog):
    occurrence = make_occurrence(OccurrenceStatus.COMPLETED)
    db = make_db_mock(occurrence)

    with caplog.at_level(logging.WARNING, logger="app.services.lifecycle_service"):
        response = transition(db, occurrence.id, "scheduled", uuid.uuid4())

    assert response.status == OccurrenceStatus.SCHEDULED
    assert "terminal" in caplog.text


def test_transition_erreur_base_annulee():
    occurrence = make_occurrence()
    db = make_db_mock(occurrence)
    db.commit.side_effect = SQLAlchemyError("panne")

    with pytest.raises(SQLAlchemyError):
        transition(db, occurrence.id, "in_progress", uuid.uuid4())
    db.rollback.assert_called_once()
