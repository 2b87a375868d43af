"""
Configuration partagée pour tous les tests.
Override la dépendance get_db pour éviter toute connexion réelle à PostgreSQL.
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from app.database import get_db
from app.main import app


@pytest.fixture
def mock_db():
    """Session SQLAlchemy mockée, partagée entre le client et le test."""
    return MagicMock()


@pytest.fixture
def client(mock_db):
    """Client HTTP de test avec la BDD mockée."""
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def actor_headers():
    """Fabrique les en-têtes d'identité transmis par la passerelle (X-Actor-Id / X-Actor-Role)."""

    def make(role: str, actor_id=None) -> dict:
        return {"X-Actor-Id": str(actor_id or uuid.uuid4()), "X-Actor-Role": role}

    return make
