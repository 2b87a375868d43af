"""
Identité de l'appelant.

L'authentification est faite en amont (passerelle / SSO) qui transmet l'acteur
dans les en-têtes X-Actor-Id et X-Actor-Role. Le moteur fait confiance à ces valeurs.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel

from app.models.enums import UserRole


class Actor(BaseModel):
    id: uuid.UUID
    role: UserRole


def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """Dépendance FastAPI : construit l'acteur depuis les en-têtes, 401 si absent ou invalide."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Identité de l'appelant manquante.")
    try:
        return Actor(id=uuid.UUID(x_actor_id), role=UserRole(x_actor_role.strip().upper()))
    except ValueError:
        raise HTTPException(status_code=401, detail="Identité de l'appelant invalide.")


def require_roles(*roles: UserRole):
    """Fabrique une dépendance qui refuse (403) les acteurs hors des rôles donnés."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="Action non autorisée pour ce rôle.")
        return actor

    return dependency
