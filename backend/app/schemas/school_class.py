"""
Schémas Pydantic pour l'effectif des classes (élèves inscrits, enseignants rattachés).
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel, field_validator


class RosterStudent(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: Optional[str]

    model_config = {"from_attributes": True}


class ClassRosterResponse(BaseModel):
    class_id: uuid.UUID
    students: List[RosterStudent]
    teacher_ids: List[uuid.UUID]


class ClassStudentsEnroll(BaseModel):
    """Corps de requête pour inscrire des élèves dans une classe."""
    student_ids: List[uuid.UUID]

    @field_validator("student_ids")
    @classmethod
    def not_empty(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        if not v:
            raise ValueError("La liste d'élèves ne peut pas être vide.")
        return list(dict.fromkeys(v))


class ClassTeachersAssign(BaseModel):
    """Corps de requête pour rattacher des enseignants à une classe."""
    teacher_ids: List[uuid.UUID]

    @field_validator("teacher_ids")
    @classmethod
    def not_empty(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        if not v:
            raise ValueError("La liste d'enseignants ne peut pas être vide.")
        return list(dict.fromkeys(v))
