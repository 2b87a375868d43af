"""
Schémas Pydantic pour les créneaux récurrents et la fusion des doublons.
"""

import uuid
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class SlotCreate(BaseModel):
    class_id: uuid.UUID
    day_of_week: int = Field(ge=0, le=6)  # 0 = dimanche … 6 = samedi
    start_time: time
    end_time: time
    location: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True
    teacher_ids: List[uuid.UUID] = []

    @model_validator(mode="after")
    def start_before_end(self) -> "SlotCreate":
        if self.start_time >= self.end_time:
            raise ValueError("L'heure de début doit précéder l'heure de fin.")
        return self

    @field_validator("teacher_ids")
    @classmethod
    def dedupe_teachers(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        return list(dict.fromkeys(v))


class SlotUpdate(BaseModel):
    """Champs modifiables. teacher_ids fourni → remplace l'ensemble des enseignants."""
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    teacher_ids: Optional[List[uuid.UUID]] = None

    @field_validator("day_of_week", "start_time", "end_time", "is_active")
    @classmethod
    def not_null(cls, v):
        # Absent → inchangé ; null explicite → refusé (colonnes NOT NULL)
        if v is None:
            raise ValueError("Ce champ ne peut pas être null.")
        return v

    @field_validator("teacher_ids")
    @classmethod
    def dedupe_teachers(cls, v: Optional[List[uuid.UUID]]) -> Optional[List[uuid.UUID]]:
        return list(dict.fromkeys(v)) if v is not None else v


class SlotTeacherAdd(BaseModel):
    teacher_id: uuid.UUID


class TeacherAssignmentResponse(BaseModel):
    teacher_id: uuid.UUID
    assigned_at: Optional[datetime]
    assigned_by: Optional[uuid.UUID]

    model_config = {"from_attributes": True}


class SlotResponse(BaseModel):
    id: uuid.UUID
    class_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    location: Optional[str]
    notes: Optional[str]
    is_active: bool
    created_by: Optional[uuid.UUID]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    teachers: List[TeacherAssignmentResponse]


class ConsolidationConflict(BaseModel):
    """Groupe non fusionné : keeper et doublon ont une séance à la même date."""
    keeper_id: uuid.UUID
    duplicate_ids: List[uuid.UUID]
    dates: List[date]


class ConsolidationReport(BaseModel):
    """Rapport de fusion des créneaux en double."""
    dry_run: bool
    groups_found: int            # Clés (classe, jour, début, fin) distinctes
    groups_merged: int           # Groupes ayant au moins un doublon supprimé
    groups_skipped: int = 0      # Groupes bloqués par un conflit de dates
    teachers_added: int
    duplicates_deleted: int
    occurrences_repointed: int
    occurrences_backfilled: int  # Séances dont teacher_id était vide et a été renseigné
    conflicts: List[ConsolidationConflict] = []
