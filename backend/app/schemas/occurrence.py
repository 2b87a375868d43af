"""
Schémas Pydantic pour les séances : génération, création ponctuelle, changement de statut.
"""

import uuid
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, field_validator, model_validator

from app.config import settings
from app.models.enums import OccurrenceStatus
from app.schemas.batch import BatchStatus


class GenerateRequest(BaseModel):
    """Corps de requête pour générer les séances d'un ensemble de créneaux sur une période."""
    slot_ids: List[uuid.UUID]
    start_date: date
    end_date: date  # Inclusive. end < start → aucune séance, pas d'erreur

    @field_validator("slot_ids")
    @classmethod
    def dedupe_slots(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def range_not_too_long(self) -> "GenerateRequest":
        span = (self.end_date - self.start_date).days + 1
        if span > settings.MAX_GENERATION_RANGE_DAYS:
            raise ValueError(
                f"Période trop longue : maximum {settings.MAX_GENERATION_RANGE_DAYS} jours."
            )
        return self


class GeneratedItem(BaseModel):
    slot_id: uuid.UUID
    date: date


class GenerationFailure(BaseModel):
    slot_id: uuid.UUID
    date: Optional[date] = None  # None quand c'est le créneau lui-même qui est en cause
    reason: str


class GenerationReport(BaseModel):
    """Rapport de génération : créées, ignorées (déjà existantes), en échec."""
    status: BatchStatus
    requested_slots: int
    created: List[GeneratedItem]
    skipped: List[GeneratedItem]
    failed: List[GenerationFailure]
    total_created: int
    total_skipped: int
    total_failed: int


class OccurrenceCreate(BaseModel):
    """Séance ponctuelle créée par un enseignant de la classe."""
    slot_id: uuid.UUID
    date: date
    notes: Optional[str] = None


class OccurrenceStatusUpdate(BaseModel):
    # Chaîne libre : la validation (InvalidStatus) est faite par le service
    status: str
    reason: Optional[str] = None


class OccurrenceCancel(BaseModel):
    reason: Optional[str] = None


class OccurrenceResponse(BaseModel):
    id: uuid.UUID
    slot_id: uuid.UUID
    teacher_id: Optional[uuid.UUID]
    date: date
    status: OccurrenceStatus
    actual_start_at: Optional[datetime]
    actual_end_at: Optional[datetime]
    notes: Optional[str]
    cancellation_reason: Optional[str]
    generated_by: Optional[uuid.UUID]
    generated_at: Optional[datetime]
    started_by: Optional[uuid.UUID]
    completed_by: Optional[uuid.UUID]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TeacherOccurrenceResponse(BaseModel):
    """Séance à venir d'un enseignant, avec compteurs de présences."""
    id: uuid.UUID
    class_id: uuid.UUID
    class_name: str
    class_code: Optional[str]
    date: date
    day_of_week: int
    start_time: time
    end_time: time
    status: OccurrenceStatus
    student_count: int
    attendance_recorded: bool
    attended_count: int
    present_count: int
    late_count: int
    absent_count: int
