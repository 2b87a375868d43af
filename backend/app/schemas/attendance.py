"""
Schémas Pydantic pour les présences : saisie unitaire, saisie en masse,
feuille d'appel d'une séance, matrice par classe et synthèse élève.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from app.config import settings
from app.models.enums import AttendanceStatus, OccurrenceStatus
from app.schemas.batch import BatchStatus


class AttendanceRecordRequest(BaseModel):
    """Saisie d'une présence. Le statut est validé par le service (InvalidStatus)."""
    status: str
    notes: Optional[str] = None


class AttendanceEntry(BaseModel):
    """Une ligne de saisie en masse."""
    student_id: uuid.UUID
    status: str
    notes: Optional[str] = None


class AttendanceBatchRequest(BaseModel):
    entries: List[AttendanceEntry]

    @field_validator("entries")
    @classmethod
    def entries_not_too_large(cls, v: List[AttendanceEntry]) -> List[AttendanceEntry]:
        if len(v) > settings.MAX_ATTENDANCE_BATCH_SIZE:
            raise ValueError(
                f"Batch trop grand : maximum {settings.MAX_ATTENDANCE_BATCH_SIZE} lignes par requête."
            )
        return v


class AttendanceRecordResponse(BaseModel):
    id: uuid.UUID
    occurrence_id: uuid.UUID
    student_id: uuid.UUID
    status: AttendanceStatus
    notes: Optional[str]
    checked_in_at: Optional[datetime]
    recorded_by: Optional[uuid.UUID]
    recorded_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class AttendanceItemFailure(BaseModel):
    student_id: uuid.UUID
    reason: str


class AttendanceBatchReport(BaseModel):
    status: BatchStatus
    succeeded: List[uuid.UUID]
    failed: List[AttendanceItemFailure]
    total_received: int
    total_succeeded: int
    total_failed: int


class RosterAttendanceRow(BaseModel):
    """Élève inscrit + sa présence pour une séance (absent si rien n'est saisi)."""
    student_id: uuid.UUID
    first_name: str
    last_name: str
    status: AttendanceStatus
    recorded: bool
    notes: Optional[str]
    checked_in_at: Optional[datetime]


class AttendanceStats(BaseModel):
    present: int = 0
    late: int = 0
    absent: int = 0
    excused: int = 0
    sick: int = 0


class MatrixEntry(BaseModel):
    occurrence_id: uuid.UUID
    date: date
    occurrence_status: OccurrenceStatus
    attendance_status: Optional[AttendanceStatus]  # None = aucune saisie
    notes: Optional[str] = None
    checked_in_at: Optional[datetime] = None


class StudentBrief(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: Optional[str] = None


class StudentAttendanceRow(BaseModel):
    student: StudentBrief
    attendance: List[MatrixEntry]
    stats: AttendanceStats
    attendance_rate: int


class MatrixOccurrence(BaseModel):
    id: uuid.UUID
    date: date
    status: OccurrenceStatus
    actual_start_at: Optional[datetime]
    actual_end_at: Optional[datetime]


class ClassBrief(BaseModel):
    id: uuid.UUID
    name: str
    code: Optional[str]


class ClassAttendanceMatrix(BaseModel):
    school_class: ClassBrief
    occurrences: List[MatrixOccurrence]
    total_students: int
    total_occurrences: int
    rows: List[StudentAttendanceRow]


class StudentClassSummary(BaseModel):
    """Synthèse des présences d'un élève pour une classe (séances saisies uniquement)."""
    class_id: uuid.UUID
    class_name: str
    total_recorded: int
    stats: AttendanceStats
    attendance_rate: int
    history: List[MatrixEntry]
