"""
Modèle SQLAlchemy pour les présences par séance.

Une seule ligne par (séance, élève) : un nouvel enregistrement met à jour la ligne existante.
Un élève sans ligne pour une séance est considéré absent par les lecteurs,
la ligne n'est pas matérialisée.
"""

import uuid
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base
from app.models.enums import AttendanceStatus


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("occurrence_id", "student_id", name="uq_attendance_occurrence_student"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    occurrence_id = Column(
        UUID(as_uuid=True), ForeignKey("occurrences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)

    status = Column(
        Enum(
            AttendanceStatus,
            name="attendance_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AttendanceStatus.ABSENT,
    )
    notes = Column(Text, nullable=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)  # Seulement present / late

    recorded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    recorded_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
