"""
Modèle SQLAlchemy pour les séances : une occurrence datée d'un créneau récurrent.

Unicité (slot_id, date) garantie par contrainte : deux générations concurrentes
ne peuvent pas créer la même séance.
"""

import uuid
from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base
from app.models.enums import OccurrenceStatus


class Occurrence(Base):
    __tablename__ = "occurrences"
    __table_args__ = (
        UniqueConstraint("slot_id", "date", name="uq_occurrence_slot_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Pas de cascade : un créneau référencé ne peut être supprimé sans repointer ses séances
    slot_id = Column(UUID(as_uuid=True), ForeignKey("recurring_slots.id"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    date = Column(Date, nullable=False)
    status = Column(
        Enum(
            OccurrenceStatus,
            name="occurrence_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=OccurrenceStatus.SCHEDULED,
    )

    actual_start_at = Column(DateTime(timezone=True), nullable=True)
    actual_end_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    generated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    generated_at = Column(DateTime, server_default=func.now(), nullable=False)
    started_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    completed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
