"""
Modèles SQLAlchemy pour les créneaux hebdomadaires récurrents et leurs enseignants.

Jour de la semaine : 0 = dimanche … 6 = samedi (indépendant de la locale).
legacy_teacher_id : ancienne colonne « un enseignant par créneau », conservée
uniquement pour que la fusion des doublons puisse reporter l'historique sur les séances.
"""

import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    SmallInteger,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class RecurringSlot(Base):
    """Créneau hebdomadaire d'une classe (ex. « lundi 09:00–10:30 »)."""
    __tablename__ = "recurring_slots"
    __table_args__ = (
        UniqueConstraint("class_id", "day_of_week", "start_time", "end_time", name="uq_recurring_slot_time_key"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_recurring_slot_day_of_week"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=False, index=True)
    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    location = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    legacy_teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SlotTeacher(Base):
    """Association créneau ↔ enseignants (plusieurs enseignants par créneau)."""
    __tablename__ = "slot_teachers"
    __table_args__ = (
        UniqueConstraint("slot_id", "teacher_id", name="uq_slot_teacher"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("recurring_slots.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assigned_at = Column(DateTime, server_default=func.now(), nullable=False)
    assigned_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
