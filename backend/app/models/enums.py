"""
Énumérations fermées partagées par les modèles et les schémas.
Stockées en base comme chaînes (valeurs en minuscules, reprises telles quelles par l'API).
"""

from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class OccurrenceStatus(str, Enum):
    """Cycle de vie d'une séance : scheduled → not_started → in_progress → completed, ou cancelled."""
    SCHEDULED = "scheduled"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OccurrenceStatus.COMPLETED, OccurrenceStatus.CANCELLED)


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    EXCUSED = "excused"
    SICK = "sick"

    @property
    def checks_in(self) -> bool:
        """Vrai si l'élève était physiquement là (heure d'arrivée enregistrée)."""
        return self in (AttendanceStatus.PRESENT, AttendanceStatus.LATE)
