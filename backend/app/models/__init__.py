# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# Sans cet import, les FK comme occurrences.started_by → users.id échouent
# avec NoReferencedTableError si user.py n'est pas chargé avant occurrence.py.

from app.models.user import User  # noqa: F401  doit précéder les autres
from app.models.student import Student  # noqa: F401
from app.models.school_class import SchoolClass, ClassStudent, ClassTeacher  # noqa: F401
from app.models.schedule import RecurringSlot, SlotTeacher  # noqa: F401
from app.models.occurrence import Occurrence  # noqa: F401
from app.models.attendance import AttendanceRecord  # noqa: F401
