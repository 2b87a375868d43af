"""
Exceptions métier du moteur de planification et de présences.

Les services lèvent ces exceptions ; le handler enregistré dans main.py les
traduit en réponse HTTP {"detail": message} avec le status_code de la classe.
Les opérations batch (génération, présences en masse) ne lèvent pas
d'exception par élément : elles renvoient un rapport avec le détail des échecs.
"""


class SchedulingError(Exception):
    """Base des erreurs métier. Le message est destiné à l'utilisateur."""
    status_code = 400


class NotFound(SchedulingError):
    """Créneau, séance, classe, élève ou enseignant introuvable."""
    status_code = 404


class OccurrenceNotFound(NotFound):
    """Séance introuvable."""


class InvalidStatus(SchedulingError):
    """Statut cible inconnu (séance ou présence)."""
    status_code = 400


class InvalidSlot(SchedulingError):
    """Horaires de créneau incohérents (début après fin)."""
    status_code = 400


class SlotInUse(SchedulingError):
    """Suppression refusée : des séances référencent encore le créneau."""
    status_code = 409


class ClassInUse(SchedulingError):
    """Suppression refusée : la classe possède encore des créneaux."""
    status_code = 409


class SlotConflict(SchedulingError):
    """Un créneau existe déjà pour (classe, jour, début, fin)."""
    status_code = 409


class OccurrenceExists(SchedulingError):
    """Une séance existe déjà pour ce créneau à cette date."""
    status_code = 409


class Unauthorized(SchedulingError):
    """L'acteur n'a pas le rôle ou l'affectation requise."""
    status_code = 403
