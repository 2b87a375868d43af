"""
Statut agrégé des opérations batch (génération de séances, présences en masse).
Un batch ne s'interrompt jamais sur un élément en échec : il rapporte.
"""

from enum import Enum


class BatchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


def batch_status(succeeded: int, failed: int) -> BatchStatus:
    """Batch vide ou sans échec → success ; rien de réussi → failure ; sinon partial_failure."""
    if failed == 0:
        return BatchStatus.SUCCESS
    if succeeded == 0:
        return BatchStatus.FAILURE
    return BatchStatus.PARTIAL_FAILURE
