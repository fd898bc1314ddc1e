"""
Append-only status ledger for LOIs and applications.

The ledger is the source of truth for what happened when. Entries are only
ever inserted; replaying them in order reconstructs an entity's status and
the full deliberation trail, including info-request round trips.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from grant_review.core.security import ReviewerContext
from grant_review.db import models

logger = logging.getLogger(__name__)

# entity type -> (ledger model, foreign key column name)
LEDGERS = {
    "loi": (models.LOIStatusHistory, "loi_id"),
    "application": (models.ApplicationStatusHistory, "application_id"),
}


class LedgerInconsistency(ValueError):
    """Raised when ledger entries do not chain (an entry's previous status is not the running status)."""


class StatusLedger:
    """Service for appending to and reading status ledgers."""

    @staticmethod
    def append(
        db: Session,
        entity_type: str,
        entity_id: int,
        previous_status,
        new_status,
        actor: ReviewerContext,
        reason: Optional[str] = None,
    ):
        """Add a ledger entry to the current transaction. The caller commits."""
        model, fk = LEDGERS[entity_type]
        entry = model(
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
            changed_by_id=actor.reviewer_id,
            changed_by_name=actor.reviewer_name,
        )
        setattr(entry, fk, entity_id)
        db.add(entry)
        return entry

    @staticmethod
    def history(db: Session, entity_type: str, entity_id: int) -> List:
        """Return ledger entries oldest first."""
        model, fk = LEDGERS[entity_type]
        return (
            db.query(model)
            .filter(getattr(model, fk) == entity_id)
            .order_by(model.created_at.asc(), model.id.asc())
            .all()
        )

    @staticmethod
    def replay(entries: Sequence) -> Optional[object]:
        """
        Reconstruct the current status from ordered ledger entries.

        Entries whose previous and new status are equal are annotations
        (e.g. a release note) and do not move the status.

        Returns:
            The final status, or None for an empty ledger

        Raises:
            LedgerInconsistency: if an entry does not follow from the running status
        """
        status = None
        for index, entry in enumerate(entries):
            if index > 0 and entry.previous_status != status:
                raise LedgerInconsistency(
                    f"Ledger entry {entry.id} moves from {entry.previous_status} "
                    f"but the running status is {status}"
                )
            status = entry.new_status
        return status
