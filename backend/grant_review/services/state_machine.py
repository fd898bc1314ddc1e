"""
Transition engine shared by the LOI and application state machines.

Each machine is a closed transition table over a status enum. This module
is the only place that moves an entity between statuses: it checks the
caller's expected status, rejects terminal and illegal moves, performs the
status change as a conditional UPDATE, and appends the ledger entry in the
same transaction.
"""

import logging
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from grant_review.core.exceptions import PreconditionFailed, TerminalStateError
from grant_review.core.security import ReviewerContext
from grant_review.db.repository import conditional_status_update
from grant_review.services.status_ledger import StatusLedger

logger = logging.getLogger(__name__)


class StateMachine:
    """A closed set of statuses and the legal edges between them."""

    def __init__(
        self,
        entity_type: str,
        label: str,
        model,
        transitions: Mapping[Any, Iterable[Any]],
        terminal: Iterable[Any],
    ):
        self.entity_type = entity_type
        self.label = label
        self.model = model
        self.transitions: Dict[Any, FrozenSet[Any]] = {
            status: frozenset(targets) for status, targets in transitions.items()
        }
        self.terminal = frozenset(terminal)

    def sources_for(self, target) -> FrozenSet[Any]:
        """Statuses from which ``target`` can be reached in one step."""
        return frozenset(s for s, targets in self.transitions.items() if target in targets)

    def is_terminal(self, status) -> bool:
        return status in self.terminal

    def check(self, current, target, expected_status=None) -> None:
        """
        Validate a transition without touching storage.

        Terminal states are reported first so that re-deciding a decided
        item always surfaces as TerminalStateError, whatever the caller
        believed the status to be.
        """
        if current in self.terminal:
            raise TerminalStateError(
                f"{self.label} is already {current.value} and cannot change",
                current_status=current,
            )
        if expected_status is not None and expected_status != current:
            raise PreconditionFailed(
                f"{self.label} status is {current.value}, expected {expected_status.value}; refresh and retry",
                current_status=current,
                expected_status=expected_status,
            )
        if target not in self.transitions.get(current, frozenset()):
            allowed = sorted(s.value for s in self.sources_for(target))
            raise PreconditionFailed(
                f"Cannot transition {self.label} from {current.value} to {target.value}",
                current_status=current,
                allowed_from=allowed,
            )

    def transition(
        self,
        db: Session,
        entity,
        target,
        actor: ReviewerContext,
        reason: Optional[str] = None,
        expected_status=None,
        values: Optional[Dict[str, Any]] = None,
        extra_criteria: Iterable[Any] = (),
    ):
        """
        Move ``entity`` to ``target`` and append the ledger entry.

        Nothing is committed; the caller commits once any cascade is added.
        If another writer changed the row between our read and the
        conditional update, the transaction is rolled back and the loser
        sees PreconditionFailed (or TerminalStateError if the winner
        finished the item).
        """
        current = entity.status
        self.check(current, target, expected_status)

        applied = conditional_status_update(
            db,
            self.model,
            entity.id,
            from_statuses=[current],
            to_status=target,
            values=values,
            extra_criteria=extra_criteria,
        )
        if not applied:
            db.rollback()
            db.refresh(entity)
            logger.warning(
                f"Lost race moving {self.entity_type} {entity.id} from {current.value} to "
                f"{target.value}; stored status is now {entity.status.value}"
            )
            if entity.status in self.terminal:
                raise TerminalStateError(
                    f"{self.label} was already moved to {entity.status.value} by another reviewer",
                    current_status=entity.status,
                )
            raise PreconditionFailed(
                f"{self.label} status changed to {entity.status.value} while you were working; refresh and retry",
                current_status=entity.status,
                expected_status=current,
            )

        StatusLedger.append(db, self.entity_type, entity.id, current, target, actor, reason)
        db.expire(entity)
        return current
