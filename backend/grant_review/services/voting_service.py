"""
Advisory reviewer votes on applications.

One row per (application, reviewer); re-voting overwrites in place. The
tally is recomputed from stored rows on every read.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from grant_review.core.exceptions import TerminalStateError, ValidationError
from grant_review.core.security import ReviewerContext
from grant_review.db import models
from grant_review.db.enums import STAFF_ROLES, VoteChoice
from grant_review.db.repository import get_or_404, upsert_reviewer_row
from grant_review.services.application_service import APPLICATION_MACHINE

logger = logging.getLogger(__name__)

PENDING = "PENDING"


@dataclass
class ReviewerVoteStatus:
    reviewer_id: int
    reviewer_name: str
    vote: str  # VoteChoice value or PENDING
    reasoning: Optional[str] = None


@dataclass
class VoteTally:
    application_id: int
    approve: int = 0
    decline: int = 0
    abstain: int = 0
    pending: int = 0
    reviewers: List[ReviewerVoteStatus] = field(default_factory=list)

    @property
    def total_votes(self) -> int:
        return self.approve + self.decline + self.abstain


def ensure_application_open(application: models.Application) -> None:
    if APPLICATION_MACHINE.is_terminal(application.status):
        raise TerminalStateError(
            f"Application is already {application.status.value}; votes and assessments are closed",
            current_status=application.status,
        )


class VotingService:

    @staticmethod
    def cast_vote(
        db: Session,
        application_id: int,
        actor: ReviewerContext,
        vote: VoteChoice,
        reasoning: Optional[str] = None,
    ) -> models.Vote:
        """Record or replace the reviewer's vote. Votes never decide the application."""
        try:
            vote = VoteChoice(vote)
        except ValueError:
            raise ValidationError("Vote must be APPROVE, DECLINE or ABSTAIN", field="vote")

        application = get_or_404(db, models.Application, application_id, "Application")
        ensure_application_open(application)

        row = upsert_reviewer_row(
            db,
            models.Vote,
            application_id,
            actor.reviewer_id,
            {"vote": vote, "reviewer_name": actor.reviewer_name, "reasoning": reasoning},
        )
        db.commit()
        db.refresh(row)
        logger.info(f"Reviewer {actor.reviewer_id} voted {vote.value} on application {application_id}")
        return row

    @staticmethod
    def tally(
        db: Session,
        application_id: int,
        roster: Optional[List[models.User]] = None,
    ) -> VoteTally:
        """
        Count votes and merge them with the reviewer roster.

        Roster members without a vote are reported as PENDING. Reviewers who
        voted but have since left the roster are still listed.
        """
        get_or_404(db, models.Application, application_id, "Application")
        if roster is None:
            roster = (
                db.query(models.User)
                .filter(models.User.role.in_(STAFF_ROLES), models.User.is_active.is_(True))
                .order_by(models.User.id)
                .all()
            )

        votes: Dict[int, models.Vote] = {
            v.reviewer_id: v
            for v in db.query(models.Vote).filter(models.Vote.application_id == application_id).all()
        }

        result = VoteTally(application_id=application_id)
        seen = set()
        for user in roster:
            seen.add(user.id)
            vote = votes.get(user.id)
            if vote is None:
                result.pending += 1
                result.reviewers.append(ReviewerVoteStatus(user.id, user.full_name or user.email, PENDING))
            else:
                result.reviewers.append(
                    ReviewerVoteStatus(user.id, vote.reviewer_name, vote.vote.value, vote.reasoning)
                )

        for reviewer_id, vote in sorted(votes.items()):
            if reviewer_id not in seen:
                result.reviewers.append(
                    ReviewerVoteStatus(reviewer_id, vote.reviewer_name, vote.vote.value, vote.reasoning)
                )

        for vote in votes.values():
            if vote.vote == VoteChoice.APPROVE:
                result.approve += 1
            elif vote.vote == VoteChoice.DECLINE:
                result.decline += 1
            else:
                result.abstain += 1
        return result
