"""
Decision release batcher.

LOI decisions stay invisible to applicants until an admin releases them.
Each LOI in a batch is released and notified independently: one failure
never blocks or rolls back the others, and a notification failure never
rolls back its own release.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from grant_review.core.security import ReviewerContext
from grant_review.db import models
from grant_review.db.enums import LOIStatus
from grant_review.services.notification_service import (
    DecisionNotifier,
    DecisionSummary,
    EmailDecisionNotifier,
)
from grant_review.services.status_ledger import StatusLedger

logger = logging.getLogger(__name__)

DECIDED_STATUSES = (LOIStatus.APPROVED, LOIStatus.DECLINED)

RELEASED = "released"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ReleaseItemResult:
    loi_id: int
    outcome: str  # released | skipped | failed
    email_sent: bool = False
    error: Optional[str] = None


@dataclass
class ReleaseSummary:
    results: List[ReleaseItemResult] = field(default_factory=list)

    def _count(self, outcome: str) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def released_count(self) -> int:
        return self._count(RELEASED)

    @property
    def skipped_count(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(FAILED)

    @property
    def emails_sent_count(self) -> int:
        return sum(1 for r in self.results if r.email_sent)


def _pending_criteria():
    return (
        models.LetterOfInterest.status.in_(DECIDED_STATUSES),
        models.LetterOfInterest.reviewed_at.isnot(None),
        models.LetterOfInterest.released_at.is_(None),
    )


def _summary_for(loi: models.LetterOfInterest) -> DecisionSummary:
    return DecisionSummary(
        loi_id=loi.id,
        decision=loi.status,
        project_title=loi.project_title,
        organization_name=loi.organization.legal_name if loi.organization else "",
        application_id=loi.application_id,
        decision_reason=loi.decision_reason,
        full_app_deadline=loi.cycle.full_app_deadline if loi.cycle else None,
    )


class ReleaseService:

    @staticmethod
    def list_pending(db: Session) -> List[models.LetterOfInterest]:
        """Decided but unreleased LOIs, most recently decided first."""
        return (
            db.query(models.LetterOfInterest)
            .filter(*_pending_criteria())
            .order_by(models.LetterOfInterest.reviewed_at.desc(), models.LetterOfInterest.id.desc())
            .all()
        )

    @staticmethod
    def release_selected(
        db: Session,
        loi_ids: Iterable[int],
        actor: ReviewerContext,
        notifier: Optional[DecisionNotifier] = None,
    ) -> ReleaseSummary:
        """
        Release each LOI in ``loi_ids`` and notify its primary contact.

        Ids that are unknown, undecided or already released are reported as
        skipped. Releasing twice is a no-op for the second call.
        """
        notifier = notifier or EmailDecisionNotifier()
        summary = ReleaseSummary()
        seen = set()
        for loi_id in loi_ids:
            if loi_id in seen:
                continue
            seen.add(loi_id)
            try:
                summary.results.append(ReleaseService._release_one(db, loi_id, actor, notifier))
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to release LOI {loi_id}: {e}", exc_info=True)
                summary.results.append(ReleaseItemResult(loi_id=loi_id, outcome=FAILED, error=str(e)))

        logger.info(
            f"Release batch by {actor.reviewer_name}: {summary.released_count} released, "
            f"{summary.emails_sent_count} emails sent, {summary.skipped_count} skipped, "
            f"{summary.failed_count} failed"
        )
        return summary

    @staticmethod
    def release_all(
        db: Session,
        actor: ReviewerContext,
        notifier: Optional[DecisionNotifier] = None,
    ) -> ReleaseSummary:
        """Release every LOI pending at call time."""
        ids = [
            loi_id for (loi_id,) in db.query(models.LetterOfInterest.id)
            .filter(*_pending_criteria())
            .order_by(models.LetterOfInterest.reviewed_at.desc(), models.LetterOfInterest.id.desc())
        ]
        return ReleaseService.release_selected(db, ids, actor, notifier)

    @staticmethod
    def _release_one(
        db: Session,
        loi_id: int,
        actor: ReviewerContext,
        notifier: DecisionNotifier,
    ) -> ReleaseItemResult:
        now = datetime.now(timezone.utc)
        result = db.execute(
            update(models.LetterOfInterest)
            .where(models.LetterOfInterest.id == loi_id, *_pending_criteria())
            .values(released_at=now, released_by_name=actor.reviewer_name)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.warning(f"LOI {loi_id} is not pending release; skipped")
            return ReleaseItemResult(loi_id=loi_id, outcome=SKIPPED)

        loi = db.get(models.LetterOfInterest, loi_id, populate_existing=True)
        decision = loi.status
        StatusLedger.append(
            db, "loi", loi_id, decision, decision, actor,
            "Decision released to applicant",
        )
        db.commit()
        logger.info(f"LOI {loi_id} decision ({decision.value}) released by {actor.reviewer_name}")

        # The release is committed; from here on failures are only recorded
        sent = False
        error = None
        try:
            sent, error = ReleaseService._notify(loi, notifier)
            if sent:
                loi.notification_sent = True
                loi.notification_sent_at = datetime.now(timezone.utc)
                loi.notification_error = None
            else:
                loi.notification_error = error
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Could not record notification outcome for released LOI {loi_id}: {e}", exc_info=True)
            error = f"Notification outcome not recorded: {e}"

        return ReleaseItemResult(loi_id=loi_id, outcome=RELEASED, email_sent=sent, error=error)

    @staticmethod
    def _notify(loi: models.LetterOfInterest, notifier: DecisionNotifier) -> Tuple[bool, Optional[str]]:
        """Send the decision to the LOI's contact, falling back to the organization's. Never raises on send failure."""
        contact = loi.primary_contact_email or (loi.organization.primary_contact_email if loi.organization else None)
        if not contact:
            error = "No contact email on LOI or organization"
            logger.error(f"Decision notification for LOI {loi.id} not sent: no contact email")
            return False, error

        try:
            if notifier.send(contact, _summary_for(loi)):
                return True, None
            error = "Notification sender reported failure"
        except Exception as e:
            error = str(e)
        logger.error(f"Decision notification for LOI {loi.id} to {contact} failed: {error}")
        return False, error
