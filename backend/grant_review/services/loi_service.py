"""
Letter of Interest state machine.

DRAFT -> SUBMITTED -> UNDER_REVIEW -> APPROVED | DECLINED

Approval spawns exactly one DRAFT application, pre-populated from the LOI,
in the same transaction as the decision. Decisions are not shown to the
applicant until the release batcher releases them.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from grant_review.core.exceptions import PermissionDenied, PreconditionFailed, ValidationError
from grant_review.core.security import ReviewerContext
from grant_review.db import models
from grant_review.db.enums import ApplicationStatus, Decision, LOIStatus, STAFF_ROLES
from grant_review.db.repository import get_or_404
from grant_review.services.notification_service import send_loi_submitted_to_staff
from grant_review.services.state_machine import StateMachine
from grant_review.services.status_ledger import StatusLedger

logger = logging.getLogger(__name__)

LOI_MACHINE = StateMachine(
    entity_type="loi",
    label="Letter of Interest",
    model=models.LetterOfInterest,
    transitions={
        LOIStatus.DRAFT: [LOIStatus.SUBMITTED],
        LOIStatus.SUBMITTED: [LOIStatus.UNDER_REVIEW, LOIStatus.APPROVED, LOIStatus.DECLINED],
        LOIStatus.UNDER_REVIEW: [LOIStatus.APPROVED, LOIStatus.DECLINED],
        LOIStatus.APPROVED: [],
        LOIStatus.DECLINED: [],
    },
    terminal=[LOIStatus.APPROVED, LOIStatus.DECLINED],
)

# Applicant-editable fields while the LOI is a draft
EDITABLE_FIELDS = (
    "primary_contact_email",
    "project_title",
    "project_description",
    "grant_request_amount",
    "total_project_amount",
)

# Field -> label reported back when missing at submission
REQUIRED_FOR_SUBMISSION = {
    "project_title": "Project Title",
    "project_description": "Project Description",
    "grant_request_amount": "Grant Request Amount",
    "total_project_amount": "Total Project Amount",
}

MAX_DESCRIPTION_WORDS = 500


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; treat them as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LOIService:
    """Service for the LOI lifecycle."""

    @staticmethod
    def get(db: Session, loi_id: int) -> models.LetterOfInterest:
        return get_or_404(db, models.LetterOfInterest, loi_id, "Letter of Interest")

    @staticmethod
    def list_lois(
        db: Session,
        status: Optional[LOIStatus] = None,
        cycle_id: Optional[int] = None,
        organization_id: Optional[int] = None,
    ) -> List[models.LetterOfInterest]:
        query = db.query(models.LetterOfInterest)
        if status is not None:
            query = query.filter(models.LetterOfInterest.status == status)
        if cycle_id is not None:
            query = query.filter(models.LetterOfInterest.cycle_id == cycle_id)
        if organization_id is not None:
            query = query.filter(models.LetterOfInterest.organization_id == organization_id)
        return query.order_by(models.LetterOfInterest.id.desc()).all()

    @staticmethod
    def _ensure_owner(loi: models.LetterOfInterest, actor: ReviewerContext) -> None:
        if actor.is_admin:
            return
        if actor.organization_id is None or actor.organization_id != loi.organization_id:
            raise PermissionDenied("You can only modify your own organization's Letter of Interest")

    @staticmethod
    def create(
        db: Session,
        actor: ReviewerContext,
        organization_id: int,
        cycle_id: int,
        fields: Optional[Dict[str, Any]] = None,
    ) -> models.LetterOfInterest:
        """Create a DRAFT LOI. One LOI per organization per cycle."""
        get_or_404(db, models.Organization, organization_id, "Organization")
        get_or_404(db, models.GrantCycle, cycle_id, "Grant cycle")
        if not actor.is_admin and actor.organization_id != organization_id:
            raise PermissionDenied("You can only create a Letter of Interest for your own organization")

        existing = db.query(models.LetterOfInterest).filter(
            models.LetterOfInterest.organization_id == organization_id,
            models.LetterOfInterest.cycle_id == cycle_id,
        ).first()
        if existing:
            raise PreconditionFailed(
                "This organization already has a Letter of Interest for this cycle",
                current_status=existing.status,
                loi_id=existing.id,
            )

        loi = models.LetterOfInterest(
            organization_id=organization_id,
            cycle_id=cycle_id,
            status=LOIStatus.DRAFT,
            **{k: v for k, v in (fields or {}).items() if k in EDITABLE_FIELDS},
        )
        db.add(loi)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise PreconditionFailed("This organization already has a Letter of Interest for this cycle")

        StatusLedger.append(db, "loi", loi.id, None, LOIStatus.DRAFT, actor, "LOI created")
        db.commit()
        db.refresh(loi)
        logger.info(f"LOI {loi.id} created for organization {organization_id} in cycle {cycle_id}")
        return loi

    @staticmethod
    def update_draft(
        db: Session, loi_id: int, actor: ReviewerContext, fields: Dict[str, Any]
    ) -> models.LetterOfInterest:
        """Edit applicant content. Only drafts are editable."""
        loi = LOIService.get(db, loi_id)
        LOIService._ensure_owner(loi, actor)
        if loi.status != LOIStatus.DRAFT:
            raise PreconditionFailed(
                "Only draft Letters of Interest can be edited",
                current_status=loi.status,
                expected_status=LOIStatus.DRAFT,
            )
        for key, value in fields.items():
            if key in EDITABLE_FIELDS:
                setattr(loi, key, value)
        db.commit()
        db.refresh(loi)
        return loi

    @staticmethod
    def submit(
        db: Session,
        loi_id: int,
        actor: ReviewerContext,
        staff_emails: Optional[List[str]] = None,
    ) -> models.LetterOfInterest:
        """DRAFT -> SUBMITTED (applicant action)."""
        loi = LOIService.get(db, loi_id)
        LOIService._ensure_owner(loi, actor)

        if loi.status == LOIStatus.DRAFT:
            deadline = _as_aware(loi.cycle.loi_deadline) if loi.cycle else None
            if deadline is not None and _now() > deadline:
                raise PreconditionFailed("The LOI deadline for this cycle has passed", current_status=loi.status)

            missing = [label for field, label in REQUIRED_FOR_SUBMISSION.items() if not getattr(loi, field)]
            if missing:
                raise ValidationError(
                    "Please complete all required fields before submitting",
                    field="missing_fields",
                    missing_fields=missing,
                )

            word_count = len(loi.project_description.split())
            if word_count > MAX_DESCRIPTION_WORDS:
                raise ValidationError(
                    f"Project description exceeds {MAX_DESCRIPTION_WORDS} word limit ({word_count} words)",
                    field="project_description",
                )

        LOI_MACHINE.transition(
            db,
            loi,
            LOIStatus.SUBMITTED,
            actor,
            reason="LOI submitted by applicant",
            expected_status=LOIStatus.DRAFT,
            values={"submitted_at": _now(), "submitted_by_name": actor.reviewer_name},
        )
        db.commit()
        db.refresh(loi)
        logger.info(f"LOI {loi.id} submitted by {actor.reviewer_name}")

        if staff_emails is None:
            staff_emails = [
                email for (email,) in db.query(models.User.email).filter(
                    models.User.role.in_(STAFF_ROLES),
                    models.User.is_active.is_(True),
                )
            ]
        # Fire-and-forget: a failed staff email never affects the submission
        try:
            send_loi_submitted_to_staff(
                loi_id=loi.id,
                project_title=loi.project_title,
                organization_name=loi.organization.legal_name,
                contact_email=loi.primary_contact_email,
                request_amount=loi.grant_request_amount,
                staff_emails=staff_emails,
            )
        except Exception as e:
            logger.warning(f"Failed to send LOI submission notification for LOI {loi.id}: {e}")

        return loi

    @staticmethod
    def enter_review(db: Session, loi_id: int, actor: ReviewerContext) -> models.LetterOfInterest:
        """
        SUBMITTED -> UNDER_REVIEW when the first reviewer opens the LOI.

        Re-opening an LOI that is already under review is a no-op.
        """
        loi = LOIService.get(db, loi_id)
        if loi.status == LOIStatus.UNDER_REVIEW:
            return loi

        try:
            LOI_MACHINE.transition(db, loi, LOIStatus.UNDER_REVIEW, actor, reason="LOI review started")
        except PreconditionFailed:
            # Another reviewer opened it first
            if loi.status == LOIStatus.UNDER_REVIEW:
                return loi
            raise
        db.commit()
        db.refresh(loi)
        logger.info(f"LOI {loi.id} review started by {actor.reviewer_name}")
        return loi

    @staticmethod
    def decide(
        db: Session,
        loi_id: int,
        actor: ReviewerContext,
        decision: Decision,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        expected_status: Optional[LOIStatus] = None,
    ) -> Tuple[models.LetterOfInterest, Optional[models.Application]]:
        """
        Approve or decline an LOI.

        Legal only from SUBMITTED or UNDER_REVIEW. Declining requires a
        reason. Approving creates and links exactly one application; the LOI
        status change, ledger entries and the new application commit together.

        Returns:
            (loi, application) where application is None for a decline
        """
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError("Decision must be APPROVED or DECLINED", field="decision")
        reason = reason.strip() if reason else None
        if decision == Decision.DECLINED and not reason:
            raise ValidationError("A reason is required when declining a Letter of Interest", field="reason")

        loi = LOIService.get(db, loi_id)
        target = LOIStatus(decision.value)
        now = _now()

        LOI_MACHINE.transition(
            db,
            loi,
            target,
            actor,
            reason=reason or ("LOI approved by reviewer" if decision == Decision.APPROVED else None),
            expected_status=expected_status,
            values={
                "reviewed_at": now,
                "reviewed_by_id": actor.reviewer_id,
                "reviewed_by_name": actor.reviewer_name,
                "review_notes": notes,
                "decision_reason": reason,
            },
            # An LOI that already spawned an application can never be re-decided
            extra_criteria=[models.LetterOfInterest.application_id.is_(None)],
        )

        application = None
        if decision == Decision.APPROVED:
            application = LOIService._spawn_application(db, loi, actor)

        db.commit()
        db.refresh(loi)
        if application is not None:
            db.refresh(application)
            logger.info(f"LOI {loi.id} approved by {actor.reviewer_name}; application {application.id} created")
        else:
            logger.info(f"LOI {loi.id} declined by {actor.reviewer_name}")
        return loi, application

    @staticmethod
    def _spawn_application(
        db: Session, loi: models.LetterOfInterest, actor: ReviewerContext
    ) -> models.Application:
        application = models.Application(
            loi_id=loi.id,
            organization_id=loi.organization_id,
            cycle_id=loi.cycle_id,
            status=ApplicationStatus.DRAFT,
            project_title=loi.project_title,
            project_description=loi.project_description,
            amount_requested=loi.grant_request_amount,
            total_project_budget=loi.total_project_amount,
        )
        db.add(application)
        db.flush()
        loi.application_id = application.id
        StatusLedger.append(
            db, "application", application.id, None, ApplicationStatus.DRAFT, actor,
            f"Created from approved LOI #{loi.id}",
        )
        db.flush()
        return application

    @staticmethod
    def history(db: Session, loi_id: int):
        LOIService.get(db, loi_id)
        return StatusLedger.history(db, "loi", loi_id)
