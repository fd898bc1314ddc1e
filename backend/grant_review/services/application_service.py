"""
Application state machine.

DRAFT -> SUBMITTED -> UNDER_REVIEW -> INFO_REQUESTED -> UNDER_REVIEW (cycle)
                                   -> APPROVED | DECLINED
WITHDRAWN is reachable from any non-terminal status by the applicant.

Approving or declining is always an explicit admin action; votes and budget
assessments are advisory inputs only.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from grant_review.core.exceptions import NotFound, PermissionDenied, PreconditionFailed, ValidationError
from grant_review.core.security import ReviewerContext
from grant_review.db import models
from grant_review.db.enums import ApplicationStatus, CommunicationDirection, Decision
from grant_review.db.repository import get_or_404
from grant_review.services.state_machine import StateMachine
from grant_review.services.status_ledger import StatusLedger

logger = logging.getLogger(__name__)

APPLICATION_MACHINE = StateMachine(
    entity_type="application",
    label="Application",
    model=models.Application,
    transitions={
        ApplicationStatus.DRAFT: [ApplicationStatus.SUBMITTED, ApplicationStatus.WITHDRAWN],
        ApplicationStatus.SUBMITTED: [
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.APPROVED,
            ApplicationStatus.DECLINED,
            ApplicationStatus.WITHDRAWN,
        ],
        ApplicationStatus.UNDER_REVIEW: [
            ApplicationStatus.INFO_REQUESTED,
            ApplicationStatus.APPROVED,
            ApplicationStatus.DECLINED,
            ApplicationStatus.WITHDRAWN,
        ],
        ApplicationStatus.INFO_REQUESTED: [
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.APPROVED,
            ApplicationStatus.DECLINED,
            ApplicationStatus.WITHDRAWN,
        ],
        ApplicationStatus.APPROVED: [],
        ApplicationStatus.DECLINED: [],
        ApplicationStatus.WITHDRAWN: [],
    },
    terminal=[ApplicationStatus.APPROVED, ApplicationStatus.DECLINED, ApplicationStatus.WITHDRAWN],
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _required_text(value: Optional[str], field: str, message: str) -> str:
    value = value.strip() if value else ""
    if not value:
        raise ValidationError(message, field=field)
    return value


class ApplicationService:
    """Service for the application lifecycle."""

    @staticmethod
    def get(db: Session, application_id: int) -> models.Application:
        return get_or_404(db, models.Application, application_id, "Application")

    @staticmethod
    def list_applications(
        db: Session,
        status: Optional[ApplicationStatus] = None,
        organization_id: Optional[int] = None,
        released_only: bool = False,
    ) -> List[models.Application]:
        """
        List applications, newest first.

        With ``released_only`` set, applications spawned from an LOI whose
        approval has not been released yet are left out (applicant view).
        """
        query = db.query(models.Application)
        if status is not None:
            query = query.filter(models.Application.status == status)
        if organization_id is not None:
            query = query.filter(models.Application.organization_id == organization_id)
        if released_only:
            query = query.filter(or_(
                models.Application.loi_id.is_(None),
                models.Application.loi.has(models.LetterOfInterest.released_at.isnot(None)),
            ))
        return query.order_by(models.Application.id.desc()).all()

    @staticmethod
    def awaiting_release(application: models.Application) -> bool:
        """True while the LOI approval that spawned this application is still unreleased."""
        return application.loi_id is not None and application.loi.released_at is None

    @staticmethod
    def _ensure_owner(application: models.Application, actor: ReviewerContext) -> None:
        if actor.is_admin:
            return
        if actor.organization_id is None or actor.organization_id != application.organization_id:
            raise PermissionDenied("You can only act on your own organization's application")
        # Applicants must not learn of an approval before it is released
        if not actor.is_reviewer and ApplicationService.awaiting_release(application):
            raise NotFound("Application not found", entity_id=application.id)

    @staticmethod
    def create_direct(
        db: Session,
        actor: ReviewerContext,
        organization_id: int,
        cycle_id: Optional[int] = None,
        project_title: Optional[str] = None,
        project_description: Optional[str] = None,
        amount_requested: Optional[Decimal] = None,
        total_project_budget: Optional[Decimal] = None,
    ) -> models.Application:
        """Create a DRAFT application without an LOI (legacy intake flow)."""
        get_or_404(db, models.Organization, organization_id, "Organization")
        if not actor.is_admin and actor.organization_id != organization_id:
            raise PermissionDenied("You can only create an application for your own organization")

        application = models.Application(
            organization_id=organization_id,
            cycle_id=cycle_id,
            status=ApplicationStatus.DRAFT,
            project_title=project_title,
            project_description=project_description,
            amount_requested=amount_requested,
            total_project_budget=total_project_budget,
        )
        db.add(application)
        db.flush()
        StatusLedger.append(db, "application", application.id, None, ApplicationStatus.DRAFT, actor, "Application created")
        db.commit()
        db.refresh(application)
        logger.info(f"Application {application.id} created directly for organization {organization_id}")
        return application

    @staticmethod
    def submit(db: Session, application_id: int, actor: ReviewerContext) -> models.Application:
        """DRAFT -> SUBMITTED (applicant action)."""
        application = ApplicationService.get(db, application_id)
        ApplicationService._ensure_owner(application, actor)
        APPLICATION_MACHINE.transition(
            db,
            application,
            ApplicationStatus.SUBMITTED,
            actor,
            reason="Application submitted by applicant",
            expected_status=ApplicationStatus.DRAFT,
            values={"submitted_at": _now()},
        )
        db.commit()
        db.refresh(application)
        logger.info(f"Application {application.id} submitted by {actor.reviewer_name}")
        return application

    @staticmethod
    def start_review(db: Session, application_id: int, actor: ReviewerContext) -> models.Application:
        """SUBMITTED -> UNDER_REVIEW; a no-op if already under review."""
        application = ApplicationService.get(db, application_id)
        if application.status == ApplicationStatus.UNDER_REVIEW:
            return application
        try:
            APPLICATION_MACHINE.transition(
                db, application, ApplicationStatus.UNDER_REVIEW, actor,
                reason="Application review started",
                expected_status=ApplicationStatus.SUBMITTED,
            )
        except PreconditionFailed:
            if application.status == ApplicationStatus.UNDER_REVIEW:
                return application
            raise
        db.commit()
        db.refresh(application)
        logger.info(f"Application {application.id} review started by {actor.reviewer_name}")
        return application

    @staticmethod
    def request_info(
        db: Session,
        application_id: int,
        actor: ReviewerContext,
        message: str,
        expected_status: Optional[ApplicationStatus] = ApplicationStatus.UNDER_REVIEW,
        response_deadline: Optional[datetime] = None,
    ) -> models.Communication:
        """
        UNDER_REVIEW -> INFO_REQUESTED.

        The message becomes the ledger reason and an outbound communication
        the applicant must answer.
        """
        message = _required_text(message, "message", "A message is required when requesting information")
        application = ApplicationService.get(db, application_id)

        APPLICATION_MACHINE.transition(
            db, application, ApplicationStatus.INFO_REQUESTED, actor,
            reason=message,
            expected_status=expected_status,
        )
        communication = models.Communication(
            application_id=application.id,
            direction=CommunicationDirection.OUTBOUND,
            subject="Additional Information Requested",
            content=message,
            sent_by_id=actor.reviewer_id,
            sent_by_name=actor.reviewer_name,
            response_required=True,
            response_deadline=response_deadline,
        )
        db.add(communication)
        db.commit()
        db.refresh(communication)
        logger.info(f"Information requested on application {application_id} by {actor.reviewer_name}")
        return communication

    @staticmethod
    def respond_to_info_request(
        db: Session,
        application_id: int,
        actor: ReviewerContext,
        response: str,
        communication_id: Optional[int] = None,
    ) -> models.Application:
        """INFO_REQUESTED -> UNDER_REVIEW once the applicant answers."""
        response = _required_text(response, "response", "A response is required")
        application = ApplicationService.get(db, application_id)
        ApplicationService._ensure_owner(application, actor)

        query = db.query(models.Communication).filter(
            models.Communication.application_id == application_id,
            models.Communication.response_required.is_(True),
            models.Communication.response_received_at.is_(None),
        )
        if communication_id is not None:
            query = query.filter(models.Communication.id == communication_id)
        communication = query.order_by(models.Communication.id.desc()).first()
        if communication_id is not None and communication is None:
            raise ValidationError("No open information request with that id", field="communication_id")

        APPLICATION_MACHINE.transition(
            db, application, ApplicationStatus.UNDER_REVIEW, actor,
            reason="Applicant provided requested information",
            expected_status=ApplicationStatus.INFO_REQUESTED,
        )
        if communication is not None:
            communication.response_content = response
            communication.response_received_at = _now()
        db.commit()
        db.refresh(application)
        logger.info(f"Applicant responded to information request on application {application_id}")
        return application

    @staticmethod
    def decide(
        db: Session,
        application_id: int,
        actor: ReviewerContext,
        decision: Decision,
        reason: Optional[str] = None,
        expected_status: Optional[ApplicationStatus] = None,
    ) -> models.Application:
        """Approve or decline from SUBMITTED, UNDER_REVIEW or INFO_REQUESTED. Declining requires a reason."""
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError("Decision must be APPROVED or DECLINED", field="decision")
        reason = reason.strip() if reason else None
        if decision == Decision.DECLINED and not reason:
            raise ValidationError("A reason is required when declining an application", field="reason")

        application = ApplicationService.get(db, application_id)
        APPLICATION_MACHINE.transition(
            db,
            application,
            ApplicationStatus(decision.value),
            actor,
            reason=reason,
            expected_status=expected_status,
            values={
                "decided_at": _now(),
                "decided_by_name": actor.reviewer_name,
                "decision_reason": reason,
            },
        )
        db.commit()
        db.refresh(application)
        logger.info(f"Application {application.id} {decision.value.lower()} by {actor.reviewer_name}")
        return application

    @staticmethod
    def withdraw(
        db: Session,
        application_id: int,
        actor: ReviewerContext,
        reason: Optional[str] = None,
        expected_status: Optional[ApplicationStatus] = None,
    ) -> models.Application:
        """Applicant withdraws from any non-terminal status."""
        application = ApplicationService.get(db, application_id)
        ApplicationService._ensure_owner(application, actor)
        APPLICATION_MACHINE.transition(
            db, application, ApplicationStatus.WITHDRAWN, actor,
            reason=reason or "Application withdrawn by applicant",
            expected_status=expected_status,
        )
        db.commit()
        db.refresh(application)
        logger.info(f"Application {application.id} withdrawn by {actor.reviewer_name}")
        return application

    @staticmethod
    def add_note(db: Session, application_id: int, actor: ReviewerContext, content: str) -> models.Note:
        """Attach a private reviewer note. Notes never change status."""
        content = _required_text(content, "content", "Note content is required")
        ApplicationService.get(db, application_id)
        note = models.Note(
            application_id=application_id,
            author_id=actor.reviewer_id,
            author_name=actor.reviewer_name,
            content=content,
            is_private=True,
        )
        db.add(note)
        db.commit()
        db.refresh(note)
        return note

    @staticmethod
    def list_notes(db: Session, application_id: int) -> List[models.Note]:
        ApplicationService.get(db, application_id)
        return (
            db.query(models.Note)
            .filter(models.Note.application_id == application_id)
            .order_by(models.Note.created_at.desc(), models.Note.id.desc())
            .all()
        )

    @staticmethod
    def history(db: Session, application_id: int):
        ApplicationService.get(db, application_id)
        return StatusLedger.history(db, "application", application_id)
