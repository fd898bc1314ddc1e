"""
Application review endpoints: lifecycle, votes, budget assessments and notes.
"""

from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, field_validator

from grant_review.db.database import get_db
from grant_review.db.enums import ApplicationStatus, Decision, VoteChoice
from grant_review.core.config import settings
from grant_review.core.middleware import get_rate_limiter
from grant_review.core.sanitization import sanitize_optional_text
from grant_review.core.security import ReviewerContext
from grant_review.api.v1.auth import get_reviewer_context, require_admin, require_reviewer
from grant_review.api.v1.lois import StatusHistoryResponse
from grant_review.services.application_service import ApplicationService
from grant_review.services.budget_service import BudgetAssessmentService
from grant_review.services.voting_service import VotingService

limiter = get_rate_limiter()

router = APIRouter()


class ApplicationCreate(BaseModel):
    """Direct creation without an LOI (legacy intake)."""
    organization_id: Optional[int] = None
    cycle_id: Optional[int] = None
    project_title: Optional[str] = None
    project_description: Optional[str] = None
    amount_requested: Optional[Decimal] = None
    total_project_budget: Optional[Decimal] = None

    @field_validator("project_title", "project_description")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class ApplicationResponse(BaseModel):
    id: int
    loi_id: Optional[int] = None
    organization_id: int
    cycle_id: Optional[int] = None
    status: ApplicationStatus
    project_title: Optional[str] = None
    project_description: Optional[str] = None
    amount_requested: Optional[Decimal] = None
    total_project_budget: Optional[Decimal] = None
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    decided_by_name: Optional[str] = None
    decision_reason: Optional[str] = None

    class Config:
        from_attributes = True


class InfoRequest(BaseModel):
    message: str
    expected_status: Optional[ApplicationStatus] = ApplicationStatus.UNDER_REVIEW
    response_deadline: Optional[datetime] = None

    @field_validator("message")
    @classmethod
    def sanitize(cls, value: str) -> str:
        return sanitize_optional_text(value) or ""


class InfoResponse(BaseModel):
    response: str
    communication_id: Optional[int] = None

    @field_validator("response")
    @classmethod
    def sanitize(cls, value: str) -> str:
        return sanitize_optional_text(value) or ""


class CommunicationResponse(BaseModel):
    id: int
    application_id: int
    subject: str
    content: str
    sent_by_name: str
    response_required: bool
    response_deadline: Optional[datetime] = None
    response_content: Optional[str] = None
    response_received_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ApplicationDecisionRequest(BaseModel):
    decision: Decision
    reason: Optional[str] = None
    expected_status: Optional[ApplicationStatus] = None

    @field_validator("reason")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class WithdrawRequest(BaseModel):
    reason: Optional[str] = None
    expected_status: Optional[ApplicationStatus] = None

    @field_validator("reason")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class VoteRequest(BaseModel):
    vote: VoteChoice
    reasoning: Optional[str] = None

    @field_validator("reasoning")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class VoteResponse(BaseModel):
    id: int
    application_id: int
    reviewer_id: int
    reviewer_name: str
    vote: VoteChoice
    reasoning: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReviewerVoteResponse(BaseModel):
    reviewer_id: int
    reviewer_name: str
    vote: str
    reasoning: Optional[str] = None

    class Config:
        from_attributes = True


class TallyResponse(BaseModel):
    application_id: int
    approve: int
    decline: int
    abstain: int
    pending: int
    total_votes: int
    reviewers: List[ReviewerVoteResponse]

    class Config:
        from_attributes = True


class BudgetAssessmentRequest(BaseModel):
    # Composite is derived server-side; a client-supplied value is ignored
    budget_reasonableness: Optional[int] = None
    cost_efficiency: Optional[int] = None
    budget_detail: Optional[int] = None
    sustainability: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class BudgetAssessmentResponse(BaseModel):
    id: int
    application_id: int
    reviewer_id: int
    reviewer_name: str
    budget_reasonableness: Optional[int] = None
    cost_efficiency: Optional[int] = None
    budget_detail: Optional[int] = None
    sustainability: Optional[int] = None
    composite_score: Optional[float] = None
    notes: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class BudgetAggregateResponse(BaseModel):
    application_id: int
    complete_count: int
    total_count: int
    category_means: Optional[Dict[str, float]] = None
    composite_mean: Optional[float] = None
    assessments: List[BudgetAssessmentResponse]

    class Config:
        from_attributes = True


class NoteCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def sanitize(cls, value: str) -> str:
        return sanitize_optional_text(value) or ""


class NoteResponse(BaseModel):
    id: int
    application_id: int
    author_id: int
    author_name: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


def _load_visible(db: Session, application_id: int, viewer: ReviewerContext):
    application = ApplicationService.get(db, application_id)
    hidden = viewer.organization_id != application.organization_id or ApplicationService.awaiting_release(application)
    if not viewer.is_reviewer and hidden:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return application


@router.post("/", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def create_application(
    application_data: ApplicationCreate,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """Create an application directly, without an LOI (legacy flow)."""
    organization_id = application_data.organization_id or actor.organization_id
    if organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="organization_id is required"
        )
    return ApplicationService.create_direct(
        db,
        actor,
        organization_id,
        **application_data.model_dump(exclude={"organization_id"}),
    )


@router.get("/", response_model=List[ApplicationResponse])
async def list_applications(
    status_filter: Optional[ApplicationStatus] = None,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """List applications. Applicants see their own organization's once the LOI approval is released."""
    if actor.is_reviewer:
        return ApplicationService.list_applications(db, status=status_filter)
    if actor.organization_id is None:
        return []
    return ApplicationService.list_applications(
        db, status=status_filter, organization_id=actor.organization_id, released_only=True
    )


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: int,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    return _load_visible(db, application_id, actor)


@router.post("/{application_id}/submit", response_model=ApplicationResponse)
async def submit_application(
    application_id: int,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    return ApplicationService.submit(db, application_id, actor)


@router.patch("/{application_id}/review", response_model=ApplicationResponse)
async def start_application_review(
    application_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Move a submitted application under review (idempotent)."""
    return ApplicationService.start_review(db, application_id, actor)


@router.post("/{application_id}/request-info", response_model=CommunicationResponse)
@limiter.limit(settings.RATE_LIMIT_DECISIONS)
async def request_application_info(
    request: Request,
    application_id: int,
    info_request: InfoRequest,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Ask the applicant for more information; the message is required."""
    return ApplicationService.request_info(
        db,
        application_id,
        actor,
        info_request.message,
        expected_status=info_request.expected_status,
        response_deadline=info_request.response_deadline,
    )


@router.post("/{application_id}/respond", response_model=ApplicationResponse)
async def respond_to_info_request(
    application_id: int,
    info_response: InfoResponse,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """Applicant answers an information request; the application returns to review."""
    return ApplicationService.respond_to_info_request(
        db, application_id, actor, info_response.response, info_response.communication_id
    )


@router.post("/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: int,
    withdraw_data: Optional[WithdrawRequest] = None,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    withdraw_data = withdraw_data or WithdrawRequest()
    return ApplicationService.withdraw(
        db, application_id, actor,
        reason=withdraw_data.reason,
        expected_status=withdraw_data.expected_status,
    )


@router.post("/{application_id}/decision", response_model=ApplicationResponse)
@limiter.limit(settings.RATE_LIMIT_DECISIONS)
async def decide_application(
    request: Request,
    application_id: int,
    decision_data: ApplicationDecisionRequest,
    actor: ReviewerContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Approve or decline an application (admin only). Votes are advisory."""
    return ApplicationService.decide(
        db,
        application_id,
        actor,
        decision_data.decision,
        reason=decision_data.reason,
        expected_status=decision_data.expected_status,
    )


@router.get("/{application_id}/votes", response_model=TallyResponse)
async def tally_votes(
    application_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    return TallyResponse.model_validate(VotingService.tally(db, application_id))


@router.post("/{application_id}/votes", response_model=VoteResponse)
@limiter.limit(settings.RATE_LIMIT_DECISIONS)
async def cast_vote(
    request: Request,
    application_id: int,
    vote_data: VoteRequest,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Cast or change the caller's vote."""
    return VotingService.cast_vote(db, application_id, actor, vote_data.vote, vote_data.reasoning)


@router.get("/{application_id}/budget-assessment", response_model=BudgetAggregateResponse)
async def aggregate_budget_assessment(
    application_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    return BudgetAggregateResponse.model_validate(BudgetAssessmentService.aggregate(db, application_id))


@router.post("/{application_id}/budget-assessment", response_model=BudgetAssessmentResponse)
@limiter.limit(settings.RATE_LIMIT_DECISIONS)
async def submit_budget_assessment(
    request: Request,
    application_id: int,
    assessment: BudgetAssessmentRequest,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Score the budget rubric; all four categories are required."""
    return BudgetAssessmentService.submit(
        db,
        application_id,
        actor,
        assessment.model_dump(exclude={"notes"}),
        notes=assessment.notes,
    )


@router.get("/{application_id}/notes", response_model=List[NoteResponse])
async def list_notes(
    application_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    return ApplicationService.list_notes(db, application_id)


@router.post("/{application_id}/notes", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_note(
    application_id: int,
    note_data: NoteCreate,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    return ApplicationService.add_note(db, application_id, actor, note_data.content)


@router.get("/{application_id}/history", response_model=List[StatusHistoryResponse])
async def get_application_history(
    application_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Status ledger for an application, oldest first, including info-request round trips."""
    return ApplicationService.history(db, application_id)
