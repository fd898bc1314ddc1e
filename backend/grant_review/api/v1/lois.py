"""
Letter of Interest endpoints.
"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, field_validator

from grant_review.db.database import get_db
from grant_review.db.enums import Decision, LOIStatus
from grant_review.core.config import settings
from grant_review.core.middleware import get_rate_limiter
from grant_review.core.sanitization import sanitize_optional_text
from grant_review.core.security import ReviewerContext
from grant_review.api.v1.auth import get_reviewer_context, require_reviewer
from grant_review.services.loi_service import LOIService

limiter = get_rate_limiter()

router = APIRouter()

_UNRELEASED_DECISIONS = (LOIStatus.APPROVED, LOIStatus.DECLINED)


class LOIFields(BaseModel):
    primary_contact_email: Optional[EmailStr] = None
    project_title: Optional[str] = None
    project_description: Optional[str] = None
    grant_request_amount: Optional[Decimal] = None
    total_project_amount: Optional[Decimal] = None

    @field_validator("project_title", "project_description")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class LOICreate(LOIFields):
    cycle_id: int
    organization_id: Optional[int] = None  # Defaults to the caller's organization


class LOIResponse(BaseModel):
    id: int
    organization_id: int
    cycle_id: int
    status: LOIStatus
    primary_contact_email: Optional[str] = None
    project_title: Optional[str] = None
    project_description: Optional[str] = None
    grant_request_amount: Optional[Decimal] = None
    total_project_amount: Optional[Decimal] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by_name: Optional[str] = None
    review_notes: Optional[str] = None
    decision_reason: Optional[str] = None
    application_id: Optional[int] = None
    released_at: Optional[datetime] = None
    notification_sent: bool = False
    notification_error: Optional[str] = None

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    id: int
    previous_status: Optional[str]
    new_status: str
    reason: Optional[str]
    changed_by_id: Optional[int]
    changed_by_name: str
    created_at: datetime

    @field_validator("previous_status", "new_status", mode="before")
    @classmethod
    def status_value(cls, value):
        return getattr(value, "value", value)

    class Config:
        from_attributes = True


class LOIDecisionRequest(BaseModel):
    decision: Decision
    reason: Optional[str] = None
    notes: Optional[str] = None
    expected_status: Optional[LOIStatus] = None

    @field_validator("reason", "notes")
    @classmethod
    def sanitize(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_optional_text(value)


class LOIDecisionResponse(BaseModel):
    loi: LOIResponse
    application_id: Optional[int] = None


def present_loi(loi, viewer: ReviewerContext) -> LOIResponse:
    """Staff see everything; applicants only see a decision once it is released."""
    response = LOIResponse.model_validate(loi)
    if viewer.is_reviewer:
        return response

    hidden = {"review_notes": None, "reviewed_by_name": None, "notification_error": None}
    if loi.status in _UNRELEASED_DECISIONS and loi.released_at is None:
        hidden.update({
            "status": LOIStatus.UNDER_REVIEW,
            "reviewed_at": None,
            "decision_reason": None,
            "application_id": None,
        })
    return response.model_copy(update=hidden)


def _load_visible(db: Session, loi_id: int, viewer: ReviewerContext):
    loi = LOIService.get(db, loi_id)
    if not viewer.is_reviewer and viewer.organization_id != loi.organization_id:
        # Don't leak existence of other organizations' LOIs
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Letter of Interest not found")
    return loi


@router.post("/", response_model=LOIResponse, status_code=status.HTTP_201_CREATED)
async def create_loi(
    loi_data: LOICreate,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """Start a draft LOI for an organization in a grant cycle."""
    organization_id = loi_data.organization_id or actor.organization_id
    if organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="organization_id is required"
        )
    fields = loi_data.model_dump(exclude={"cycle_id", "organization_id"}, exclude_unset=True)
    loi = LOIService.create(db, actor, organization_id, loi_data.cycle_id, fields)
    return present_loi(loi, actor)


@router.get("/", response_model=List[LOIResponse])
async def list_lois(
    status_filter: Optional[LOIStatus] = None,
    cycle_id: Optional[int] = None,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """List LOIs. Applicants only see their own organization's."""
    organization_id = None if actor.is_reviewer else actor.organization_id
    if not actor.is_reviewer and organization_id is None:
        return []
    lois = LOIService.list_lois(db, status=status_filter, cycle_id=cycle_id, organization_id=organization_id)
    return [present_loi(loi, actor) for loi in lois]


@router.get("/{loi_id}", response_model=LOIResponse)
async def get_loi(
    loi_id: int,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    return present_loi(_load_visible(db, loi_id, actor), actor)


@router.patch("/{loi_id}", response_model=LOIResponse)
async def update_loi(
    loi_id: int,
    loi_data: LOIFields,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """Edit a draft LOI."""
    loi = LOIService.update_draft(db, loi_id, actor, loi_data.model_dump(exclude_unset=True))
    return present_loi(loi, actor)


@router.post("/{loi_id}/submit", response_model=LOIResponse)
async def submit_loi(
    loi_id: int,
    actor: ReviewerContext = Depends(get_reviewer_context),
    db: Session = Depends(get_db)
):
    """Submit a draft LOI for review."""
    loi = LOIService.submit(db, loi_id, actor)
    return present_loi(loi, actor)


@router.patch("/{loi_id}/review", response_model=LOIResponse)
async def enter_loi_review(
    loi_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Mark a submitted LOI as under review (idempotent)."""
    loi = LOIService.enter_review(db, loi_id, actor)
    return present_loi(loi, actor)


@router.post("/{loi_id}/decision", response_model=LOIDecisionResponse)
@limiter.limit(settings.RATE_LIMIT_DECISIONS)
async def decide_loi(
    request: Request,
    loi_id: int,
    decision_data: LOIDecisionRequest,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """
    Approve or decline an LOI.

    Approval creates the applicant's draft application. The applicant is not
    told until the decision is released.
    """
    loi, application = LOIService.decide(
        db,
        loi_id,
        actor,
        decision_data.decision,
        reason=decision_data.reason,
        notes=decision_data.notes,
        expected_status=decision_data.expected_status,
    )
    return LOIDecisionResponse(
        loi=present_loi(loi, actor),
        application_id=application.id if application is not None else None,
    )


@router.get("/{loi_id}/history", response_model=List[StatusHistoryResponse])
async def get_loi_history(
    loi_id: int,
    actor: ReviewerContext = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    """Status ledger for an LOI, oldest first."""
    return LOIService.history(db, loi_id)
