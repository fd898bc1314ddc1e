"""
Decision release endpoints (admin only).
"""

from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, model_validator

from grant_review.db.database import get_db
from grant_review.db.enums import LOIStatus
from grant_review.core.config import settings
from grant_review.core.middleware import get_rate_limiter
from grant_review.core.security import ReviewerContext
from grant_review.api.v1.auth import require_admin
from grant_review.services.notification_service import DecisionNotifier, EmailDecisionNotifier
from grant_review.services.release_service import ReleaseService

limiter = get_rate_limiter()

router = APIRouter()


def get_decision_notifier() -> DecisionNotifier:
    """Notifier used for releases; overridden in tests."""
    return EmailDecisionNotifier()


class PendingReleaseResponse(BaseModel):
    id: int
    organization_id: int
    status: LOIStatus
    project_title: Optional[str] = None
    primary_contact_email: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by_name: Optional[str] = None
    decision_reason: Optional[str] = None
    application_id: Optional[int] = None

    class Config:
        from_attributes = True


class ReleaseRequest(BaseModel):
    loi_ids: List[int] = []
    release_all: bool = False

    @model_validator(mode="after")
    def check_target(self):
        if not self.release_all and not self.loi_ids:
            raise ValueError("Provide loi_ids or set release_all")
        return self


class ReleaseItemResponse(BaseModel):
    loi_id: int
    outcome: str
    email_sent: bool
    error: Optional[str] = None

    class Config:
        from_attributes = True


class ReleaseSummaryResponse(BaseModel):
    results: List[ReleaseItemResponse]
    released_count: int
    emails_sent_count: int
    skipped_count: int
    failed_count: int

    class Config:
        from_attributes = True


@router.get("/pending", response_model=List[PendingReleaseResponse])
async def list_pending_releases(
    actor: ReviewerContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Decided LOIs not yet released to applicants, most recent first."""
    return ReleaseService.list_pending(db)


@router.post("/", response_model=ReleaseSummaryResponse)
@limiter.limit(settings.RATE_LIMIT_RELEASES)
async def release_decisions(
    request: Request,
    release_request: ReleaseRequest,
    actor: ReviewerContext = Depends(require_admin),
    notifier: DecisionNotifier = Depends(get_decision_notifier),
    db: Session = Depends(get_db)
):
    """
    Release LOI decisions and notify applicants.

    Each LOI is handled independently; the response reports the outcome of
    every item rather than a single success flag.
    """
    if release_request.release_all:
        summary = ReleaseService.release_all(db, actor, notifier)
    else:
        summary = ReleaseService.release_selected(db, release_request.loi_ids, actor, notifier)
    return ReleaseSummaryResponse.model_validate(summary)
