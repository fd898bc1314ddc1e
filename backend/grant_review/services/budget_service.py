"""
Budget assessment rubric.

Reviewers score four categories 1-5. The weighted composite is always
computed here from the stored category scores; composites sent by a client
are never trusted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from grant_review.core.exceptions import ValidationError
from grant_review.core.security import ReviewerContext
from grant_review.db import models
from grant_review.db.repository import get_or_404, upsert_reviewer_row
from grant_review.services.voting_service import ensure_application_open

logger = logging.getLogger(__name__)

CATEGORY_WEIGHTS = {
    "budget_reasonableness": 0.30,
    "cost_efficiency": 0.25,
    "budget_detail": 0.25,
    "sustainability": 0.20,
}

MIN_SCORE = 1
MAX_SCORE = 5


def compute_composite(scores: Mapping[str, Optional[int]]) -> Optional[float]:
    """Weighted composite rounded to 2 decimals, or None unless every category is scored."""
    if any(scores.get(category) is None for category in CATEGORY_WEIGHTS):
        return None
    total = sum(scores[category] * weight for category, weight in CATEGORY_WEIGHTS.items())
    return round(total, 2)


def validate_scores(scores: Mapping[str, Any]) -> Dict[str, int]:
    """Require all four categories as integers in 1-5."""
    missing = [category for category in CATEGORY_WEIGHTS if scores.get(category) is None]
    if missing:
        raise ValidationError(
            "All four budget categories must be scored",
            field="scores",
            missing_fields=missing,
        )

    cleaned = {}
    for category in CATEGORY_WEIGHTS:
        value = scores[category]
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{category} must be a whole number", field=category)
        if not MIN_SCORE <= value <= MAX_SCORE:
            raise ValidationError(f"{category} must be between {MIN_SCORE} and {MAX_SCORE}", field=category)
        cleaned[category] = value
    return cleaned


@dataclass
class BudgetAggregate:
    application_id: int
    complete_count: int = 0
    total_count: int = 0
    category_means: Optional[Dict[str, float]] = None
    composite_mean: Optional[float] = None
    assessments: List[models.BudgetAssessment] = field(default_factory=list)


class BudgetAssessmentService:

    @staticmethod
    def submit(
        db: Session,
        application_id: int,
        actor: ReviewerContext,
        scores: Mapping[str, Any],
        notes: Optional[str] = None,
    ) -> models.BudgetAssessment:
        cleaned = validate_scores(scores)
        application = get_or_404(db, models.Application, application_id, "Application")
        ensure_application_open(application)

        row = upsert_reviewer_row(
            db,
            models.BudgetAssessment,
            application_id,
            actor.reviewer_id,
            {
                **cleaned,
                "composite_score": compute_composite(cleaned),
                "reviewer_name": actor.reviewer_name,
                "notes": notes,
            },
        )
        db.commit()
        db.refresh(row)
        logger.info(
            f"Reviewer {actor.reviewer_id} scored application {application_id} budget "
            f"(composite {row.composite_score})"
        )
        return row

    @staticmethod
    def aggregate(db: Session, application_id: int) -> BudgetAggregate:
        """
        Mean of each category and of composites over complete assessments.

        Incomplete rows count toward total_count only. With no complete
        assessment the means are None, never zero.
        """
        get_or_404(db, models.Application, application_id, "Application")
        assessments = (
            db.query(models.BudgetAssessment)
            .filter(models.BudgetAssessment.application_id == application_id)
            .order_by(models.BudgetAssessment.id)
            .all()
        )
        result = BudgetAggregate(
            application_id=application_id,
            total_count=len(assessments),
            assessments=assessments,
        )

        complete = []
        for assessment in assessments:
            scores = {category: getattr(assessment, category) for category in CATEGORY_WEIGHTS}
            composite = compute_composite(scores)
            if composite is not None:
                complete.append((scores, composite))

        result.complete_count = len(complete)
        if not complete:
            return result

        n = len(complete)
        result.category_means = {
            category: round(sum(scores[category] for scores, _ in complete) / n, 2)
            for category in CATEGORY_WEIGHTS
        }
        result.composite_mean = round(sum(composite for _, composite in complete) / n, 2)
        return result
