"""
Budget assessment rubric: composite math, validation and aggregation.
"""

import pytest

from grant_review.core.exceptions import TerminalStateError, ValidationError
from grant_review.db import models
from grant_review.services.application_service import ApplicationService
from grant_review.services.budget_service import (
    BudgetAssessmentService,
    compute_composite,
    validate_scores,
)


def scores(br, ce, bd, sus):
    return {
        "budget_reasonableness": br,
        "cost_efficiency": ce,
        "budget_detail": bd,
        "sustainability": sus,
    }


@pytest.fixture
def application(db, approved_application, reviewer, applicant):
    application = approved_application
    ApplicationService.submit(db, application.id, applicant)
    return ApplicationService.start_review(db, application.id, reviewer)


@pytest.mark.parametrize("values, expected", [
    ((4, 3, 5, 2), 3.60),
    ((4, 4, 4, 5), 4.20),
    ((5, 5, 5, 5), 5.00),
    ((1, 1, 1, 1), 1.00),
    ((3, 4, 2, 5), 3.40),
])
def test_composite(values, expected):
    assert compute_composite(scores(*values)) == expected


def test_composite_is_none_when_incomplete():
    assert compute_composite(scores(4, 3, None, 2)) is None


@pytest.mark.parametrize("bad", [0, 6, 3.5, "4", True])
def test_scores_must_be_integers_in_range(bad):
    with pytest.raises(ValidationError) as exc_info:
        validate_scores(scores(4, 3, 5, bad))

    assert exc_info.value.field == "sustainability"


def test_all_categories_required():
    with pytest.raises(ValidationError) as exc_info:
        validate_scores({"budget_reasonableness": 4, "cost_efficiency": 3})

    assert exc_info.value.context["missing_fields"] == ["budget_detail", "sustainability"]


def test_submit_stores_server_side_composite(db, application, reviewer):
    row = BudgetAssessmentService.submit(
        db, application.id, reviewer, {**scores(4, 3, 5, 2), "composite_score": 5.0}, notes="Lean budget"
    )

    assert row.composite_score == 3.60
    assert row.reviewer_name == "Robin Reviewer"
    assert row.notes == "Lean budget"


def test_resubmission_overwrites(db, application, reviewer):
    BudgetAssessmentService.submit(db, application.id, reviewer, scores(2, 2, 2, 2))
    BudgetAssessmentService.submit(db, application.id, reviewer, scores(4, 4, 4, 5))

    rows = db.query(models.BudgetAssessment).filter_by(application_id=application.id).all()
    assert len(rows) == 1
    assert rows[0].composite_score == 4.20


def test_aggregate_ignores_incomplete_assessments(db, application, reviewer, second_reviewer, admin):
    BudgetAssessmentService.submit(db, application.id, reviewer, scores(4, 3, 5, 2))
    BudgetAssessmentService.submit(db, application.id, second_reviewer, scores(4, 4, 4, 5))
    # Partial row left by an older client
    db.add(models.BudgetAssessment(
        application_id=application.id,
        reviewer_id=admin.reviewer_id,
        reviewer_name=admin.reviewer_name,
        budget_reasonableness=5,
        cost_efficiency=5,
    ))
    db.commit()

    aggregate = BudgetAssessmentService.aggregate(db, application.id)

    assert aggregate.composite_mean == 3.90
    assert aggregate.complete_count == 2
    assert aggregate.total_count == 3
    assert aggregate.category_means == {
        "budget_reasonableness": 4.0,
        "cost_efficiency": 3.5,
        "budget_detail": 4.5,
        "sustainability": 3.5,
    }


def test_aggregate_with_no_complete_assessments_is_null(db, application):
    aggregate = BudgetAssessmentService.aggregate(db, application.id)

    assert aggregate.composite_mean is None
    assert aggregate.category_means is None
    assert aggregate.complete_count == 0


def test_cannot_assess_after_decision(db, application, reviewer, admin):
    ApplicationService.decide(db, application.id, admin, "DECLINED", reason="Over budget")

    with pytest.raises(TerminalStateError):
        BudgetAssessmentService.submit(db, application.id, reviewer, scores(3, 3, 3, 3))
