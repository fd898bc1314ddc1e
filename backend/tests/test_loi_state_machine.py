"""
LOI lifecycle: submission checks, review entry, decisions and the approval cascade.
"""

from datetime import datetime, timedelta, timezone

import pytest

from grant_review.core.exceptions import (
    PermissionDenied,
    PreconditionFailed,
    TerminalStateError,
    ValidationError,
)
from grant_review.db import models
from grant_review.db.enums import ApplicationStatus, LOIStatus
from grant_review.services.loi_service import LOI_MACHINE, LOIService
from grant_review.services.status_ledger import StatusLedger


def test_create_writes_initial_ledger_entry(db, make_loi, org):
    loi = make_loi(org, status=LOIStatus.DRAFT)

    assert loi.status == LOIStatus.DRAFT
    history = LOIService.history(db, loi.id)
    assert [(h.previous_status, h.new_status) for h in history] == [(None, LOIStatus.DRAFT)]


def test_one_loi_per_organization_per_cycle(db, make_loi, org, cycle, applicant):
    make_loi(org, status=LOIStatus.DRAFT)

    with pytest.raises(PreconditionFailed):
        LOIService.create(db, applicant, org.id, cycle.id, {})


def test_applicant_cannot_create_for_another_organization(db, make_org, cycle, applicant):
    other = make_org("Other Org", "other@example.org")

    with pytest.raises(PermissionDenied):
        LOIService.create(db, applicant, other.id, cycle.id, {})


def test_submit_requires_all_fields(db, make_loi, org, applicant):
    loi = make_loi(org, status=LOIStatus.DRAFT, project_title=None, grant_request_amount=None)

    with pytest.raises(ValidationError) as exc_info:
        LOIService.submit(db, loi.id, applicant, staff_emails=[])

    assert exc_info.value.context["missing_fields"] == ["Project Title", "Grant Request Amount"]
    db.refresh(loi)
    assert loi.status == LOIStatus.DRAFT


def test_submit_enforces_word_limit(db, make_loi, org, applicant):
    loi = make_loi(org, status=LOIStatus.DRAFT, project_description="word " * 501)

    with pytest.raises(ValidationError) as exc_info:
        LOIService.submit(db, loi.id, applicant, staff_emails=[])

    assert exc_info.value.field == "project_description"


def test_submit_after_deadline_is_rejected(db, make_loi, org, cycle, applicant):
    loi = make_loi(org, status=LOIStatus.DRAFT)
    cycle.loi_deadline = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()

    with pytest.raises(PreconditionFailed):
        LOIService.submit(db, loi.id, applicant, staff_emails=[])


def test_submit_stamps_submission(db, make_loi, org):
    loi = make_loi(org)

    assert loi.status == LOIStatus.SUBMITTED
    assert loi.submitted_at is not None
    assert loi.submitted_by_name == "Dana Director"


def test_resubmitting_is_a_precondition_failure(db, loi, applicant):
    with pytest.raises(PreconditionFailed) as exc_info:
        LOIService.submit(db, loi.id, applicant, staff_emails=[])

    assert exc_info.value.context["current_status"] == "SUBMITTED"


def test_only_drafts_are_editable(db, loi, applicant):
    with pytest.raises(PreconditionFailed):
        LOIService.update_draft(db, loi.id, applicant, {"project_title": "New title"})


def test_enter_review_is_idempotent(db, loi, reviewer, second_reviewer):
    LOIService.enter_review(db, loi.id, reviewer)
    LOIService.enter_review(db, loi.id, second_reviewer)

    history = LOIService.history(db, loi.id)
    assert [h.new_status for h in history].count(LOIStatus.UNDER_REVIEW) == 1


def test_approve_spawns_exactly_one_application(db, make_loi, org, reviewer):
    loi = make_loi(org, status=LOIStatus.UNDER_REVIEW)

    loi, application = LOIService.decide(db, loi.id, reviewer, "APPROVED")

    assert loi.status == LOIStatus.APPROVED
    assert loi.application_id == application.id
    assert loi.reviewed_by_name == "Robin Reviewer"
    assert loi.reviewed_at is not None
    assert loi.released_at is None
    assert application.status == ApplicationStatus.DRAFT
    assert application.loi_id == loi.id
    assert application.project_title == loi.project_title
    assert application.amount_requested == loi.grant_request_amount

    app_history = StatusLedger.history(db, "application", application.id)
    assert app_history[0].new_status == ApplicationStatus.DRAFT
    assert app_history[0].reason == f"Created from approved LOI #{loi.id}"

    with pytest.raises(TerminalStateError):
        LOIService.decide(db, loi.id, reviewer, "APPROVED")
    assert db.query(models.Application).filter(models.Application.loi_id == loi.id).count() == 1


def test_approve_directly_from_submitted(db, loi, reviewer):
    loi, application = LOIService.decide(db, loi.id, reviewer, "APPROVED")

    assert loi.status == LOIStatus.APPROVED
    assert application is not None


def test_decline_requires_reason(db, loi, reviewer):
    with pytest.raises(ValidationError) as exc_info:
        LOIService.decide(db, loi.id, reviewer, "DECLINED", reason="   ")

    assert exc_info.value.field == "reason"
    db.refresh(loi)
    assert loi.status == LOIStatus.SUBMITTED
    assert len(LOIService.history(db, loi.id)) == 2


def test_decline_records_reason_and_creates_no_application(db, loi, reviewer):
    loi, application = LOIService.decide(
        db, loi.id, reviewer, "DECLINED", reason="Outside funding priorities", notes="Geography mismatch"
    )

    assert application is None
    assert loi.status == LOIStatus.DECLINED
    assert loi.decision_reason == "Outside funding priorities"
    assert loi.review_notes == "Geography mismatch"
    assert loi.application_id is None
    assert LOIService.history(db, loi.id)[-1].reason == "Outside funding priorities"


def test_redeciding_a_declined_loi_is_terminal(db, make_loi, org, reviewer):
    loi = make_loi(org, status=LOIStatus.DECLINED)

    with pytest.raises(TerminalStateError):
        LOIService.decide(db, loi.id, reviewer, "APPROVED")


def test_cannot_decide_a_draft(db, make_loi, org, reviewer):
    loi = make_loi(org, status=LOIStatus.DRAFT)

    with pytest.raises(PreconditionFailed) as exc_info:
        LOIService.decide(db, loi.id, reviewer, "APPROVED")

    assert exc_info.value.context["allowed_from"] == ["SUBMITTED", "UNDER_REVIEW"]


def test_expected_status_mismatch(db, loi, reviewer):
    with pytest.raises(PreconditionFailed) as exc_info:
        LOIService.decide(db, loi.id, reviewer, "APPROVED", expected_status=LOIStatus.UNDER_REVIEW)

    assert exc_info.value.context == {"current_status": "SUBMITTED", "expected_status": "UNDER_REVIEW"}


def test_invalid_decision_value(db, loi, reviewer):
    with pytest.raises(ValidationError):
        LOIService.decide(db, loi.id, reviewer, "MAYBE")


def test_losing_a_decision_race_raises_instead_of_overwriting(db, session_factory, loi, reviewer, second_reviewer):
    # Load in the first session so its copy goes stale
    stale = LOIService.get(db, loi.id)
    assert stale.status == LOIStatus.SUBMITTED

    other = session_factory()
    try:
        LOIService.decide(other, loi.id, second_reviewer, "DECLINED", reason="Not a fit")
    finally:
        other.close()

    with pytest.raises(TerminalStateError):
        LOIService.decide(db, loi.id, reviewer, "APPROVED")

    db.refresh(stale)
    assert stale.status == LOIStatus.DECLINED
    assert stale.application_id is None
    assert db.query(models.Application).count() == 0


def test_transition_table_is_closed():
    assert LOI_MACHINE.is_terminal(LOIStatus.APPROVED)
    assert LOI_MACHINE.is_terminal(LOIStatus.DECLINED)
    assert LOI_MACHINE.sources_for(LOIStatus.UNDER_REVIEW) == {LOIStatus.SUBMITTED}
