"""
Voting aggregator: upsert-per-reviewer and roster-merged tallies.
"""

import pytest

from grant_review.core.exceptions import NotFound, TerminalStateError, ValidationError
from grant_review.db import models
from grant_review.db.enums import UserRole, VoteChoice
from grant_review.services.application_service import ApplicationService
from grant_review.services.voting_service import PENDING, VotingService


@pytest.fixture
def application(db, approved_application, reviewer, applicant):
    application = approved_application
    ApplicationService.submit(db, application.id, applicant)
    return ApplicationService.start_review(db, application.id, reviewer)


def test_revote_overwrites_in_place(db, application, reviewer):
    VotingService.cast_vote(db, application.id, reviewer, VoteChoice.APPROVE, "Strong outcomes")
    vote = VotingService.cast_vote(db, application.id, reviewer, VoteChoice.DECLINE, "Budget concerns")

    rows = db.query(models.Vote).filter(models.Vote.application_id == application.id).all()
    assert len(rows) == 1
    assert rows[0].id == vote.id
    assert rows[0].vote == VoteChoice.DECLINE
    assert rows[0].reasoning == "Budget concerns"

    tally = VotingService.tally(db, application.id)
    assert (tally.approve, tally.decline) == (0, 1)


def test_tally_merges_roster_with_pending(db, application, admin, reviewer, second_reviewer):
    VotingService.cast_vote(db, application.id, reviewer, VoteChoice.APPROVE)
    VotingService.cast_vote(db, application.id, admin, VoteChoice.ABSTAIN)

    tally = VotingService.tally(db, application.id)

    assert (tally.approve, tally.decline, tally.abstain) == (1, 0, 1)
    assert tally.pending == 1
    assert tally.total_votes == 2
    by_reviewer = {r.reviewer_id: r.vote for r in tally.reviewers}
    assert by_reviewer == {
        admin.reviewer_id: "ABSTAIN",
        reviewer.reviewer_id: "APPROVE",
        second_reviewer.reviewer_id: PENDING,
    }


def test_applicants_are_not_on_the_roster(db, application, applicant, reviewer):
    tally = VotingService.tally(db, application.id)

    assert applicant.reviewer_id not in {r.reviewer_id for r in tally.reviewers}


def test_voter_removed_from_roster_still_counted(db, application, reviewer_user, reviewer):
    VotingService.cast_vote(db, application.id, reviewer, VoteChoice.APPROVE)
    reviewer_user.is_active = False
    db.commit()

    tally = VotingService.tally(db, application.id)

    assert tally.approve == 1
    assert reviewer.reviewer_id in {r.reviewer_id for r in tally.reviewers}


def test_explicit_roster(db, application, reviewer, make_user):
    panelist = make_user("panelist@foundation.org", UserRole.REVIEWER, "Pat Panelist")

    tally = VotingService.tally(db, application.id, roster=[panelist])

    assert [(r.reviewer_name, r.vote) for r in tally.reviewers] == [("Pat Panelist", PENDING)]


def test_votes_never_decide(db, application, reviewer, second_reviewer, admin):
    for actor in (reviewer, second_reviewer, admin):
        VotingService.cast_vote(db, application.id, actor, VoteChoice.APPROVE)

    db.refresh(application)
    assert application.status.value == "UNDER_REVIEW"


def test_votes_persist_across_info_request(db, application, reviewer, applicant):
    VotingService.cast_vote(db, application.id, reviewer, VoteChoice.APPROVE)
    ApplicationService.request_info(db, application.id, reviewer, "Send the board roster")
    ApplicationService.respond_to_info_request(db, application.id, applicant, "Attached")

    assert VotingService.tally(db, application.id).approve == 1


def test_cannot_vote_after_decision(db, application, reviewer, admin):
    ApplicationService.decide(db, application.id, admin, "APPROVED")

    with pytest.raises(TerminalStateError):
        VotingService.cast_vote(db, application.id, reviewer, VoteChoice.DECLINE)


def test_invalid_vote_value(db, application, reviewer):
    with pytest.raises(ValidationError):
        VotingService.cast_vote(db, application.id, reviewer, "MAYBE")


def test_unknown_application(db, reviewer):
    with pytest.raises(NotFound):
        VotingService.cast_vote(db, 9999, reviewer, VoteChoice.APPROVE)
