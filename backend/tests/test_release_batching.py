"""
Decision release batcher: pending set, per-item independence and idempotence.
"""

import logging

import pytest

from grant_review.db.enums import LOIStatus
from grant_review.services.release_service import FAILED, RELEASED, SKIPPED, ReleaseService
from grant_review.services.status_ledger import StatusLedger


@pytest.fixture
def decided(make_org, make_loi):
    """A: approved, B: declined, each with its own contact."""
    org_a = make_org("Alpha Arts", "alpha@alpha-arts.org")
    org_b = make_org("Beta Health", "beta@beta-health.org")
    loi_a = make_loi(org_a, status=LOIStatus.APPROVED, primary_contact_email="alpha@alpha-arts.org")
    loi_b = make_loi(org_b, status=LOIStatus.DECLINED, primary_contact_email="beta@beta-health.org")
    return loi_a, loi_b


def test_list_pending_excludes_undecided_and_released(db, decided, make_org, make_loi, admin, notifier):
    loi_a, loi_b = decided
    undecided = make_loi(make_org("Gamma Youth", "gamma@gamma-youth.org"), status=LOIStatus.UNDER_REVIEW)

    assert {l.id for l in ReleaseService.list_pending(db)} == {loi_a.id, loi_b.id}

    ReleaseService.release_selected(db, [loi_a.id], admin, notifier)

    pending_ids = [l.id for l in ReleaseService.list_pending(db)]
    assert pending_ids == [loi_b.id]
    assert undecided.id not in pending_ids


def test_release_all_skips_already_released(db, decided, make_org, make_loi, admin, notifier):
    loi_a, loi_b = decided
    loi_c = make_loi(
        make_org("Gamma Youth", "gamma@gamma-youth.org"),
        status=LOIStatus.APPROVED,
        primary_contact_email="gamma@gamma-youth.org",
    )
    ReleaseService.release_selected(db, [loi_c.id], admin, notifier)
    notifier.sent.clear()

    summary = ReleaseService.release_all(db, admin, notifier)

    assert summary.released_count == 2
    assert {r.loi_id for r in summary.results} == {loi_a.id, loi_b.id}
    assert sorted(email for email, _ in notifier.sent) == ["alpha@alpha-arts.org", "beta@beta-health.org"]
    assert ReleaseService.list_pending(db) == []


def test_release_stamps_and_notifies(db, decided, admin, notifier):
    loi_a, loi_b = decided

    summary = ReleaseService.release_selected(db, [loi_a.id, loi_b.id], admin, notifier)

    assert summary.released_count == 2
    assert summary.emails_sent_count == 2
    for loi in decided:
        db.refresh(loi)
        assert loi.released_at is not None
        assert loi.released_by_name == "Avery Admin"
        assert loi.notification_sent is True
        assert loi.notification_sent_at is not None

    summaries = {email: s for email, s in notifier.sent}
    approved = summaries["alpha@alpha-arts.org"]
    assert approved.decision == LOIStatus.APPROVED
    assert approved.application_id == loi_a.application_id
    assert approved.full_app_deadline is not None
    declined = summaries["beta@beta-health.org"]
    assert declined.decision == LOIStatus.DECLINED
    assert declined.decision_reason == "Outside funding priorities"


def test_release_is_idempotent(db, decided, admin, notifier):
    loi_a, _ = decided

    first = ReleaseService.release_selected(db, [loi_a.id], admin, notifier)
    db.refresh(loi_a)
    released_at = loi_a.released_at
    second = ReleaseService.release_selected(db, [loi_a.id], admin, notifier)

    assert first.released_count == 1
    assert second.released_count == 0
    assert [r.outcome for r in second.results] == [SKIPPED]
    assert len(notifier.sent) == 1
    db.refresh(loi_a)
    assert loi_a.released_at == released_at


def test_undecided_and_unknown_ids_are_skipped(db, decided, make_org, make_loi, admin, notifier):
    loi_a, _ = decided
    undecided = make_loi(make_org("Gamma Youth", "gamma@gamma-youth.org"))

    summary = ReleaseService.release_selected(db, [undecided.id, 9999, loi_a.id], admin, notifier)

    outcomes = {r.loi_id: r.outcome for r in summary.results}
    assert outcomes == {undecided.id: SKIPPED, 9999: SKIPPED, loi_a.id: RELEASED}
    db.refresh(undecided)
    assert undecided.released_at is None


def test_duplicate_ids_are_released_once(db, decided, admin, notifier):
    loi_a, _ = decided

    summary = ReleaseService.release_selected(db, [loi_a.id, loi_a.id], admin, notifier)

    assert len(summary.results) == 1
    assert len(notifier.sent) == 1


@pytest.mark.parametrize("mode", ["fail", "raise"])
def test_notification_failure_keeps_release_and_other_items(db, decided, admin, notifier, mode):
    loi_a, loi_b = decided
    if mode == "fail":
        notifier.fail_for.add("alpha@alpha-arts.org")
    else:
        notifier.raise_for.add("alpha@alpha-arts.org")

    summary = ReleaseService.release_selected(db, [loi_a.id, loi_b.id], admin, notifier)

    results = {r.loi_id: r for r in summary.results}
    assert results[loi_a.id].outcome == RELEASED
    assert results[loi_a.id].email_sent is False
    assert results[loi_a.id].error
    assert results[loi_b.id].email_sent is True
    assert summary.released_count == 2
    assert summary.emails_sent_count == 1
    assert summary.failed_count == 0

    db.refresh(loi_a)
    assert loi_a.released_at is not None
    assert loi_a.notification_sent is False
    assert loi_a.notification_error == results[loi_a.id].error


def test_falls_back_to_organization_contact(db, make_org, make_loi, admin, notifier):
    org = make_org("Delta Shelter", "office@delta-shelter.org")
    loi = make_loi(org, status=LOIStatus.DECLINED, primary_contact_email=None)

    ReleaseService.release_selected(db, [loi.id], admin, notifier)

    assert [email for email, _ in notifier.sent] == ["office@delta-shelter.org"]


def test_missing_contact_is_recorded_not_raised(db, make_org, make_loi, admin, notifier):
    org = make_org("Epsilon Library", None)
    loi = make_loi(org, status=LOIStatus.APPROVED, primary_contact_email=None)

    summary = ReleaseService.release_selected(db, [loi.id], admin, notifier)

    assert summary.results[0].outcome == RELEASED
    assert summary.results[0].email_sent is False
    db.refresh(loi)
    assert loi.released_at is not None
    assert loi.notification_error == "No contact email on LOI or organization"


def test_release_appends_ledger_note_without_changing_status(db, decided, admin, notifier):
    loi_a, _ = decided

    ReleaseService.release_selected(db, [loi_a.id], admin, notifier)

    history = StatusLedger.history(db, "loi", loi_a.id)
    last = history[-1]
    assert (last.previous_status, last.new_status) == (LOIStatus.APPROVED, LOIStatus.APPROVED)
    assert last.reason == "Decision released to applicant"
    assert last.changed_by_name == "Avery Admin"
    assert StatusLedger.replay(history) == LOIStatus.APPROVED


def test_summary_counts_failed_items(db, decided, admin, notifier, monkeypatch):
    loi_a, loi_b = decided
    original = ReleaseService._release_one

    def flaky(db_, loi_id, actor, notifier_):
        if loi_id == loi_a.id:
            raise RuntimeError("database hiccup")
        return original(db_, loi_id, actor, notifier_)

    monkeypatch.setattr(ReleaseService, "_release_one", staticmethod(flaky))

    summary = ReleaseService.release_selected(db, [loi_a.id, loi_b.id], admin, notifier)

    outcomes = {r.loi_id: r.outcome for r in summary.results}
    assert outcomes == {loi_a.id: FAILED, loi_b.id: RELEASED}
    assert summary.failed_count == 1
    db.refresh(loi_a)
    assert loi_a.released_at is None


def test_bookkeeping_failure_after_release_still_reports_released(db, decided, admin, notifier, monkeypatch):
    loi_a, _ = decided
    real_commit = db.commit
    calls = []

    def commit_then_lock():
        calls.append(1)
        if len(calls) == 2:
            raise RuntimeError("database is locked")
        real_commit()

    monkeypatch.setattr(db, "commit", commit_then_lock)

    summary = ReleaseService.release_selected(db, [loi_a.id], admin, notifier)

    result = summary.results[0]
    assert result.outcome == RELEASED
    assert result.email_sent is True
    assert "database is locked" in result.error
    assert summary.released_count == 1
    assert summary.failed_count == 0

    monkeypatch.undo()
    db.refresh(loi_a)
    assert loi_a.released_at is not None
    assert loi_a.notification_sent is False


def test_notification_failure_log_names_the_contact(db, decided, admin, notifier, caplog):
    loi_a, _ = decided
    notifier.fail_for.add("alpha@alpha-arts.org")

    with caplog.at_level(logging.ERROR, logger="grant_review.services.release_service"):
        ReleaseService.release_selected(db, [loi_a.id], admin, notifier)

    assert "alpha@alpha-arts.org" in caplog.text
