"""
Shared fixtures: in-memory database, seeded actors, API client and a fake notifier.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from grant_review.api.v1.auth import to_context
from grant_review.api.v1.releases import get_decision_notifier
from grant_review.core.middleware import get_rate_limiter
from grant_review.db import models
from grant_review.db.database import Base, get_db
from grant_review.db.enums import LOIStatus, UserRole
from grant_review.services.loi_service import LOIService
from grant_review.services.release_service import ReleaseService
from main import app


class FakeNotifier:
    """Records decision notifications; can be told to fail or raise for given contacts."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self.raise_for = set()

    def send(self, contact_email, summary):
        if contact_email in self.raise_for:
            raise ConnectionError(f"SMTP timeout for {contact_email}")
        if contact_email in self.fail_for:
            return False
        self.sent.append((contact_email, summary))
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cycle(db):
    cycle = models.GrantCycle(
        cycle="SPRING",
        year=2026,
        loi_deadline=datetime.now(timezone.utc) + timedelta(days=30),
        full_app_deadline=datetime.now(timezone.utc) + timedelta(days=90),
    )
    db.add(cycle)
    db.commit()
    return cycle


@pytest.fixture
def make_org(db):
    def _make(name="Riverside Food Bank", email="director@riverside.org"):
        org = models.Organization(legal_name=name, primary_contact_email=email)
        db.add(org)
        db.commit()
        return org
    return _make


@pytest.fixture
def org(make_org):
    return make_org()


@pytest.fixture
def make_user(db):
    def _make(email, role=UserRole.REVIEWER, full_name=None, organization=None):
        user = models.User(
            email=email,
            full_name=full_name,
            role=role,
            organization_id=organization.id if organization else None,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@foundation.org", UserRole.ADMIN, "Avery Admin")


@pytest.fixture
def reviewer_user(make_user):
    return make_user("reviewer@foundation.org", UserRole.REVIEWER, "Robin Reviewer")


@pytest.fixture
def second_reviewer_user(make_user):
    return make_user("reviewer2@foundation.org", UserRole.REVIEWER, "Sam Second")


@pytest.fixture
def applicant_user(make_user, org):
    return make_user("director@riverside.org", UserRole.APPLICANT, "Dana Director", organization=org)


@pytest.fixture
def admin(admin_user):
    return to_context(admin_user)


@pytest.fixture
def reviewer(reviewer_user):
    return to_context(reviewer_user)


@pytest.fixture
def second_reviewer(second_reviewer_user):
    return to_context(second_reviewer_user)


@pytest.fixture
def applicant(applicant_user):
    return to_context(applicant_user)


LOI_FIELDS = {
    "primary_contact_email": "director@riverside.org",
    "project_title": "Mobile Pantry Expansion",
    "project_description": "Expand weekly mobile pantry service to three rural townships.",
    "grant_request_amount": Decimal("25000.00"),
    "total_project_amount": Decimal("80000.00"),
}


@pytest.fixture
def make_loi(db, cycle, applicant, admin, reviewer):
    """Create an LOI for an organization and drive it to the requested status."""
    def _make(organization, status=LOIStatus.SUBMITTED, actor=None, **overrides):
        owner = actor or (applicant if organization.id == applicant.organization_id else admin)
        loi = LOIService.create(db, owner, organization.id, cycle.id, {**LOI_FIELDS, **overrides})
        if status == LOIStatus.DRAFT:
            return loi
        loi = LOIService.submit(db, loi.id, owner, staff_emails=[])
        if status == LOIStatus.SUBMITTED:
            return loi
        loi = LOIService.enter_review(db, loi.id, reviewer)
        if status == LOIStatus.UNDER_REVIEW:
            return loi
        if status == LOIStatus.APPROVED:
            loi, _ = LOIService.decide(db, loi.id, reviewer, "APPROVED")
        else:
            loi, _ = LOIService.decide(db, loi.id, reviewer, "DECLINED", reason="Outside funding priorities")
        return loi
    return _make


@pytest.fixture
def loi(make_loi, org):
    return make_loi(org)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def approved_application(db, loi, reviewer, admin, notifier):
    """Application spawned from the default LOI, with the approval released to the applicant."""
    _, application = LOIService.decide(db, loi.id, reviewer, "APPROVED")
    ReleaseService.release_selected(db, [loi.id], admin, notifier)
    db.refresh(application)
    return application


@pytest.fixture
def client(db, notifier):
    """API client bound to the test session. The lifespan is not run."""
    def override_get_db():
        yield db

    limiter = get_rate_limiter()
    limiter.enabled = False
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_decision_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True
