"""
Database models.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Numeric, Float,
    Index, UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from grant_review.db.database import Base
from grant_review.db.enums import (
    LOIStatus, ApplicationStatus, VoteChoice, UserRole, CommunicationDirection,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Organization(Base):
    """Applicant organization (read-only input to the review pipeline)."""
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    legal_name = Column(String, nullable=False)
    ein = Column(String(20), nullable=True)
    primary_contact_email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    users = relationship("User", back_populates="organization")
    lois = relationship("LetterOfInterest", back_populates="organization")


class GrantCycle(Base):
    """A funding round; LOIs and applications belong to exactly one cycle."""
    __tablename__ = "grant_cycles"

    id = Column(Integer, primary_key=True, index=True)
    cycle = Column(String(20), nullable=False)  # e.g. "SPRING", "FALL"
    year = Column(Integer, nullable=False)
    loi_deadline = Column(DateTime(timezone=True), nullable=True)
    full_app_deadline = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class User(Base):
    """Identity collaborator's view of an applicant or foundation staff member."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(SQLEnum(UserRole, name="user_role"), nullable=False, default=UserRole.APPLICANT)
    is_active = Column(Boolean, default=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="users")


class LetterOfInterest(Base):
    """Short-form submission that gates a full application."""
    __tablename__ = "letters_of_interest"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    cycle_id = Column(Integer, ForeignKey("grant_cycles.id"), nullable=False, index=True)
    status = Column(SQLEnum(LOIStatus, name="loi_status"), nullable=False, default=LOIStatus.DRAFT, index=True)

    # Applicant-entered content
    primary_contact_email = Column(String, nullable=True)
    project_title = Column(String, nullable=True)
    project_description = Column(Text, nullable=True)
    grant_request_amount = Column(Numeric(12, 2), nullable=True)
    total_project_amount = Column(Numeric(12, 2), nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    submitted_by_name = Column(String, nullable=True)

    # Review outcome
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_by_name = Column(String, nullable=True)
    review_notes = Column(Text, nullable=True)  # Internal, never shown to applicant
    decision_reason = Column(Text, nullable=True)
    application_id = Column(Integer, ForeignKey("applications.id", use_alter=True), nullable=True, unique=True)

    # Release tracking: decided LOIs stay hidden from the applicant until released
    released_at = Column(DateTime(timezone=True), nullable=True, index=True)
    released_by_name = Column(String, nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False, server_default="false")
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    notification_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="lois")
    cycle = relationship("GrantCycle")
    application = relationship("Application", foreign_keys=[application_id], post_update=True)
    status_history = relationship(
        "LOIStatusHistory",
        back_populates="loi",
        order_by="LOIStatusHistory.id",
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "cycle_id", name="uq_loi_organization_cycle"),
        Index("idx_loi_release_pending", "status", "released_at"),
    )


class Application(Base):
    """Full grant application, spawned from an approved LOI (or created directly in the legacy flow)."""
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    loi_id = Column(Integer, ForeignKey("letters_of_interest.id"), nullable=True, unique=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    cycle_id = Column(Integer, ForeignKey("grant_cycles.id"), nullable=True, index=True)
    status = Column(
        SQLEnum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.DRAFT,
        index=True,
    )

    project_title = Column(String, nullable=True)
    project_description = Column(Text, nullable=True)
    amount_requested = Column(Numeric(12, 2), nullable=True)
    total_project_budget = Column(Numeric(12, 2), nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decided_by_name = Column(String, nullable=True)
    decision_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    loi = relationship("LetterOfInterest", foreign_keys=[loi_id])
    organization = relationship("Organization")
    notes = relationship("Note", back_populates="application", order_by="Note.created_at.desc()")
    votes = relationship("Vote", back_populates="application")
    budget_assessments = relationship("BudgetAssessment", back_populates="application")
    communications = relationship("Communication", back_populates="application", order_by="Communication.id")
    status_history = relationship(
        "ApplicationStatusHistory",
        back_populates="application",
        order_by="ApplicationStatusHistory.id",
    )


class LOIStatusHistory(Base):
    """Append-only ledger of LOI status transitions. Rows are never updated or deleted."""
    __tablename__ = "loi_status_history"

    id = Column(Integer, primary_key=True, index=True)
    loi_id = Column(Integer, ForeignKey("letters_of_interest.id"), nullable=False, index=True)
    previous_status = Column(SQLEnum(LOIStatus, name="loi_status"), nullable=True)
    new_status = Column(SQLEnum(LOIStatus, name="loi_status"), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    changed_by_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    loi = relationship("LetterOfInterest", back_populates="status_history")


class ApplicationStatusHistory(Base):
    """Append-only ledger of application status transitions. Rows are never updated or deleted."""
    __tablename__ = "application_status_history"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    previous_status = Column(SQLEnum(ApplicationStatus, name="application_status"), nullable=True)
    new_status = Column(SQLEnum(ApplicationStatus, name="application_status"), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    changed_by_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    application = relationship("Application", back_populates="status_history")


class Vote(Base):
    """One advisory ballot per reviewer per application."""
    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewer_name = Column(String, nullable=False)
    vote = Column(SQLEnum(VoteChoice, name="vote_choice"), nullable=False)
    reasoning = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    application = relationship("Application", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("application_id", "reviewer_id", name="uq_vote_application_reviewer"),
    )


class BudgetAssessment(Base):
    """Per-reviewer budget rubric; composite_score is derived server-side."""
    __tablename__ = "budget_assessments"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewer_name = Column(String, nullable=False)

    # Each scored 1-5
    budget_reasonableness = Column(Integer, nullable=True)
    cost_efficiency = Column(Integer, nullable=True)
    budget_detail = Column(Integer, nullable=True)
    sustainability = Column(Integer, nullable=True)
    composite_score = Column(Float, nullable=True)  # NULL until all four categories are scored
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    application = relationship("Application", back_populates="budget_assessments")

    __table_args__ = (
        UniqueConstraint("application_id", "reviewer_id", name="uq_budget_assessment_application_reviewer"),
    )


class Note(Base):
    """Private reviewer note on an application."""
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    author_name = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    is_private = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    application = relationship("Application", back_populates="notes")


class Communication(Base):
    """Message exchanged with the applicant during an info-request round trip."""
    __tablename__ = "communications"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)
    direction = Column(SQLEnum(CommunicationDirection, name="communication_direction"), nullable=False)
    subject = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    sent_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    sent_by_name = Column(String, nullable=False)
    response_required = Column(Boolean, nullable=False, default=False)
    response_deadline = Column(DateTime(timezone=True), nullable=True)
    response_content = Column(Text, nullable=True)
    response_received_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    application = relationship("Application", back_populates="communications")
