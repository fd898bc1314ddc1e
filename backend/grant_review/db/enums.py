"""
Closed status and choice enumerations shared by models, services and API schemas.
"""

from enum import Enum


class LOIStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class ApplicationStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    INFO_REQUESTED = "INFO_REQUESTED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    WITHDRAWN = "WITHDRAWN"


class Decision(str, Enum):
    """Outcome a reviewer may record on an LOI or Application."""
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class VoteChoice(str, Enum):
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"
    ABSTAIN = "ABSTAIN"


class UserRole(str, Enum):
    APPLICANT = "APPLICANT"
    REVIEWER = "REVIEWER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


STAFF_ROLES = (UserRole.REVIEWER, UserRole.MANAGER, UserRole.ADMIN)


class CommunicationDirection(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"
