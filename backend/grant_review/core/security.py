"""
Token verification and reviewer identity.

Tokens are issued by the foundation's identity provider; this service only
verifies them and resolves the caller into an explicit ReviewerContext that
is passed to every pipeline operation.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import JWTError, jwt

from grant_review.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewerContext:
    """Identity of the caller of a pipeline operation."""
    reviewer_id: int
    reviewer_name: str
    is_admin: bool = False
    is_reviewer: bool = True
    organization_id: Optional[int] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT. Used by tooling and tests; production tokens come from the identity provider."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT. Returns None if invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
