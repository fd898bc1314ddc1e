"""
Authentication dependencies.

Tokens come from the foundation's identity provider; the ``sub`` claim is the
user's email. Every route resolves the caller into a ReviewerContext.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from pydantic import BaseModel

from grant_review.db.database import get_db
from grant_review.db import models
from grant_review.db.enums import STAFF_ROLES, UserRole
from grant_review.core.security import ReviewerContext, decode_access_token

router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str]
    role: UserRole
    organization_id: Optional[int]
    is_active: bool

    class Config:
        from_attributes = True


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> models.User:
    """Get current authenticated user."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    email: str = payload.get("sub")
    if email is None:
        raise credentials_exception

    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive"
        )

    return user


def to_context(user: models.User) -> ReviewerContext:
    return ReviewerContext(
        reviewer_id=user.id,
        reviewer_name=user.full_name or user.email,
        is_admin=user.role == UserRole.ADMIN,
        is_reviewer=user.role in STAFF_ROLES,
        organization_id=user.organization_id,
    )


def get_reviewer_context(current_user: models.User = Depends(get_current_user)) -> ReviewerContext:
    """Any authenticated caller, applicants included."""
    return to_context(current_user)


def require_reviewer(current_user: models.User = Depends(get_current_user)) -> ReviewerContext:
    """Require foundation staff access."""
    if current_user.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Reviewer access required"
        )
    return to_context(current_user)


def require_admin(current_user: models.User = Depends(get_current_user)) -> ReviewerContext:
    """Require admin access."""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return to_context(current_user)


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: models.User = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    return current_user
