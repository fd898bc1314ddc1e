"""
API v1 routes.
"""

from fastapi import APIRouter
from grant_review.api.v1 import auth, lois, applications, releases

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(lois.router, prefix="/lois", tags=["letters of interest"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(releases.router, prefix="/releases", tags=["releases"])
