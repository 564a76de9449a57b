"""
Health check route. Does not touch the database.
"""

from fastapi import APIRouter

from catalogwatch import __version__
from catalogwatch.config.settings import get_environment

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__, "environment": get_environment()}
