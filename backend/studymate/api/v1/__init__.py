"""API v1 routes."""

from fastapi import APIRouter

from studymate.api.v1.endpoints import downloads, materials, users

api_router = APIRouter()

api_router.include_router(materials.router, prefix="/materials", tags=["Materials"])
api_router.include_router(downloads.router, tags=["Downloads"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
