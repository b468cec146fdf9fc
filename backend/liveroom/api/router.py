"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from liveroom.api.routes import catalog, rooms, rsvps

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(rooms.router)
api_router.include_router(rsvps.router)
api_router.include_router(catalog.router)
