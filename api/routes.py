"""
API Routes for Shieldbridge
"""
from fastapi import APIRouter

from api.v1 import bridge_router

# Main API router
api_router = APIRouter()

# Include versioned routers
api_router.include_router(
    bridge_router,
    prefix="/bridge",
    tags=["bridge"],
)
