"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from pipeyard.api.v1 import auth, loads, notifications, racks, requests

api_router = APIRouter()

# Authentication routes
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])

# Yard layout and rack occupancy
api_router.include_router(racks.router, prefix="/racks", tags=["racks"])

# Storage request and trucking load workflow
api_router.include_router(requests.router, prefix="/requests", tags=["storage-requests"])
api_router.include_router(loads.router, prefix="/loads", tags=["trucking-loads"])

# Notification outbox
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
