"""API module - FastAPI endpoints for AdvisorBoard."""

from .app import create_app
from .routes_mission import create_mission_router

__all__ = [
    'create_app',
    'create_mission_router',
]
