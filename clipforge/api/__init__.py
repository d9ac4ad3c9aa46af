"""API routers for Clipforge export."""

from .websocket import router as websocket_router, get_connection_manager
from .projects import router as projects_router, set_project_manager
from .export import router as export_router, set_export_manager

__all__ = [
    # Routers
    "websocket_router",
    "projects_router",
    "export_router",
    # Setup functions
    "get_connection_manager",
    "set_project_manager",
    "set_export_manager",
]
