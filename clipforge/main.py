"""Clipforge export - FastAPI main application.

Renders the open project's timeline into a single video through ffmpeg.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from clipforge import __version__
from clipforge.config import settings
from clipforge.services.export_manager import ExportManager
from clipforge.services.project_manager import ProjectManager
from clipforge.api import (
    websocket_router,
    projects_router,
    export_router,
    get_connection_manager,
    set_project_manager,
    set_export_manager,
)


# Services
project_manager: ProjectManager = None
export_manager: ExportManager = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global project_manager, export_manager

    logger.info(f"Starting Clipforge export v{__version__}")
    logger.info(f"Data directory: {settings.data_dir}")
    logger.info(f"Scratch directory: {settings.scratch_dir}")
    logger.info(f"FFmpeg: {settings.ffmpeg_path}")

    project_manager = ProjectManager()
    set_project_manager(project_manager)

    # Export events go out over the WebSocket
    ws_manager = get_connection_manager()
    export_manager = ExportManager(event_callback=ws_manager.broadcast_export_event)
    set_export_manager(export_manager)

    yield

    await export_manager.shutdown()
    logger.info("Shutting down Clipforge export")


app = FastAPI(
    title="Clipforge Export",
    description="Timeline export through ffmpeg with live progress and cancellation",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for the desktop frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(websocket_router)
app.include_router(projects_router)
app.include_router(export_router)


# ============ Endpoints ============

@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Clipforge Export",
        "version": __version__,
        "status": "running",
        "features": ["concat_export", "progress_events", "cancellation"],
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "exports": await export_manager.get_stats() if export_manager else None,
    }


def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "clipforge.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
