"""Health check endpoints."""

import shutil
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from modelnest import __version__
from modelnest.api.deps import ArtifactsDep
from modelnest.config import settings
from modelnest.core.orchestrator import running_deployments

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    timestamp: datetime
    build_tool: str
    build_tool_available: bool
    pending_sessions: int
    running_deployments: int


@router.get("/health", response_model=HealthResponse)
async def health_check(artifacts: ArtifactsDep) -> HealthResponse:
    """Check API health and whether the build tool can be found."""
    available = shutil.which(settings.build_tool_binary) is not None
    return HealthResponse(
        status="healthy" if available else "degraded",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.utcnow(),
        build_tool=settings.build_tool_binary,
        build_tool_available=available,
        pending_sessions=len(artifacts),
        running_deployments=len(running_deployments()),
    )
