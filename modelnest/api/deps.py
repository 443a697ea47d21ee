"""Dependency injection for API endpoints."""

from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, Query, status

from modelnest.config import settings
from modelnest.core.artifacts import ArtifactStore, get_artifact_store
from modelnest.core.orchestrator import DeploymentOrchestrator, get_orchestrator
from modelnest.core.records import DeploymentRecordStore, get_record_store
from modelnest.services.codegen_service import CodeGenerationService, get_codegen_service

JWT_ALGORITHM = "HS256"


async def get_artifacts() -> ArtifactStore:
    """Get the artifact store."""
    return get_artifact_store()


async def get_records() -> DeploymentRecordStore:
    """Get the deployment record store."""
    return get_record_store()


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get a deployment orchestrator."""
    return get_orchestrator()


async def get_codegen() -> CodeGenerationService:
    """Get the code generation client."""
    return get_codegen_service()


def decode_user_id(token: str) -> str:
    """Verify a session token and return the user id it carries.

    Raises:
        HTTPException: 401 if the token is invalid or carries no user id.
    """
    try:
        claims = jwt.decode(token, settings.app_secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalid",
        )
    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalid",
        )
    return str(user_id)


async def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
    token: Annotated[str | None, Query()] = None,
) -> str:
    """Identify the caller from a bearer token.

    ``EventSource`` cannot set headers, so stream endpoints also accept the
    token as a ``token`` query parameter.
    """
    if authorization and authorization.lower().startswith("bearer "):
        return decode_user_id(authorization.split(" ", 1)[1].strip())
    if token:
        return decode_user_id(token)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No token, unauthorized",
    )


# Type aliases for cleaner signatures
ArtifactsDep = Annotated[ArtifactStore, Depends(get_artifacts)]
RecordsDep = Annotated[DeploymentRecordStore, Depends(get_records)]
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
CodegenDep = Annotated[CodeGenerationService, Depends(get_codegen)]
UserIdDep = Annotated[str, Depends(get_current_user_id)]
