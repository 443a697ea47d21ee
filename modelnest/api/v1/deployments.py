"""Deployment endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header, status
from sse_starlette.sse import EventSourceResponse

from modelnest.api.deps import (
    ArtifactsDep,
    CodegenDep,
    OrchestratorDep,
    RecordsDep,
    UserIdDep,
)
from modelnest.config import settings
from modelnest.core.events import EventStream
from modelnest.models.deployment import (
    CodeGenerationRequest,
    DeploymentDetails,
    DeploymentInitRequest,
    DeploymentInitResponse,
    DeploymentPayload,
    DeploymentRecord,
    DeploymentStartRequest,
    GeneratedArtifacts,
)
from modelnest.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def event_stream_response(stream: EventStream) -> EventSourceResponse:
    """Wrap a deployment event stream in an SSE response."""
    return EventSourceResponse(
        stream.open(),
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        ping=settings.stream_ping_seconds,
        sep="\n",
    )


@router.post(
    "/init",
    response_model=DeploymentInitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a pending deployment",
    description="Store generated artifacts and registry credentials. Returns the session id to stream.",
)
async def init_deployment(
    data: DeploymentInitRequest,
    user_id: UserIdDep,
    artifacts: ArtifactsDep,
) -> DeploymentInitResponse:
    """Store a deployment payload for a later stream request."""
    session_id = artifacts.new_session_id()
    details = data.deployment_details or DeploymentDetails(model_name=data.model_identifier)

    payload = DeploymentPayload(
        session_id=session_id,
        user_id=user_id,
        model_identifier=data.model_identifier,
        registry_username=data.registry_username,
        registry_credential=data.registry_credential,
        build_file_contents=data.dockerfile,
        entrypoint_source_contents=data.python_code,
        dependency_manifest_contents=data.requirements_txt,
        deployment_details=details,
    )
    await artifacts.put(session_id, payload)

    logger.info(
        "deployment.initialized",
        session_id=session_id,
        user_id=user_id,
        image_tag=payload.image_tag,
    )

    return DeploymentInitResponse(
        session_id=session_id,
        image_tag=payload.image_tag,
        expires_in_seconds=int(artifacts.ttl.total_seconds()),
    )


@router.get(
    "/{session_id}/stream",
    summary="Run a deployment and stream its progress (SSE)",
)
async def stream_deployment(
    session_id: str,
    user_id: UserIdDep,
    orchestrator: OrchestratorDep,
) -> EventSourceResponse:
    """Start the deployment for a session and stream events until it ends."""
    logger.info("deployment.stream_requested", session_id=session_id, user_id=user_id)
    return event_stream_response(orchestrator.start(session_id, user_id=user_id))


@router.post(
    "/start",
    summary="Run a deployment and stream its progress (SSE)",
)
async def start_deployment(
    data: DeploymentStartRequest,
    user_id: UserIdDep,
    orchestrator: OrchestratorDep,
) -> EventSourceResponse:
    """Start the deployment named in the body and stream events until it ends."""
    logger.info("deployment.start_requested", session_id=data.session_id, user_id=user_id)
    return event_stream_response(orchestrator.start(data.session_id, user_id=user_id))


@router.post(
    "/generate-code",
    response_model=GeneratedArtifacts,
    summary="Generate build artifacts for a model",
)
async def generate_code(
    data: CodeGenerationRequest,
    user_id: UserIdDep,
    codegen: CodegenDep,
    authorization: Annotated[str | None, Header()] = None,
) -> GeneratedArtifacts:
    """Ask the generation service for a Dockerfile, app.py and requirements.txt."""
    return await codegen.generate(data, authorization=authorization)


@router.get(
    "",
    response_model=list[DeploymentRecord],
    summary="List the caller's deployments",
)
async def list_deployments(
    user_id: UserIdDep,
    records: RecordsDep,
) -> list[DeploymentRecord]:
    """List deployment records for the authenticated user, newest first."""
    return await records.list_for_user(user_id)
