"""Data models for ModelNest deployments."""

from modelnest.models.deployment import (
    BUILD_FILE_NAME,
    ENTRYPOINT_FILE_NAME,
    MANIFEST_FILE_NAME,
    CodeGenerationRequest,
    DeploymentDetails,
    DeploymentEvent,
    DeploymentInitRequest,
    DeploymentInitResponse,
    DeploymentPayload,
    DeploymentRecord,
    DeploymentStartRequest,
    DeploymentStatus,
    GeneratedArtifacts,
    image_tag_for,
)

__all__ = [
    # File names in the build context
    "BUILD_FILE_NAME",
    "ENTRYPOINT_FILE_NAME",
    "MANIFEST_FILE_NAME",
    # Deployment models
    "DeploymentDetails",
    "DeploymentEvent",
    "DeploymentPayload",
    "DeploymentRecord",
    "DeploymentStatus",
    "image_tag_for",
    # Request/response models
    "CodeGenerationRequest",
    "DeploymentInitRequest",
    "DeploymentInitResponse",
    "DeploymentStartRequest",
    "GeneratedArtifacts",
]
