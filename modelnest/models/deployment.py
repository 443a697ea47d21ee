"""Deployment data models."""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
)
from pydantic.alias_generators import to_camel

# Fixed file names referenced by the generated Dockerfile
BUILD_FILE_NAME = "Dockerfile"
ENTRYPOINT_FILE_NAME = "app.py"
MANIFEST_FILE_NAME = "requirements.txt"

# Placeholder the code generator emits when a block could not be extracted
FAILED_CODE_MARKER = "# Failed"


def image_tag_for(registry_username: str, model_identifier: str) -> str:
    """Registry tag for a model; repository names must be lower-case."""
    repository = re.sub(r"\s+", "-", model_identifier.strip()).lower()
    return f"{registry_username}/{repository}:latest"


class DeploymentStatus(str, Enum):
    """Deployment run status, in pipeline order."""

    PREPARING = "preparing"
    AUTHENTICATING = "authenticating"
    BUILDING = "building"
    PUSHING = "pushing"
    RECORDING = "recording"
    COMPLETE = "complete"
    FAILED = "failed"


class CamelModel(BaseModel):
    """Base for models exchanged with the browser client in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class DeploymentDetails(CamelModel):
    """Marketplace details forwarded verbatim to the record store."""

    model_name: str = ""
    source_platform: str = "Custom/Hugging Face"
    category: str | None = None
    description: str | None = None
    image_url: str | None = None


class DeploymentPayload(BaseModel):
    """A pending deployment, owned by the artifact store until taken."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    session_id: str
    user_id: str
    model_identifier: str
    registry_username: str
    registry_credential: SecretStr
    build_file_contents: str
    entrypoint_source_contents: str
    dependency_manifest_contents: str
    deployment_details: DeploymentDetails = Field(default_factory=DeploymentDetails)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def image_tag(self) -> str:
        """Registry tag the build and push phases target."""
        return image_tag_for(self.registry_username, self.model_identifier)

    def staged_files(self) -> dict[str, str]:
        """File name to contents for the build context."""
        return {
            BUILD_FILE_NAME: self.build_file_contents,
            ENTRYPOINT_FILE_NAME: self.entrypoint_source_contents,
            MANIFEST_FILE_NAME: self.dependency_manifest_contents,
        }


class DeploymentRecord(CamelModel):
    """A successful deployment, handed to the record store."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    model_name: str
    source_platform: str
    deployed_image_tag: str
    category: str | None = None
    description: str | None = None
    image_url: str | None = None
    deployed_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_payload(cls, payload: DeploymentPayload) -> "DeploymentRecord":
        """Build the record for a payload whose image was pushed."""
        details = payload.deployment_details
        return cls(
            user_id=payload.user_id,
            model_name=details.model_name or payload.model_identifier,
            source_platform=details.source_platform,
            deployed_image_tag=payload.image_tag,
            category=details.category,
            description=details.description,
            image_url=details.image_url,
        )


class DeploymentEvent(BaseModel):
    """One event pushed to the client over the deployment stream."""

    kind: Literal["log", "status", "end"]
    data: Any
    is_error: bool = False


class DeploymentInitRequest(CamelModel):
    """Request to register generated artifacts and registry credentials."""

    model_identifier: str = Field(..., min_length=1, max_length=200)
    registry_username: str = Field(
        ...,
        min_length=3,
        max_length=100,
        validation_alias=AliasChoices(
            "registryUsername", "registry_username", "dockerUsername"
        ),
    )
    registry_credential: SecretStr = Field(
        ...,
        min_length=8,
        validation_alias=AliasChoices(
            "registryCredential", "registry_credential", "dockerPassword"
        ),
    )
    dockerfile: str = Field(..., min_length=1)
    python_code: str = ""
    requirements_txt: str = ""
    deployment_details: DeploymentDetails | None = None

    @field_validator("dockerfile")
    @classmethod
    def dockerfile_generated(cls, value: str) -> str:
        if value.lstrip().startswith(FAILED_CODE_MARKER):
            raise ValueError("dockerfile was not generated; run code generation first")
        return value


class DeploymentInitResponse(CamelModel):
    """Response carrying the session id to stream."""

    session_id: str
    image_tag: str
    expires_in_seconds: int


class DeploymentStartRequest(CamelModel):
    """Request to start streaming a pending deployment."""

    session_id: str = Field(..., min_length=1)


class CodeGenerationRequest(CamelModel):
    """Request to generate build artifacts for a model."""

    model_identifier: str = Field(..., min_length=1, max_length=200)
    platform: str = "Custom/Hugging Face"
    registry_username: str = Field(..., min_length=1)
    model_source_detail: str = ""
    is_retry: bool = False
    debug_suggestion: str | None = None


class GeneratedArtifacts(CamelModel):
    """Build artifacts extracted from a code generation reply."""

    dockerfile: str
    python_code: str
    requirements_txt: str
    raw: str = ""

    @property
    def complete(self) -> bool:
        """Whether every block was found in the reply."""
        return not any(
            value.startswith(FAILED_CODE_MARKER)
            for value in (self.dockerfile, self.python_code)
        )
