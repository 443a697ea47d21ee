"""Client for the code generation service.

The generation service is an LLM chat endpoint: it receives a prompt and
replies with markdown. This client builds the deployment prompt and turns the
reply into build artifacts.
"""

import httpx

from modelnest.config import settings
from modelnest.core.exceptions import CodeGenerationError
from modelnest.models.deployment import (
    CodeGenerationRequest,
    GeneratedArtifacts,
    image_tag_for,
)
from modelnest.parsers.code_blocks import CodeBlockParser
from modelnest.utils.logging import get_logger

logger = get_logger("codegen_service")

# Keys the chat service has used for its reply text
REPLY_KEYS = ("reply", "generatedCode", "content", "message")

PROMPT_TEMPLATE = """Generate the files needed to serve the model "{model}" from {platform} as a Docker image.

Requirements:
- A FastAPI application in app.py exposing a POST /predict endpoint that loads the model once at startup.
- A requirements.txt listing every Python dependency with pinned versions.
- A Dockerfile that copies app.py and requirements.txt, installs the requirements and runs the app with uvicorn on port 8000.
- The image will be pushed as {image}.{source_detail}

Answer with exactly three fenced code blocks tagged ```python, ```text and ```dockerfile."""

RETRY_TEMPLATE = """

The previous build failed. Apply this fix when regenerating the files:
{suggestion}"""


def build_prompt(request: CodeGenerationRequest) -> str:
    """Render the generation prompt for a request."""
    image = image_tag_for(request.registry_username, request.model_identifier)
    source_detail = f"\n{request.model_source_detail}" if request.model_source_detail else ""
    prompt = PROMPT_TEMPLATE.format(
        model=request.model_identifier,
        platform=request.platform,
        image=image,
        source_detail=source_detail,
    )
    if request.is_retry and request.debug_suggestion:
        prompt += RETRY_TEMPLATE.format(suggestion=request.debug_suggestion)
    return prompt


class CodeGenerationService:
    """Requests build artifacts from the generation service."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        parser: CodeBlockParser | None = None,
    ):
        self.url = url or settings.codegen_service_url
        self.timeout = timeout if timeout is not None else settings.codegen_timeout_seconds
        self.parser = parser or CodeBlockParser()
        self._transport = transport

    async def generate(
        self, request: CodeGenerationRequest, authorization: str | None = None
    ) -> GeneratedArtifacts:
        """Generate artifacts for a model.

        Args:
            request: Model and registry details
            authorization: Caller's Authorization header, forwarded as-is

        Returns:
            Extracted artifacts; missing blocks carry placeholder text

        Raises:
            CodeGenerationError: If the service fails or returns no text
        """
        headers = {"Authorization": authorization} if authorization else {}

        logger.info(
            "codegen.requested",
            model=request.model_identifier,
            platform=request.platform,
            retry=request.is_retry,
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url,
                    json={"message": build_prompt(request)},
                    headers=headers,
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            raise CodeGenerationError(
                f"service returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise CodeGenerationError(f"service unreachable: {e}") from e
        except ValueError as e:
            raise CodeGenerationError("service returned invalid JSON") from e

        text = self._reply_text(body)
        if not text:
            raise CodeGenerationError("service returned an empty reply")

        artifacts = self.parser.extract_artifacts(text)
        logger.info(
            "codegen.completed",
            model=request.model_identifier,
            complete=artifacts.complete,
        )
        return artifacts

    def _reply_text(self, body: object) -> str:
        if isinstance(body, str):
            return body
        if isinstance(body, dict):
            for key in REPLY_KEYS:
                value = body.get(key)
                if isinstance(value, str) and value.strip():
                    return value
        return ""


# Singleton instance
_codegen_service: CodeGenerationService | None = None


def get_codegen_service() -> CodeGenerationService:
    """Get the code generation service singleton."""
    global _codegen_service
    if _codegen_service is None:
        _codegen_service = CodeGenerationService()
    return _codegen_service
