"""Pytest configuration and fixtures."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import jwt
import pytest
from httpx import ASGITransport, AsyncClient

from modelnest.api.deps import get_deployment_orchestrator, get_records
from modelnest.config import settings
from modelnest.core.artifacts import ArtifactStore, get_artifact_store
from modelnest.core.orchestrator import DeploymentOrchestrator
from modelnest.core.process import OutputLine
from modelnest.core.records import InMemoryRecordStore
from modelnest.core.staging import StagingArea
from modelnest.main import app
from modelnest.models.deployment import (
    DeploymentDetails,
    DeploymentPayload,
    DeploymentRecord,
)


@dataclass
class ScriptedOutcome:
    """What a fake build-tool subcommand prints and returns."""

    lines: list[tuple[str, bool]] = field(default_factory=list)
    exit_code: int = 0
    raises: Exception | None = None


@dataclass
class RecordedCall:
    """A command the fake runner was asked to run."""

    command: str
    args: list[str]
    stdin: str | None
    cwd: Path | None
    context_files: list[str]


class FakeProcessRunner:
    """Process runner that replays scripted output instead of spawning."""

    def __init__(self, script: dict[str, ScriptedOutcome] | None = None):
        self.script = script or {}
        self.calls: list[RecordedCall] = []

    async def run(self, command, args, *, sink, stdin=None, cwd=None, timeout=None) -> int:
        cwd_path = Path(cwd) if cwd else None
        self.calls.append(
            RecordedCall(
                command=command,
                args=list(args),
                stdin=stdin,
                cwd=cwd_path,
                context_files=sorted(p.name for p in cwd_path.iterdir()) if cwd_path else [],
            )
        )
        subcommand = args[0]
        outcome = self.script.get(
            subcommand, ScriptedOutcome(lines=[(f"{subcommand}: done", False)])
        )
        if outcome.raises is not None:
            raise outcome.raises
        for text, is_error in outcome.lines:
            sink(OutputLine(text=text, is_error=is_error))
        return outcome.exit_code

    @property
    def subcommands(self) -> list[str]:
        return [call.args[0] for call in self.calls]


class FailingRecordStore(InMemoryRecordStore):
    """Record store whose saves always fail."""

    async def save(self, record: DeploymentRecord) -> None:
        raise ConnectionError("database unavailable")


def make_token(user_id: str = "user-1") -> str:
    """Sign a session token the API accepts."""
    return jwt.encode({"id": user_id}, settings.app_secret_key, algorithm="HS256")


def parse_sse(body: str) -> list[tuple[str, str]]:
    """Split an event-stream body into (event, data) pairs, skipping comments."""
    events = []
    for frame in body.replace("\r\n", "\n").split("\n\n"):
        name, data = None, []
        for line in frame.split("\n"):
            if line.startswith("event:"):
                name = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data.append(line[len("data:"):].strip())
        if name:
            events.append((name, "\n".join(data)))
    return events


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps an exit event bound to the first event loop."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest.fixture
def payload_factory() -> Callable[..., DeploymentPayload]:
    """Build deployment payloads with sensible defaults."""

    def factory(session_id: str = "session-1", **overrides) -> DeploymentPayload:
        data = {
            "session_id": session_id,
            "user_id": "user-1",
            "model_identifier": "resnet50",
            "registry_username": "alice",
            "registry_credential": "tok123",
            "build_file_contents": "FROM scratch",
            "entrypoint_source_contents": "print('serving')",
            "dependency_manifest_contents": "fastapi==0.110.0",
            "deployment_details": DeploymentDetails(
                model_name="resnet50",
                source_platform="Hugging Face",
                category="vision",
                description="Image classification",
                image_url="https://example.com/resnet.png",
            ),
        }
        data.update(overrides)
        return DeploymentPayload(**data)

    return factory


@pytest.fixture
def payload(payload_factory) -> DeploymentPayload:
    return payload_factory()


@pytest.fixture
def artifact_store() -> ArtifactStore:
    """Create a fresh artifact store for tests."""
    return ArtifactStore(ttl_minutes=30)


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    root = tmp_path / "staging"
    root.mkdir()
    return root


@pytest.fixture
def staging(staging_root: Path) -> StagingArea:
    return StagingArea(root=staging_root, prefix="test-deploy-")


@pytest.fixture
def runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
async def client(
    staging: StagingArea,
    runner: FakeProcessRunner,
    record_store: InMemoryRecordStore,
) -> AsyncClient:
    """Create an async test client backed by a fake build tool."""
    store = get_artifact_store()
    store._payloads.clear()

    app.dependency_overrides[get_deployment_orchestrator] = lambda: DeploymentOrchestrator(
        artifacts=store,
        staging=staging,
        runner=runner,
        records=record_store,
        build_tool="docker",
        registry="",
    )
    app.dependency_overrides[get_records] = lambda: record_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    store._payloads.clear()
