"""Deployment Orchestrator.

Runs one deployment as a fixed sequence of phases:

1. preparing      - stage Dockerfile, app.py and requirements.txt
2. authenticating - log in to the registry, credential piped via stdin
3. building       - build the image from the staged context
4. pushing        - push the image tag
5. recording      - hand a DeploymentRecord to the record store
6. complete

Any failure in phases 1-4 moves the run to ``failed``. A record that cannot
be saved is reported to the client but does not fail the run, since the
image is already in the registry. Whatever happens, the staging directory is
removed, the session's artifacts are discarded and the stream is closed once.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from modelnest.config import settings
from modelnest.core.artifacts import ArtifactStore, get_artifact_store
from modelnest.core.events import EventStream
from modelnest.core.exceptions import ModelNestError, PhaseFailedError
from modelnest.core.process import OutputLine, ProcessRunner, ProcessRunnerProtocol
from modelnest.core.records import DeploymentRecordStore, get_record_store
from modelnest.core.staging import StagingArea
from modelnest.models.deployment import (
    DeploymentPayload,
    DeploymentRecord,
    DeploymentStatus,
)
from modelnest.utils.logging import get_logger

SUCCESS_MESSAGE = "Deployment completed successfully."
FAILURE_MESSAGE = "Deployment failed."
SESSION_NOT_FOUND_MESSAGE = "[FATAL] Deployment session not found or expired."

# Allowed state changes; ``None`` is the state before a payload is taken
TRANSITIONS: dict[DeploymentStatus | None, frozenset[DeploymentStatus]] = {
    None: frozenset({DeploymentStatus.PREPARING, DeploymentStatus.FAILED}),
    DeploymentStatus.PREPARING: frozenset(
        {DeploymentStatus.AUTHENTICATING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.AUTHENTICATING: frozenset(
        {DeploymentStatus.BUILDING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.BUILDING: frozenset(
        {DeploymentStatus.PUSHING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.PUSHING: frozenset(
        {DeploymentStatus.RECORDING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.RECORDING: frozenset({DeploymentStatus.COMPLETE}),
    DeploymentStatus.COMPLETE: frozenset(),
    DeploymentStatus.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({DeploymentStatus.COMPLETE, DeploymentStatus.FAILED})


def can_transition(
    current: DeploymentStatus | None, target: DeploymentStatus
) -> bool:
    """Check whether the state machine allows ``current -> target``."""
    return target in TRANSITIONS[current]


@dataclass(frozen=True)
class Phase:
    """A build-tool phase of the pipeline."""

    status: DeploymentStatus
    name: str
    tag: str
    arguments: Callable[[DeploymentPayload, Path, str | None], list[str]]
    pipes_credential: bool = False

    def announcement(self, payload: DeploymentPayload) -> str:
        if self.status == DeploymentStatus.AUTHENTICATING:
            return f"{self.tag} Authenticating {payload.registry_username} with the registry..."
        if self.status == DeploymentStatus.BUILDING:
            return f"{self.tag} Building image {payload.image_tag}..."
        return f"{self.tag} Pushing image {payload.image_tag}..."


def _login_args(payload: DeploymentPayload, context: Path, registry: str | None) -> list[str]:
    args = ["login", "-u", payload.registry_username, "--password-stdin"]
    if registry:
        args.append(registry)
    return args


def _build_args(payload: DeploymentPayload, context: Path, registry: str | None) -> list[str]:
    return ["build", "-t", payload.image_tag, str(context)]


def _push_args(payload: DeploymentPayload, context: Path, registry: str | None) -> list[str]:
    return ["push", payload.image_tag]


PHASES: tuple[Phase, ...] = (
    Phase(
        DeploymentStatus.AUTHENTICATING,
        "Docker login",
        "[DOCKER LOGIN]",
        _login_args,
        pipes_credential=True,
    ),
    Phase(DeploymentStatus.BUILDING, "Docker build", "[DOCKER BUILD]", _build_args),
    Phase(DeploymentStatus.PUSHING, "Docker push", "[DOCKER PUSH]", _push_args),
)

# Failure tag per state a run can fail from
FAILURE_TAGS: dict[DeploymentStatus | None, str] = {
    None: "[FATAL]",
    DeploymentStatus.PREPARING: "[FS]",
    **{phase.status: phase.tag for phase in PHASES},
}

# Strong references to runs started with ``start``; see asyncio.create_task
_running_deployments: set[asyncio.Task[DeploymentStatus]] = set()


class DeploymentOrchestrator:
    """Drives a pending deployment through the build toolchain."""

    def __init__(
        self,
        artifacts: ArtifactStore | None = None,
        staging: StagingArea | None = None,
        runner: ProcessRunnerProtocol | None = None,
        records: DeploymentRecordStore | None = None,
        build_tool: str | None = None,
        registry: str | None = None,
        timeout: float | None = None,
    ):
        self.artifacts = artifacts or get_artifact_store()
        self.staging = staging or StagingArea()
        self.runner = runner or ProcessRunner()
        self.records = records or get_record_store()
        self.build_tool = build_tool or settings.build_tool_binary
        self.registry = registry if registry is not None else settings.registry_host
        self.timeout = timeout if timeout is not None else settings.process_timeout_seconds
        self.logger = get_logger("orchestrator")

    def start(self, session_id: str, user_id: str | None = None) -> EventStream:
        """Launch a run in the background and return its event stream.

        The run keeps going, and cleans up after itself, even if nobody
        reads the stream.
        """
        stream = EventStream(session_id)
        task = asyncio.create_task(self.run(session_id, stream, user_id=user_id))
        _running_deployments.add(task)
        task.add_done_callback(_running_deployments.discard)
        return stream

    async def run(
        self, session_id: str, stream: EventStream, user_id: str | None = None
    ) -> DeploymentStatus:
        """Run the pipeline for a session, reporting through ``stream``.

        A session owned by a user other than ``user_id`` is treated as not
        found. Never raises; the outcome is the returned terminal state and
        the events written to the stream.
        """
        payload = await self.artifacts.take(session_id, user_id=user_id)
        if payload is None:
            self.logger.warning("orchestrator.session_not_found", session_id=session_id)
            stream.log(SESSION_NOT_FOUND_MESSAGE, is_error=True)
            stream.status(DeploymentStatus.FAILED)
            stream.close(FAILURE_MESSAGE)
            return DeploymentStatus.FAILED

        log = self.logger.bind(session_id=session_id, image_tag=payload.image_tag)
        log.info("orchestrator.deployment.started", model=payload.model_identifier)

        state: DeploymentStatus | None = None
        context: Path | None = None
        try:
            state = self._enter(stream, state, DeploymentStatus.PREPARING)
            stream.log("[FS] Staging Dockerfile, app.py and requirements.txt...")
            context = await self.staging.stage(payload)
            stream.log("[FS] Build context ready.")

            for phase in PHASES:
                state = self._enter(stream, state, phase.status)
                await self._run_phase(phase, payload, context, stream)

            state = self._enter(stream, state, DeploymentStatus.RECORDING)
            await self._record(payload, stream)

            state = self._enter(stream, state, DeploymentStatus.COMPLETE)
            log.info("orchestrator.deployment.completed")

        except ModelNestError as e:
            state = self._fail(stream, state, e.message)
            log.warning("orchestrator.deployment.failed", error=e.message, details=e.details)

        except Exception as e:
            state = self._fail(stream, state, str(e) or type(e).__name__)
            log.exception("orchestrator.deployment.crashed")

        finally:
            if context is not None:
                await self.staging.release(context)
            await self.artifacts.discard(session_id)
            stream.close(
                SUCCESS_MESSAGE if state == DeploymentStatus.COMPLETE else FAILURE_MESSAGE
            )

        return state

    def _enter(
        self,
        stream: EventStream,
        current: DeploymentStatus | None,
        target: DeploymentStatus,
    ) -> DeploymentStatus:
        if not can_transition(current, target):
            raise RuntimeError(f"Invalid deployment transition {current} -> {target}")
        stream.status(target)
        self.logger.info(
            "orchestrator.phase.started",
            session_id=stream.session_id,
            phase=target.value,
        )
        return target

    def _fail(
        self, stream: EventStream, state: DeploymentStatus | None, message: str
    ) -> DeploymentStatus:
        tag = FAILURE_TAGS.get(state, "[FATAL]")
        stream.log(f"{tag} {message}", is_error=True)
        stream.status(DeploymentStatus.FAILED)
        return DeploymentStatus.FAILED

    async def _run_phase(
        self,
        phase: Phase,
        payload: DeploymentPayload,
        context: Path,
        stream: EventStream,
    ) -> None:
        stream.log(phase.announcement(payload))
        args = phase.arguments(payload, context, self.registry)

        def relay(line: OutputLine) -> None:
            stream.log(line.text, is_error=line.is_error)

        exit_code = await self.runner.run(
            self.build_tool,
            args,
            sink=relay,
            stdin=payload.registry_credential.get_secret_value()
            if phase.pipes_credential
            else None,
            cwd=context,
            timeout=self.timeout,
        )
        if exit_code != 0:
            raise PhaseFailedError(phase.name, phase.tag, exit_code)

        stream.log(f"{phase.tag} {phase.name} succeeded.")

    async def _record(self, payload: DeploymentPayload, stream: EventStream) -> None:
        record = DeploymentRecord.from_payload(payload)
        try:
            await self.records.save(record)
        except Exception as e:
            self.logger.warning(
                "orchestrator.record_not_saved",
                session_id=payload.session_id,
                image_tag=record.deployed_image_tag,
                error=str(e),
            )
            stream.log(
                f"[RECORD] Image pushed but deployment record was not saved: {e}",
                is_error=True,
            )
            return

        stream.log(f"[RECORD] Deployment record saved for {record.deployed_image_tag}.")


def running_deployments() -> Sequence[asyncio.Task[DeploymentStatus]]:
    """Runs started with ``start`` that have not finished yet."""
    return tuple(_running_deployments)


async def wait_for_deployments(timeout: float | None = None) -> int:
    """Wait for background runs to finish. Returns how many were still running."""
    pending = running_deployments()
    if not pending:
        return 0
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    return len(still_running)


# Convenience function to get orchestrator
def get_orchestrator() -> DeploymentOrchestrator:
    """Get a deployment orchestrator instance."""
    return DeploymentOrchestrator()
