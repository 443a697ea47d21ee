"""Core deployment pipeline for ModelNest."""

from modelnest.core.artifacts import ArtifactStore, get_artifact_store
from modelnest.core.events import EventStream
from modelnest.core.exceptions import (
    AuthenticationError,
    CodeGenerationError,
    ModelNestError,
    PersistenceError,
    PhaseFailedError,
    ProcessLaunchError,
    ProcessTimeoutError,
    SessionNotFoundError,
    StagingError,
    ValidationError,
)
from modelnest.core.orchestrator import DeploymentOrchestrator, get_orchestrator
from modelnest.core.process import OutputLine, ProcessRunner
from modelnest.core.records import (
    DeploymentRecordStore,
    HttpRecordStore,
    InMemoryRecordStore,
    get_record_store,
)
from modelnest.core.staging import StagingArea

__all__ = [
    "ModelNestError",
    "AuthenticationError",
    "CodeGenerationError",
    "PersistenceError",
    "PhaseFailedError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
    "SessionNotFoundError",
    "StagingError",
    "ValidationError",
    "ArtifactStore",
    "get_artifact_store",
    "EventStream",
    "DeploymentOrchestrator",
    "get_orchestrator",
    "OutputLine",
    "ProcessRunner",
    "DeploymentRecordStore",
    "HttpRecordStore",
    "InMemoryRecordStore",
    "get_record_store",
    "StagingArea",
]
