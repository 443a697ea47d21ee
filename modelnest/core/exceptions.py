"""Custom exceptions for ModelNest."""

from typing import Any


class ModelNestError(Exception):
    """Base exception for ModelNest."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ModelNestError):
    """Validation error."""

    pass


class AuthenticationError(ModelNestError):
    """Caller could not be identified."""

    pass


class SessionNotFoundError(ModelNestError):
    """No pending deployment for a session id."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Deployment session not found or expired: {session_id}",
            {"session_id": session_id},
        )
        self.session_id = session_id


class StagingError(ModelNestError):
    """Build inputs could not be written to disk."""

    def __init__(self, message: str, path: str | None = None):
        details = {}
        if path is not None:
            details["path"] = path
        super().__init__(f"Staging failed: {message}", details)


class PhaseFailedError(ModelNestError):
    """A build-tool phase exited non-zero."""

    def __init__(self, phase: str, tag: str, exit_code: int):
        super().__init__(
            f"{phase} failed with exit code {exit_code}",
            {"phase": phase, "exit_code": exit_code},
        )
        self.phase = phase
        self.tag = tag
        self.exit_code = exit_code


class ProcessLaunchError(ModelNestError):
    """The build tool could not be started."""

    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Could not start '{command}': {reason}",
            {"command": command},
        )
        self.command = command


class ProcessTimeoutError(ModelNestError):
    """The build tool ran past its deadline and was killed."""

    def __init__(self, command: str, timeout: float):
        super().__init__(
            f"'{command}' timed out after {timeout:g} seconds",
            {"command": command, "timeout": timeout},
        )
        self.command = command
        self.timeout = timeout


class PersistenceError(ModelNestError):
    """Deployment record could not be saved."""

    pass


class CodeGenerationError(ModelNestError):
    """The code generation service failed or returned nothing usable."""

    def __init__(self, message: str, status_code: int | None = None):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(f"Code generation failed: {message}", details)
