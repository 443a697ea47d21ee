"""In-memory store of pending deployments keyed by session id."""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

from modelnest.config import settings
from modelnest.models.deployment import DeploymentPayload
from modelnest.utils.logging import get_logger

logger = get_logger(__name__)


class ArtifactStore:
    """Holds generated artifacts and credentials until a run consumes them.

    Every read is a take: the entry is removed in the same locked step, so a
    payload is handed to at most one orchestrator run. Entries older than the
    TTL are dropped silently and look exactly like unknown sessions.

    Note: For production, this should be backed by Redis or similar.
    """

    def __init__(self, ttl_minutes: int | None = None):
        self._payloads: dict[str, DeploymentPayload] = {}
        self._ttl = timedelta(
            minutes=ttl_minutes if ttl_minutes is not None else settings.artifact_ttl_minutes
        )
        self._lock = asyncio.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @staticmethod
    def new_session_id() -> str:
        """Generate an opaque session id."""
        return uuid4().hex

    def _expired(self, payload: DeploymentPayload, now: datetime) -> bool:
        return now - payload.created_at > self._ttl

    async def put(self, session_id: str, payload: DeploymentPayload) -> None:
        """Insert or overwrite the payload for a session."""
        async with self._lock:
            if session_id in self._payloads:
                logger.warning("artifacts.overwritten", session_id=session_id)
            self._payloads[session_id] = payload

    async def take(
        self, session_id: str, user_id: str | None = None
    ) -> DeploymentPayload | None:
        """Remove and return the payload for a session.

        When ``user_id`` is given, a payload owned by someone else is left in
        place and reported as missing.
        """
        async with self._lock:
            payload = self._payloads.get(session_id)
            if payload is None:
                return None
            if user_id is not None and payload.user_id != user_id:
                logger.warning(
                    "artifacts.owner_mismatch", session_id=session_id, user_id=user_id
                )
                return None
            del self._payloads[session_id]
        if self._expired(payload, datetime.utcnow()):
            logger.info("artifacts.expired", session_id=session_id)
            return None
        return payload

    async def discard(self, session_id: str) -> bool:
        """Delete a session's payload if still present."""
        async with self._lock:
            return self._payloads.pop(session_id, None) is not None

    async def contains(self, session_id: str) -> bool:
        """Check for a live, unexpired payload without consuming it."""
        async with self._lock:
            payload = self._payloads.get(session_id)
            return payload is not None and not self._expired(payload, datetime.utcnow())

    async def cleanup_expired(self) -> int:
        """Remove expired payloads. Returns count of removed payloads."""
        now = datetime.utcnow()
        async with self._lock:
            expired = [
                sid
                for sid, payload in self._payloads.items()
                if self._expired(payload, now)
            ]
            for sid in expired:
                del self._payloads[sid]
        if expired:
            logger.info("artifacts.cleanup", removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._payloads)


# Singleton instance
_artifact_store: ArtifactStore | None = None


def get_artifact_store() -> ArtifactStore:
    """Get the artifact store singleton."""
    global _artifact_store
    if _artifact_store is None:
        _artifact_store = ArtifactStore()
    return _artifact_store
