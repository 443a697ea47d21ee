"""Deployment record persistence.

The record store is an external collaborator; the service ships an in-memory
store for development and an HTTP store that hands records to the ModelNest
backend.
"""

from typing import Protocol

import httpx

from modelnest.config import settings
from modelnest.core.exceptions import PersistenceError
from modelnest.models.deployment import DeploymentRecord
from modelnest.utils.logging import get_logger

logger = get_logger(__name__)


class DeploymentRecordStore(Protocol):
    """Persists successful deployments."""

    async def save(self, record: DeploymentRecord) -> None: ...

    async def list_for_user(self, user_id: str) -> list[DeploymentRecord]: ...


class InMemoryRecordStore:
    """Keeps records in process memory.

    Note: Records are lost on restart; configure RECORD_SERVICE_URL in production.
    """

    def __init__(self) -> None:
        self._records: list[DeploymentRecord] = []

    async def save(self, record: DeploymentRecord) -> None:
        self._records.append(record)

    async def list_for_user(self, user_id: str) -> list[DeploymentRecord]:
        records = [r for r in self._records if r.user_id == user_id]
        records.sort(key=lambda r: r.deployed_at, reverse=True)
        return records

    def clear(self) -> None:
        self._records.clear()


class HttpRecordStore:
    """Hands records to a remote persistence service over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.record_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def save(self, record: DeploymentRecord) -> None:
        """POST the record.

        Raises:
            PersistenceError: On transport errors or a non-2xx response.
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    "/deployments",
                    json=record.model_dump(mode="json", by_alias=True),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                f"Record service returned {e.response.status_code}",
                {"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"Record service unreachable: {e}") from e

        logger.info("records.saved", record_id=record.id, image_tag=record.deployed_image_tag)

    async def list_for_user(self, user_id: str) -> list[DeploymentRecord]:
        try:
            async with self._client() as client:
                response = await client.get("/deployments", params={"userId": user_id})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceError(f"Could not list deployments: {e}") from e

        return [DeploymentRecord.model_validate(item) for item in response.json()]


# Singleton instance
_record_store: DeploymentRecordStore | None = None


def get_record_store() -> DeploymentRecordStore:
    """Get the configured record store singleton."""
    global _record_store
    if _record_store is None:
        if settings.record_service_url:
            _record_store = HttpRecordStore(settings.record_service_url)
        else:
            _record_store = InMemoryRecordStore()
    return _record_store
