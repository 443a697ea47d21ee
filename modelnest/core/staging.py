"""Staging area for build contexts.

Each deployment run gets a private temporary directory holding exactly the
three files the build tool expects. The directory is removed on every exit
path; removal problems are logged and never raised.
"""

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from modelnest.config import settings
from modelnest.core.exceptions import StagingError
from modelnest.models.deployment import DeploymentPayload
from modelnest.utils.logging import get_logger

logger = get_logger(__name__)


class StagingArea:
    """Creates and removes per-run build context directories."""

    def __init__(self, root: str | Path | None = None, prefix: str | None = None):
        self.root = Path(root) if root else (
            Path(settings.staging_root) if settings.staging_root else None
        )
        self.prefix = prefix or settings.staging_prefix

    def _write(self, payload: DeploymentPayload) -> Path:
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        directory = Path(
            tempfile.mkdtemp(
                prefix=self.prefix,
                dir=str(self.root) if self.root is not None else None,
            )
        )
        try:
            for name, contents in payload.staged_files().items():
                (directory / name).write_text(contents, encoding="utf-8")
        except BaseException:
            self._remove(directory)
            raise
        return directory

    async def stage(self, payload: DeploymentPayload) -> Path:
        """Create a build context for a payload.

        Raises:
            StagingError: If the directory or any file cannot be written.
                No partial directory is left behind.
        """
        try:
            directory = await asyncio.to_thread(self._write, payload)
        except (OSError, UnicodeError) as e:
            raise StagingError(str(e), path=getattr(e, "filename", None)) from e

        logger.info(
            "staging.created",
            session_id=payload.session_id,
            path=str(directory),
        )
        return directory

    def _remove(self, directory: Path) -> None:
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("staging.remove_failed", path=str(directory), error=str(e))

    async def release(self, directory: Path) -> None:
        """Remove a build context. Never raises."""
        try:
            await asyncio.to_thread(self._remove, directory)
        except Exception as e:
            logger.warning("staging.release_failed", path=str(directory), error=str(e))
            return
        logger.info("staging.released", path=str(directory))

    @asynccontextmanager
    async def staged(self, payload: DeploymentPayload) -> AsyncIterator[Path]:
        """Stage a payload for the duration of a block."""
        directory = await self.stage(payload)
        try:
            yield directory
        finally:
            await self.release(directory)
