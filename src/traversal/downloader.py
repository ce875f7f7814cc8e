"""Download orchestration: existence check, serialized atomic write, error isolation."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

import aiohttp

from common.logging_utils import Timer, extra_context, indent, is_debug_enabled
from registry.base import RegistryClient
from registry.errors import RegistryError

from .storage import ArtifactStore

logger = logging.getLogger(__name__)


class DownloadOutcome(Enum):
    """Result of one fetch attempt."""
    DOWNLOADED = "downloaded"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"
    SKIPPED = "skipped"


class DownloadOrchestrator:
    """Fetch artifacts into an ArtifactStore at most once each.

    All storage writes go through one lock. Only the write step is
    serialized; resolution and expansion in other workers keep running.
    """

    def __init__(
        self,
        client: RegistryClient,
        store: ArtifactStore,
        write_lock: Optional[asyncio.Lock] = None,
    ):
        self.client = client
        self.store = store
        self._write_lock = write_lock or asyncio.Lock()
        self._cancelled = False

    def cancel(self) -> None:
        """Skip downloads that have not started writing yet."""
        self._cancelled = True

    async def fetch(self, package_id: str, version: str, depth: int = 0) -> DownloadOutcome:
        """Make sure ``package_id.version`` is on storage.

        Registry and storage failures are logged and reported as FAILED;
        they never propagate. After cancel(), fetches still waiting for the
        write lock return SKIPPED. Task cancellation does propagate.
        """
        label = f"{package_id}.{version}"
        if self.store.exists(package_id, version):
            logger.info("%s%s already downloaded.", indent(depth), label)
            return DownloadOutcome.ALREADY_PRESENT

        async with self._write_lock:
            # Another worker may have written it while we waited
            if self.store.exists(package_id, version):
                logger.info("%s%s already downloaded.", indent(depth), label)
                return DownloadOutcome.ALREADY_PRESENT
            if self._cancelled:
                logger.info("%s%s skipped, cancellation requested.", indent(depth), label)
                return DownloadOutcome.SKIPPED
            try:
                with Timer() as t:
                    async with self.store.open_atomic(package_id, version) as sink:
                        await self.client.stream_artifact(package_id, version, sink)
            except (RegistryError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                logger.error(
                    "Error downloading %s: %s",
                    label,
                    exc,
                    extra=extra_context(
                        event="download",
                        component="downloader",
                        outcome="error",
                        target=label,
                    ),
                )
                return DownloadOutcome.FAILED

        logger.info("%s%s downloaded!", indent(depth), label)
        if is_debug_enabled(logger):
            logger.debug(
                "Artifact written",
                extra=extra_context(
                    event="download",
                    component="downloader",
                    outcome="success",
                    target=label,
                    duration_ms=t.duration_ms(),
                ),
            )
        return DownloadOutcome.DOWNLOADED
