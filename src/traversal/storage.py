"""Local artifact storage: deterministic paths and atomic writes."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncIterator, BinaryIO, Optional

from constants import Constants

logger = logging.getLogger(__name__)


def _commit(sink: BinaryIO, tmp_path: str, final_path: str) -> None:
    sink.flush()
    os.fsync(sink.fileno())
    sink.close()
    os.replace(tmp_path, final_path)


class ArtifactStore:
    """Directory of downloaded packages.

    The existence of ``{id}.{version}.nupkg`` is the only record of a
    completed download, so files only appear under that name once fully
    written. Package ids are case-insensitive: an artifact stored as
    ``Dep.1.0.0.nupkg`` also answers for ``dep``.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def ensure_directory(self) -> None:
        """Create the storage directory; raises OSError when that is impossible."""
        os.makedirs(self.directory, exist_ok=True)

    def artifact_name(self, package_id: str, version: str) -> str:
        return f"{package_id}.{version}{Constants.PACKAGE_EXTENSION}"

    def _stored_name(self, name: str) -> Optional[str]:
        """Name of the stored file matching ``name`` ignoring case, if any."""
        if os.path.isfile(os.path.join(self.directory, name)):
            return name
        folded = name.casefold()
        try:
            entries = os.listdir(self.directory)
        except FileNotFoundError:
            return None
        for entry in entries:
            if entry.casefold() == folded and os.path.isfile(os.path.join(self.directory, entry)):
                return entry
        return None

    def path_for(self, package_id: str, version: str) -> str:
        """Path of the stored artifact, or of the name it would be stored under."""
        name = self.artifact_name(package_id, version)
        return os.path.join(self.directory, self._stored_name(name) or name)

    def exists(self, package_id: str, version: str) -> bool:
        return self._stored_name(self.artifact_name(package_id, version)) is not None

    @asynccontextmanager
    async def open_atomic(self, package_id: str, version: str) -> AsyncIterator[BinaryIO]:
        """Yield a temp file that is renamed onto the artifact path on clean exit.

        The fsync and rename run in a worker thread. On any exception
        (including cancellation) the temp file is removed and the exception
        propagates.
        """
        final_path = self.path_for(package_id, version)
        fd, tmp_path = tempfile.mkstemp(
            prefix=self.artifact_name(package_id, version) + Constants.PARTIAL_SUFFIX,
            dir=self.directory,
        )
        sink = os.fdopen(fd, "wb")
        try:
            yield sink
            await asyncio.to_thread(_commit, sink, tmp_path, final_path)
        except BaseException:
            sink.close()
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
