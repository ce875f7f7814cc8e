"""Registry client interface consumed by the traversal engine."""

from __future__ import annotations

from typing import BinaryIO, List, Optional, Protocol, Sequence

from traversal.models import DependencyGroup, SearchResult


class RegistryClient(Protocol):
    """Read-only package registry operations.

    Implementations must be safe to call concurrently from multiple
    workers; the traversal adds no locking around them.
    """

    async def search(
        self, query: str, frameworks: Sequence[str], skip: int, take: int
    ) -> List[SearchResult]:
        """Search packages; matching semantics are the registry's own."""
        ...

    async def get_versions(self, package_id: str) -> List[str]:
        """All published versions of a package, in registry order."""
        ...

    async def get_dependency_groups(
        self, package_id: str, version: str, artifact_path: Optional[str] = None
    ) -> List[DependencyGroup]:
        """Dependency groups from the package manifest.

        The manifest lives inside the artifact, so it is read from
        ``artifact_path`` when given and streamed otherwise.
        """
        ...

    async def stream_artifact(self, package_id: str, version: str, sink: BinaryIO) -> None:
        """Write the complete artifact into ``sink``; raises on failure."""
        ...
