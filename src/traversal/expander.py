"""Turn a downloaded package's declared dependencies into the next frontier."""

from __future__ import annotations

import logging
from typing import List, Sequence, Set, Tuple

from common.logging_utils import extra_context, indent, is_debug_enabled
from registry.base import RegistryClient
from versioning.frameworks import matches_platform
from versioning.models import InvalidVersionError

from .models import DependencyGroup, IdentityKey, PackageReference, WorkItem
from .storage import ArtifactStore
from .visited import VisitedSet

logger = logging.getLogger(__name__)


class DependencyExpander:
    """Read dependency groups, filter by platform, dedup and prune against the visited set."""

    def __init__(
        self,
        client: RegistryClient,
        store: ArtifactStore,
        visited: VisitedSet,
        platform_prefixes: Sequence[str],
    ):
        self.client = client
        self.store = store
        self.visited = visited
        self.platform_prefixes = list(platform_prefixes)

    def filter_groups(self, groups: Sequence[DependencyGroup]) -> List[DependencyGroup]:
        """Keep only groups for an allowed platform family."""
        return [g for g in groups if matches_platform(g.target_platform, self.platform_prefixes)]

    def select_references(self, groups: Sequence[DependencyGroup]) -> List[PackageReference]:
        """Flatten kept groups, drop duplicate (id, min version) pairs and already-claimed keys."""
        seen: Set[Tuple[str, object]] = set()
        selected: List[PackageReference] = []
        for group in self.filter_groups(groups):
            for ref in group.packages:
                marker = (ref.package_id.casefold(), ref.min_version)
                if marker in seen:
                    continue
                seen.add(marker)
                if ref.min_version is not None:
                    try:
                        if self.visited.contains(IdentityKey.of(ref.package_id, ref.min_version)):
                            continue
                    except InvalidVersionError:
                        logger.warning("Ignoring %s with invalid version %r", ref.package_id, ref.min_version)
                        continue
                selected.append(ref)
        return selected

    async def expand(self, package_id: str, version: str, depth: int = 0) -> List[WorkItem]:
        """Produce child work items for ``package_id.version``.

        Children always resolve exactly at their declared minimum version.
        Registry errors propagate to the scheduler.
        """
        groups = await self.client.get_dependency_groups(
            package_id, version, self.store.path_for(package_id, version)
        )
        references = self.select_references(groups)

        if is_debug_enabled(logger):
            logger.debug(
                "Expanded dependencies",
                extra=extra_context(
                    event="expand",
                    component="expander",
                    target=f"{package_id}.{version}",
                    groups=len(groups),
                    count=len(references),
                ),
            )

        if references:
            logger.info("%s%d unhandled dependencies for %s", indent(depth), len(references), package_id)

        return [
            WorkItem(
                package_id=ref.package_id,
                required_version=ref.min_version,
                exact_match=True,
                depth=depth + 1,
                parent=package_id,
            )
            for ref in references
        ]
