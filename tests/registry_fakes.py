"""In-memory registry used by the traversal tests."""

import asyncio
from typing import Dict, List, Optional, Sequence, Set, Tuple

from registry.errors import PackageNotFoundError, RegistryError
from traversal.models import DependencyGroup, PackageReference, SearchResult
from versioning.parser import normalize_version


def group(platform: str, *deps: Tuple[str, str]) -> DependencyGroup:
    """DependencyGroup from (id, min_version) pairs."""
    return DependencyGroup(
        target_platform=platform,
        packages=[PackageReference(package_id=i, version_range=v, min_version=v) for i, v in deps],
    )


class FakeRegistry:
    """Registry double recording calls and peak download concurrency."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self._packages: Dict[str, Tuple[str, List[str]]] = {}
        self._groups: Dict[Tuple[str, str], List[DependencyGroup]] = {}
        self.failing: Set[Tuple[str, str]] = set()
        self.search_error: Optional[Exception] = None
        self.search_calls: List[str] = []
        self.stream_calls: List[Tuple[str, str]] = []
        self.group_calls: List[Tuple[str, str, Optional[str]]] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.lookups_in_flight = 0
        self.peak_lookups = 0

    def add(self, package_id: str, versions: Sequence[str], groups_by_version=None) -> "FakeRegistry":
        self._packages[package_id.lower()] = (package_id, list(versions))
        for version, groups in (groups_by_version or {}).items():
            self._groups[(package_id.lower(), normalize_version(version))] = list(groups)
        return self

    def fail_download(self, package_id: str, version: str) -> "FakeRegistry":
        self.failing.add((package_id.lower(), normalize_version(version)))
        return self

    async def search(self, query: str, frameworks: Sequence[str], skip: int, take: int) -> List[SearchResult]:
        self.search_calls.append(query)
        if self.search_error is not None:
            raise self.search_error
        needle = query.lower()
        hits = [
            SearchResult(package_id=pid, versions=list(versions))
            for pid, versions in self._packages.values()
            if needle in pid.lower()
        ]
        return hits[skip:skip + take]

    async def get_versions(self, package_id: str) -> List[str]:
        self.lookups_in_flight += 1
        self.peak_lookups = max(self.peak_lookups, self.lookups_in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.lookups_in_flight -= 1
        entry = self._packages.get(package_id.lower())
        if entry is None:
            raise PackageNotFoundError(f"{package_id} not found", status=404)
        return list(entry[1])

    async def get_dependency_groups(self, package_id: str, version: str, artifact_path: Optional[str] = None):
        self.group_calls.append((package_id, version, artifact_path))
        return list(self._groups.get((package_id.lower(), normalize_version(version)), []))

    async def stream_artifact(self, package_id: str, version: str, sink) -> None:
        self.stream_calls.append((package_id, version))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            sink.write(b"PK-partial")
            await asyncio.sleep(self.delay)
            if (package_id.lower(), normalize_version(version)) in self.failing:
                raise RegistryError(f"simulated failure for {package_id} {version}", status=500)
            sink.write(f":{package_id}:{version}".encode())
        finally:
            self.in_flight -= 1

