"""Data models for dependency traversal."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from versioning.parser import normalize_version


class WorkState(Enum):
    """Lifecycle of a single work item."""
    PENDING = "pending"
    CLAIMED = "claimed"
    RESOLVED = "resolved"
    EXPANDED = "expanded"
    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class IdentityKey:
    """Deduplication key: package id (case-insensitive) plus normalized version."""
    package_id: str
    version: str

    @classmethod
    def of(cls, package_id: str, version: str) -> "IdentityKey":
        """Build the canonical key; raises InvalidVersionError for bad versions."""
        return cls(package_id=package_id.strip().casefold(), version=normalize_version(version))

    def __str__(self) -> str:
        return f"{self.package_id}.{self.version}"


@dataclass
class SearchResult:
    """One package returned by a registry search."""
    package_id: str
    versions: List[str] = field(default_factory=list)

    @property
    def latest_version(self) -> Optional[str]:
        """Last version in registry order; the only one downloaded for a search match."""
        return self.versions[-1] if self.versions else None


@dataclass(frozen=True)
class PackageReference:
    """A dependency edge as declared in a nuspec."""
    package_id: str
    version_range: str
    min_version: Optional[str]


@dataclass
class DependencyGroup:
    """Dependencies declared for one target framework family."""
    target_platform: str
    packages: List[PackageReference] = field(default_factory=list)


@dataclass
class WorkItem:
    """A pending resolve-download-expand unit for one package reference.

    ``required_version`` is unset only for the root query, which is
    resolved through search.
    """
    package_id: str
    required_version: Optional[str] = None
    exact_match: bool = True
    depth: int = 0
    parent: Optional[str] = None
    # Version came from a search result, so the registry is known to list it
    confirmed: bool = False
    state: WorkState = WorkState.PENDING

    @property
    def is_root_query(self) -> bool:
        return self.required_version is None and self.parent is None


@dataclass
class TraversalReport:
    """Outcome counters for one traversal run."""
    handled: int = 0
    downloaded: int = 0
    already_present: int = 0
    rejected: int = 0
    failed: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_count(self) -> int:
        return len(self.failed)
