"""Data models for NuGet versions and version ranges."""

from dataclasses import dataclass
from typing import Optional


class InvalidVersionError(ValueError):
    """Raised when a version or range string cannot be parsed."""


@dataclass(frozen=True)
class VersionRange:
    """Parsed NuGet version range in interval notation.

    Bounds are stored in normalized form; ``None`` means unbounded.
    """
    raw: str
    min_version: Optional[str]
    min_inclusive: bool
    max_version: Optional[str]
    max_inclusive: bool
    floating: bool = False

    @property
    def is_exact(self) -> bool:
        """True for ``[1.0.0]`` style pins."""
        return (
            self.min_version is not None
            and self.min_version == self.max_version
            and self.min_inclusive
            and self.max_inclusive
        )
