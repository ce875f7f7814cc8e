"""NuGet registry package.

- client.py: async V3 client (service index, search, flat container versions, package download)
- nuspec.py: dependency group extraction from the manifest inside a .nupkg
"""

from .client import NuGetClient  # noqa: F401
from .nuspec import dependency_groups_from_package, parse_nuspec  # noqa: F401

__all__ = [
    "NuGetClient",
    "dependency_groups_from_package",
    "parse_nuspec",
]
