"""Read dependency groups from the .nuspec manifest embedded in a .nupkg."""
from __future__ import annotations

import io
import logging
import xml.etree.ElementTree as ET
import zipfile
from typing import IO, List, Optional, Union

from registry.errors import RegistryError
from traversal.models import DependencyGroup, PackageReference
from versioning.frameworks import ANY_FRAMEWORK, framework_family
from versioning.models import InvalidVersionError
from versioning.parser import parse_version_range

logger = logging.getLogger(__name__)


def _strip_namespaces(root: ET.Element) -> None:
    # nuspec schemas vary by year; match on local names only
    for elem in root.iter():
        if "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]


def _reference(dep: ET.Element) -> Optional[PackageReference]:
    package_id = (dep.get("id") or "").strip()
    if not package_id:
        return None
    raw_range = (dep.get("version") or "").strip()
    try:
        min_version = parse_version_range(raw_range).min_version
    except InvalidVersionError as exc:
        logger.warning("Ignoring dependency %s with bad version range %r: %s", package_id, raw_range, exc)
        return None
    return PackageReference(package_id=package_id, version_range=raw_range, min_version=min_version)


def parse_nuspec(xml_text: Union[str, bytes]) -> List[DependencyGroup]:
    """Parse nuspec XML into dependency groups.

    A flat ``<dependencies>`` list without ``<group>`` elements becomes one
    framework-agnostic group.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise RegistryError(f"Malformed nuspec: {exc}") from exc
    _strip_namespaces(root)

    dependencies = root.find("./metadata/dependencies")
    if dependencies is None:
        return []

    groups: List[DependencyGroup] = []
    for group in dependencies.findall("group"):
        refs = [r for r in (_reference(d) for d in group.findall("dependency")) if r is not None]
        groups.append(
            DependencyGroup(target_platform=framework_family(group.get("targetFramework")), packages=refs)
        )

    flat = [r for r in (_reference(d) for d in dependencies.findall("dependency")) if r is not None]
    if flat:
        groups.append(DependencyGroup(target_platform=ANY_FRAMEWORK, packages=flat))
    return groups


def read_nuspec(package: Union[str, IO[bytes]]) -> bytes:
    """Return the raw nuspec from a .nupkg path or binary stream."""
    try:
        with zipfile.ZipFile(package) as archive:
            names = [n for n in archive.namelist() if "/" not in n and n.lower().endswith(".nuspec")]
            if not names:
                raise RegistryError("Package contains no .nuspec manifest")
            return archive.read(names[0])
    except zipfile.BadZipFile as exc:
        raise RegistryError(f"Not a valid package archive: {exc}") from exc


def dependency_groups_from_package(package: Union[str, bytes, IO[bytes]]) -> List[DependencyGroup]:
    """Dependency groups of a .nupkg given as a path, bytes, or binary stream."""
    if isinstance(package, (bytes, bytearray)):
        package = io.BytesIO(package)
    return parse_nuspec(read_nuspec(package))
