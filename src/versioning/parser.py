"""NuGet version normalization and range parsing."""

import re
from typing import Optional

from .models import InvalidVersionError, VersionRange

_VERSION_RE = re.compile(
    r"^\s*v?(?P<numbers>\d+(?:\.\d+){0,3})(?:-(?P<release>[0-9A-Za-z\-\.]+))?(?:\+[0-9A-Za-z\-\.]*)?\s*$"
)
_FLOAT_RE = re.compile(r"^\s*(?P<prefix>(?:\d+\.){0,3})\*\s*$")


def normalize_version(version: str) -> str:
    """Return the normalized form of a NuGet version.

    Build metadata is dropped, the numeric part is padded to three components,
    a fourth component is kept only when non-zero and the release label is
    lowercased so that identity comparison is case-insensitive.

    Raises:
        InvalidVersionError: If the string is not a NuGet version.
    """
    if version is None:
        raise InvalidVersionError("Version is required")
    m = _VERSION_RE.match(version)
    if not m:
        raise InvalidVersionError(f"Invalid NuGet version: {version!r}")

    numbers = [int(part) for part in m.group("numbers").split(".")]
    while len(numbers) < 3:
        numbers.append(0)
    if len(numbers) == 4 and numbers[3] == 0:
        numbers = numbers[:3]

    normalized = ".".join(str(n) for n in numbers)
    release = m.group("release")
    if release:
        normalized = f"{normalized}-{release.lower()}"
    return normalized


def _parse_floating(text: str) -> Optional[str]:
    """Lower bound of a floating range such as ``1.*`` or ``*``."""
    m = _FLOAT_RE.match(text)
    if not m:
        return None
    prefix = m.group("prefix").rstrip(".")
    return normalize_version(prefix) if prefix else "0.0.0"


def parse_version_range(text: str) -> VersionRange:
    """Parse NuGet interval notation.

    ``1.0`` means ``>= 1.0``; ``[1.0]`` pins exactly; ``[1.0, 2.0)``,
    ``(1.0,)`` and ``(, 2.0]`` are intervals. A bare ``1.*`` floats with its
    literal prefix as the minimum.
    """
    if text is None or not text.strip():
        # An empty range in a nuspec means "any version"
        return VersionRange(raw=text or "", min_version=None, min_inclusive=True,
                            max_version=None, max_inclusive=False)

    s = text.strip()
    if s[0] not in "[(":
        floating = _parse_floating(s)
        if floating is not None:
            return VersionRange(raw=text, min_version=floating, min_inclusive=True,
                                max_version=None, max_inclusive=False, floating=True)
        return VersionRange(raw=text, min_version=normalize_version(s), min_inclusive=True,
                            max_version=None, max_inclusive=False)

    if len(s) < 3 or s[-1] not in "])":
        raise InvalidVersionError(f"Invalid NuGet version range: {text!r}")

    min_inclusive = s[0] == "["
    max_inclusive = s[-1] == "]"
    body = s[1:-1]

    if "," not in body:
        # [1.0] is the only legal single-value bracket form
        if not (min_inclusive and max_inclusive) or not body.strip():
            raise InvalidVersionError(f"Invalid NuGet version range: {text!r}")
        pinned = normalize_version(body)
        return VersionRange(raw=text, min_version=pinned, min_inclusive=True,
                            max_version=pinned, max_inclusive=True)

    parts = body.split(",")
    if len(parts) != 2:
        raise InvalidVersionError(f"Invalid NuGet version range: {text!r}")
    low, high = parts[0].strip(), parts[1].strip()
    if not low and not high:
        raise InvalidVersionError(f"Invalid NuGet version range: {text!r}")

    return VersionRange(
        raw=text,
        min_version=normalize_version(low) if low else None,
        min_inclusive=min_inclusive,
        max_version=normalize_version(high) if high else None,
        max_inclusive=max_inclusive,
    )


def versions_equal(left: str, right: str) -> bool:
    """Compare two version strings by normalized form; invalid strings never match."""
    try:
        return normalize_version(left) == normalize_version(right)
    except InvalidVersionError:
        return False
