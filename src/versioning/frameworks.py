"""Map nuspec target framework monikers to framework family names.

Dependency groups are filtered on the family (``.NETCoreApp``,
``.NETStandard``, ``.NETFramework``...), not on the short moniker that
appears in the nuspec.
"""

import re
from typing import Optional

ANY_FRAMEWORK = "Any"

_SHORT_FAMILIES = [
    ("netstandard", ".NETStandard"),
    ("netcoreapp", ".NETCoreApp"),
    ("netcore", "NETCore"),
    ("netmf", ".NETMicroFramework"),
    ("portable", ".NETPortable"),
    ("monoandroid", "MonoAndroid"),
    ("monotouch", "MonoTouch"),
    ("monomac", "MonoMac"),
    ("xamarinios", "Xamarin.iOS"),
    ("xamarinmac", "Xamarin.Mac"),
    ("xamarintvos", "Xamarin.TVOS"),
    ("xamarinwatchos", "Xamarin.WatchOS"),
    ("uap", "UAP"),
    ("win", "Windows"),
    ("wpa", "WindowsPhoneApp"),
    ("wp", "WindowsPhone"),
    ("sl", "Silverlight"),
    ("tizen", "Tizen"),
    ("native", "native"),
]

_LONG_FORM = re.compile(r"^(?P<family>[.A-Za-z][A-Za-z.]*?)(?:,\s*Version=v?|v?)(?P<version>\d[\d.]*)?$")
_NET = re.compile(r"^net(?P<version>\d[\d.]*)(?:-[A-Za-z]+[\d.]*)?$")


def framework_family(moniker: Optional[str]) -> str:
    """Return the framework family for a target framework moniker.

    Args:
        moniker: ``targetFramework`` attribute value, possibly empty.

    Returns:
        Family name; ``Any`` when the group is framework-agnostic.
    """
    if moniker is None or not moniker.strip():
        return ANY_FRAMEWORK
    tfm = moniker.strip()
    lower = tfm.lower()

    if lower.startswith("."):
        m = _LONG_FORM.match(tfm)
        return m.group("family") if m else tfm

    m = _NET.match(lower)
    if m:
        version = m.group("version")
        if "." in version:
            # net5.0 and later are .NET Core; net4.x dotted forms are Framework
            major = int(version.split(".", 1)[0])
            return ".NETCoreApp" if major >= 5 else ".NETFramework"
        # net45, net472, net48 (no dots) are always .NET Framework
        return ".NETFramework"

    for prefix, family in _SHORT_FAMILIES:
        if lower.startswith(prefix):
            return family

    letters = re.match(r"^[A-Za-z.]+", tfm)
    return letters.group(0) if letters else tfm


def matches_platform(family: str, prefixes) -> bool:
    """True when ``family`` starts with any of ``prefixes`` (case-insensitive)."""
    lowered = (family or "").lower()
    return any(lowered.startswith(p.lower()) for p in prefixes if p)
