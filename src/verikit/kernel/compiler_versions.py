"""Map manifest-declared compiler versions onto a list of known builds."""

from typing import Any, Iterable, List, Optional, Sequence

from pydantic import BaseModel

_COMMIT_MARKER = "+commit"


class VersionEntry(BaseModel):
    """One known compiler build.

    long_version is the full identifier the remote compiler accepts,
    e.g. "0.8.19+commit.7dd6d404". version is the short/display form
    where the source list provides one.
    """
    long_version: str
    version: Optional[str] = None
    is_prerelease: bool = False


def _prefix_match(prefix: str, known_versions: Sequence[VersionEntry]) -> Optional[VersionEntry]:
    needle = prefix + _COMMIT_MARKER
    for entry in known_versions:
        if entry.long_version.startswith(needle):
            return entry
    return None


def resolve(
    candidate: Optional[str],
    known_versions: Sequence[VersionEntry],
    short_version: Optional[str] = None,
) -> Optional[VersionEntry]:
    """
    Resolve a declared version string to one known build.

    Rules, in order:
    1. Exact match on the long identifier.
    2. If candidate carries no build metadata ("0.8.19"), the first entry
       whose long identifier starts with candidate + "+commit".
    3. The same prefix rule using short_version, if given.

    First match in list order wins. Returns None when nothing matches;
    that is an expected outcome the caller surfaces to the user.
    """
    if candidate:
        candidate = candidate.strip()
        for entry in known_versions:
            if entry.long_version == candidate:
                return entry
        if _COMMIT_MARKER not in candidate:
            match = _prefix_match(candidate, known_versions)
            if match is not None:
                return match

    if short_version:
        return _prefix_match(short_version.strip(), known_versions)

    return None


def parse_solc_list(text: str) -> List[VersionEntry]:
    """Parse a solc-bin list.txt body ("soljson-v0.8.19+commit.7dd6d404.js" per line)."""
    entries: List[VersionEntry] = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("soljson-v"):
            continue
        long_version = line[len("soljson-v"):]
        if long_version.endswith(".js"):
            long_version = long_version[:-3]
        short = long_version.split("+", 1)[0]
        entries.append(VersionEntry(
            long_version=long_version,
            version=short,
            is_prerelease="nightly" in long_version,
        ))
    return entries


def parse_vyper_list(data: Any) -> List[VersionEntry]:
    """Parse a Vyper build list (JSON array, or {"builds": [...]})."""
    builds: Iterable[Any]
    if isinstance(data, dict):
        builds = data.get("builds", [])
    else:
        builds = data or []

    entries: List[VersionEntry] = []
    for build in builds:
        if not isinstance(build, dict) or "longVersion" not in build:
            continue
        entries.append(VersionEntry(
            long_version=build["longVersion"],
            version=build.get("version"),
            is_prerelease=bool(build.get("prerelease")),
        ))
    return entries


def long_version_for_short(short_version: str, known_versions: Sequence[VersionEntry]) -> str:
    """Return the long identifier whose short form equals short_version, else the input."""
    for entry in known_versions:
        if entry.version == short_version:
            return entry.long_version
    return short_version
