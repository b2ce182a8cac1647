"""
Version ordering and validation.

Versions are build numbers kept as strings; they name directories in the
release store and artifacts in the package directory.
"""
from typing import Iterable, List, Tuple

from packager.domain.errors import VersionResolutionError


def version_key(v: str) -> Tuple:
    """
    Convert a version string into a sortable tuple.

    Numeric components compare as integers, so "10" sorts after "9" and
    "3395761" after "3301923" regardless of digit width. Non-numeric
    components sort after numeric ones at the same position.
    """
    v_str = str(v) if v is not None else ""
    parts = []
    for part in v_str.strip().replace("-", ".").split("."):
        try:
            parts.append((0, int(part), ""))
        except ValueError:
            parts.append((1, 0, part))
    return tuple(parts)


def sort_versions(versions: Iterable[str], reverse: bool = False) -> List[str]:
    """Return the versions ordered numerically (oldest first unless reverse)."""
    return sorted(set(versions), key=version_key, reverse=reverse)


def is_older(version: str, than: str) -> bool:
    """True if version sorts strictly before than."""
    return version_key(version) < version_key(than)


def validate_version(value: object) -> str:
    """
    Return value as a version string usable as a single path component.

    Raises:
        VersionResolutionError: if the value is empty, not a string or
            integer, or contains a path separator or a dot segment.
    """
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise VersionResolutionError(f"Invalid version value {value!r}")
    version = str(value).strip()
    if not version or "/" in version or "\\" in version or version in (".", ".."):
        raise VersionResolutionError(f"Invalid version value {value!r}")
    return version
