from __future__ import annotations

import json
from pathlib import Path

from packager.core.config import PackagerConfig
from packager.domain.errors import VersionResolutionError
from packager.domain.versions import validate_version


def read_release_version(tree: Path, config: PackagerConfig) -> str:
    """
    Read the release version from the JSON metadata file inside a release tree.

    The metadata file (e.g. the game's `.modules` file) holds the build's
    changelist number under `config.version_field`.
    """
    path = Path(tree).joinpath(*config.version_file.split("/"))
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise VersionResolutionError(f"Version metadata file not found: {path}") from e
    except (OSError, ValueError) as e:
        raise VersionResolutionError(f"Unreadable version metadata file {path}: {e}") from e

    if not isinstance(raw, dict) or config.version_field not in raw:
        raise VersionResolutionError(f"'{config.version_field}' missing from {path}")

    try:
        return validate_version(raw[config.version_field])
    except VersionResolutionError as e:
        raise VersionResolutionError(f"{e} in {path}") from e
