from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Union

FileContent = Union[str, bytes]


def write_tree(root: Path, files: Dict[str, FileContent]) -> Path:
    """Create files under root from a {relative path: content} mapping."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root.joinpath(*rel.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def release_files(changelist: int, files: Dict[str, FileContent]) -> Dict[str, FileContent]:
    """A release tree including the build metadata file used for version detection."""
    return {"build.json": json.dumps({"Changelist": changelist}), **files}
