"""
Delta calculation between two file manifests.
"""
from __future__ import annotations

import hashlib
import os
from collections import Counter
from typing import Dict, Mapping

from packager.domain.models import (
    OPERATION_ADDED,
    OPERATION_MODIFIED,
    OPERATION_REMOVED,
    DeltaOperationSet,
)


def compute_delta(
    from_manifest: Mapping[str, str],
    to_manifest: Mapping[str, str],
) -> DeltaOperationSet:
    """
    Classify every differing path as added, modified or removed.

    Paths with the same digest in both manifests are omitted. The result is
    returned with sorted keys, so it does not depend on the order the input
    manifests were built in.
    """
    delta: DeltaOperationSet = {}
    for path, digest in from_manifest.items():
        if path not in to_manifest:
            delta[path] = OPERATION_REMOVED
        elif to_manifest[path] != digest:
            delta[path] = OPERATION_MODIFIED
    for path in to_manifest:
        if path not in from_manifest:
            delta[path] = OPERATION_ADDED
    return {path: delta[path] for path in sorted(delta)}


def delta_fingerprint(delta: Mapping[str, str]) -> str:
    """
    SHA-256 over the sorted (path, operation) entries of an operation set.

    Identical change sets produce identical fingerprints across runs.
    """
    h = hashlib.sha256()
    for path in sorted(delta):
        h.update(os.fsencode(path))
        h.update(b"\0")
        h.update(str(delta[path]).encode("utf-8"))
        h.update(b"\n")
    return h.hexdigest()


def summarize(delta: Mapping[str, str]) -> Dict[str, int]:
    """Count entries per operation, e.g. {"added": 3, "removed": 1}."""
    return dict(sorted(Counter(delta.values()).items()))
