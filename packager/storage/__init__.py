"""
Persistence for the update packager.

This package is responsible for:
* The upgrade-path lineage and processed release posts (SQLite).
* Per-version manifest caches kept as side files next to the release trees.
* The on-disk store of extracted releases, one directory per version.
* Relocating finished packages into durable storage.
"""
