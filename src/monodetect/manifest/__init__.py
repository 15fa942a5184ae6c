"""Manifests — go.mod/go.work parsing and manifest diffing.

Public API:
    GoModReader().read(module_dir) -> Manifest
    read_manifests(reader, root) -> dict[str, Manifest]
    diff_manifests(left, right) -> ManifestDiff
"""

from __future__ import annotations

from monodetect.manifest.diff import diff_manifests
from monodetect.manifest.gomod import (
    ROOT_MODULE,
    GoModReader,
    owning_module,
    parse_gomod,
    parse_gowork,
    read_manifests,
)
from monodetect.manifest.types import Manifest, ManifestChange, ManifestDiff, ManifestReader

__all__ = [
    "ROOT_MODULE",
    "GoModReader",
    "Manifest",
    "ManifestChange",
    "ManifestDiff",
    "ManifestReader",
    "diff_manifests",
    "owning_module",
    "parse_gomod",
    "parse_gowork",
    "read_manifests",
]
