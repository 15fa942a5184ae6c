"""Package graph — closure walking over a loaded Go package graph.

Public API:
    Walker(root, loader, module_roots, cancel=None).walk(entry, hooks) -> bool
    GoListLoader().load(root, pattern) -> list[PackageNode]
    Lister / ChangedFileDetector / ChangedDependencyDetector hooks
"""

from __future__ import annotations

from monodetect.graph.hooks import (
    ChangedDependencyDetector,
    ChangedFileDetector,
    Hook,
    Lister,
)
from monodetect.graph.loader import GoListLoader, PackageLoader
from monodetect.graph.types import PackageNode
from monodetect.graph.walker import Walker, entry_pattern

__all__ = [
    "ChangedDependencyDetector",
    "ChangedFileDetector",
    "GoListLoader",
    "Hook",
    "Lister",
    "PackageLoader",
    "PackageNode",
    "Walker",
    "entry_pattern",
]
