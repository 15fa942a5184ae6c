"""Observers invoked by the walker once per newly visited package.

Each hook holds constant configuration plus one piece of mutable state, so
instances must not be shared between walks. Create fresh ones for every
(entrypoint, reference) pair.
"""

from __future__ import annotations

from collections.abc import Iterable

from monodetect.graph.types import PackageNode


class Lister:
    """Accumulate the compiled and embedded files of every observed package."""

    def __init__(self) -> None:
        self._files_by_package: dict[str, tuple[str, ...]] = {}

    def observe(self, node: PackageNode) -> None:
        # Last observation of an identity wins
        self._files_by_package[node.path] = node.files()

    def packages(self) -> list[str]:
        return sorted(self._files_by_package)

    def files(self) -> list[str]:
        """Sorted, deduplicated union of all observed files."""
        return sorted({f for files in self._files_by_package.values() for f in files})


class ChangedFileDetector:
    """Flag a walk once any observed package owns one of the changed files."""

    def __init__(self, changed_files: Iterable[str]) -> None:
        self.changed_files = frozenset(changed_files)
        self.found = False

    def observe(self, node: PackageNode) -> None:
        if self.found:
            return
        if not self.changed_files.isdisjoint(node.files()):
            self.found = True


class ChangedDependencyDetector:
    """Flag a walk once any observed package directly imports a changed dependency.

    Dependencies are module paths, so an import of any package inside a
    changed module (``module/subpkg``) also counts. Every package in the
    closure is observed, so checking direct imports is enough to catch a
    changed dependency anywhere below the entrypoint.
    """

    def __init__(self, dependencies: Iterable[str]) -> None:
        self.dependencies = frozenset(dependencies)
        self.found = False

    def observe(self, node: PackageNode) -> None:
        if self.found:
            return
        self.found = any(_within_module(imp, self.dependencies) for imp in node.imports)


Hook = Lister | ChangedFileDetector | ChangedDependencyDetector


def _within_module(import_path: str, modules: frozenset[str]) -> bool:
    if import_path in modules:
        return True
    # Walk up the path: "a/b/c" -> "a/b" -> "a"
    parent = import_path
    while "/" in parent:
        parent = parent.rsplit("/", 1)[0]
        if parent in modules:
            return True
    return False
