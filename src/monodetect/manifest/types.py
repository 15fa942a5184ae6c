"""Manifest data types: parsed go.mod contents and their classified diff."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Protocol


class ManifestChange(StrEnum):
    NONE = "no-change"
    LANGUAGE_VERSION = "language-version-changed"
    TOOLCHAIN = "toolchain-changed"
    DEPENDENCIES = "dependency-set-changed"


@dataclass(frozen=True, slots=True)
class Manifest:
    """Dependency declaration of one module."""

    module: str  # "example.com/repo"
    go: str = ""  # Language version token: "1.22"
    toolchain: str = ""  # "go1.22.4", empty when absent
    requires: dict[str, str] = field(default_factory=dict)  # path -> version


@dataclass(frozen=True, slots=True)
class ManifestDiff:
    """Classified difference between two manifests of the same module."""

    kind: ManifestChange
    added: frozenset[str] = frozenset()
    removed: frozenset[str] = frozenset()
    changed: frozenset[str] = frozenset()
    unchanged: frozenset[str] = frozenset()

    def changed_dependencies(self) -> frozenset[str]:
        """Added, removed and version-changed dependencies."""
        return self.added | self.removed | self.changed


class ManifestReader(Protocol):
    def read(self, module_dir: Path) -> Manifest: ...

    def is_workspace(self, root: Path) -> bool: ...

    def list_workspace_modules(self, root: Path) -> list[str]: ...
