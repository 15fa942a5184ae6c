"""Internal data types for the package graph.

Nodes are produced by a loader and addressed by import identity. The walker
keeps them in an identity-keyed arena rather than following object links.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PackageNode:
    """A single loaded package."""

    path: str  # Import identity: "example.com/repo/pkg/shared"
    dir: str = ""  # Absolute package directory
    compiled_files: tuple[str, ...] = ()  # Absolute paths
    embed_files: tuple[str, ...] = ()  # Absolute paths
    imports: tuple[str, ...] = ()  # Direct import identities
    dep_only: bool = False  # Pulled in only as a dependency of the requested pattern
    errors: tuple[str, ...] = ()  # Loader-reported package errors

    def files(self) -> tuple[str, ...]:
        return self.compiled_files + self.embed_files
