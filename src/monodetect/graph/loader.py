"""Package-graph loaders.

The walker only needs ``load(root, pattern) -> list[PackageNode]``. The
default implementation shells out to ``go list``, which resolves build tags,
cgo and embed patterns the same way the compiler does.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol

from monodetect.errors import GraphLoadError
from monodetect.graph.types import PackageNode

logger = logging.getLogger(__name__)

GO_LIST_FIELDS = (
    "ImportPath",
    "Dir",
    "GoFiles",
    "CgoFiles",
    "CompiledGoFiles",
    "EmbedFiles",
    "Imports",
    "DepOnly",
    "Error",
    "DepsErrors",
)


class PackageLoader(Protocol):
    def load(self, root: Path, pattern: str) -> list[PackageNode]: ...


def _absolute(directory: str, names: list[str] | None) -> tuple[str, ...]:
    if not names:
        return ()
    return tuple(name if os.path.isabs(name) else os.path.join(directory, name) for name in names)


def package_from_go_list(entry: dict) -> PackageNode:
    """Build a PackageNode from one ``go list -json`` object."""
    directory = entry.get("Dir", "")
    # CompiledGoFiles is only populated with -compiled; fall back to sources
    compiled = entry.get("CompiledGoFiles") or (entry.get("GoFiles") or []) + (
        entry.get("CgoFiles") or []
    )
    errors: list[str] = []
    if entry.get("Error"):
        errors.append(entry["Error"].get("Err", "unknown error"))
    # Errors of packages this one depends on, transitively
    errors.extend(err.get("Err", "unknown error") for err in entry.get("DepsErrors") or ())
    return PackageNode(
        path=entry["ImportPath"],
        dir=directory,
        compiled_files=_absolute(directory, compiled),
        embed_files=_absolute(directory, entry.get("EmbedFiles")),
        imports=tuple(entry.get("Imports") or ()),
        dep_only=bool(entry.get("DepOnly", False)),
        errors=tuple(errors),
    )


def decode_go_list(output: str) -> list[dict]:
    """Split the concatenated JSON objects ``go list -json`` writes to stdout."""
    decoder = json.JSONDecoder()
    entries: list[dict] = []
    idx = 0
    end = len(output)
    while idx < end:
        # Skip whitespace between objects
        while idx < end and output[idx].isspace():
            idx += 1
        if idx >= end:
            break
        obj, idx = decoder.raw_decode(output, idx)
        entries.append(obj)
    return entries


class GoListLoader:
    """Load packages with ``go list -e -deps -json``."""

    def __init__(self, go_binary: str = "go", env: dict[str, str] | None = None) -> None:
        self.go_binary = go_binary
        self.env = env

    def command(self, pattern: str) -> list[str]:
        fields = ",".join(GO_LIST_FIELDS)
        return [self.go_binary, "list", "-e", "-deps", f"-json={fields}", pattern]

    def load(self, root: Path, pattern: str) -> list[PackageNode]:
        cmd = self.command(pattern)
        logger.debug("Loading packages: %s (cwd=%s)", " ".join(cmd), root)
        # go resolves relative paths against $PWD when it points at the cwd
        env = {**os.environ, **(self.env or {}), "PWD": str(root)}
        try:
            result = subprocess.run(
                cmd,
                cwd=str(root),
                env=env,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise GraphLoadError(f"failed to run {self.go_binary}: {e}") from e

        if result.returncode != 0:
            raise GraphLoadError(
                f"failed to load packages for {pattern}: {result.stderr.strip()}"
            )

        try:
            entries = decode_go_list(result.stdout)
        except json.JSONDecodeError as e:
            raise GraphLoadError(f"malformed go list output for {pattern}: {e}") from e

        nodes = [package_from_go_list(entry) for entry in entries]
        roots = [node for node in nodes if not node.dep_only]
        if not roots:
            raise GraphLoadError(f"pattern {pattern} matched no packages")
        # With -e, a broken package is reported in its entry instead of the exit status
        for node in roots:
            if node.errors:
                raise GraphLoadError(
                    f"failed to load packages for {pattern}: {'; '.join(node.errors)}"
                )
        return nodes
