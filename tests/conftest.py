"""Shared fixtures: an in-memory repository driving the detector end to end."""

from __future__ import annotations

import posixpath
import shutil
import threading
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from monodetect.config import Config
from monodetect.errors import CheckoutError, GraphLoadError, ResolveError
from monodetect.graph.types import PackageNode
from monodetect.manifest.gomod import parse_gomod
from monodetect.scm.git import FileDiff

GO_MOD = """module test-project

go 1.22

require go.uber.org/zap v1.27.0

require go.uber.org/multierr v1.10.0 // indirect
"""


@dataclass
class Snapshot:
    """Repository contents at one reference.

    ``files`` maps repo-relative paths to content; ``imports`` maps a package
    directory to the import identities its sources declare.
    """

    files: dict[str, str] = field(default_factory=dict)
    imports: dict[str, list[str]] = field(default_factory=dict)

    def copy(self) -> Snapshot:
        return Snapshot(
            files=dict(self.files),
            imports={k: list(v) for k, v in self.imports.items()},
        )


def sample_project() -> Snapshot:
    """cmd/app1 -> pkgA -> shared; cmd/app2 -> pkgB; cmd/app3 -> pkgA, pkgB, shared."""
    return Snapshot(
        files={
            "go.mod": GO_MOD,
            "cmd/app1/main.go": "package main // app1",
            "cmd/app2/main.go": "package main // app2",
            "cmd/app3/main.go": "package main // app3",
            "pkg/pkgA/a.go": "package pkgA",
            "pkg/pkgA/deleteme.go": "package pkgA // delete me",
            "pkg/pkgB/b.go": "package pkgB",
            "pkg/shared/shared.go": "package shared",
            "pkg/shared/banner.txt": "embedded banner",
        },
        imports={
            "cmd/app1": ["fmt", "test-project/pkg/pkgA"],
            "cmd/app2": ["fmt", "test-project/pkg/pkgB"],
            "cmd/app3": [
                "fmt",
                "test-project/pkg/pkgA",
                "test-project/pkg/pkgB",
                "test-project/pkg/shared",
            ],
            "pkg/pkgA": ["test-project/pkg/shared"],
            "pkg/pkgB": [],
            "pkg/shared": ["go.uber.org/zap", "embed"],
        },
    )


MANIFEST_NAMES = {"go.mod", "go.sum", "go.work", "go.work.sum"}


class FakeRepo:
    """Source-control fake: refs map to snapshots materialised under ``root``."""

    def __init__(self, root: Path, refs: dict[str, Snapshot], head: str = "feature") -> None:
        self.root = root
        self.refs = refs
        self.head = head
        self.current = head
        self.checkouts: list[str] = []
        self.checkout_threads: list[int] = []
        self.in_checkout = False
        self.fail_checkout_for: set[str] = set()
        self._materialise(head)

    def _materialise(self, ref: str) -> None:
        for child in self.root.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()
        for rel, content in self.refs[ref].files.items():
            target = self.root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        self.current = ref

    def resolve(self, ref: str) -> tuple[str, str]:
        if ref not in self.refs:
            raise ResolveError(f"failed to resolve ref {ref}")
        return f"hash-{ref}", ref

    def diff(self, base_ref: str, compare_ref: str) -> FileDiff:
        self.resolve(base_ref)
        self.resolve(compare_ref)
        base = self.refs[base_ref].files
        compare = self.refs[compare_ref].files
        return FileDiff(
            created=frozenset(set(compare) - set(base)),
            deleted=frozenset(set(base) - set(compare)),
            updated=frozenset(p for p in set(base) & set(compare) if base[p] != compare[p]),
        )

    @contextmanager
    def run_on_ref(self, ref: str):
        if self.in_checkout:
            raise CheckoutError("working tree is already checked out for another reference")
        self.resolve(ref)
        if ref in self.fail_checkout_for:
            raise CheckoutError(f"failed to checkout {ref}")
        original = self.current
        self.in_checkout = True
        self.checkouts.append(ref)
        self.checkout_threads.append(threading.get_ident())
        self._materialise(ref)
        try:
            yield f"hash-{ref}"
        finally:
            self._materialise(original)
            self.in_checkout = False


class FakeLoader:
    """Package loader reading the graph of whatever ref ``repo`` has checked out."""

    def __init__(self, repo: FakeRepo) -> None:
        self.repo = repo
        self.calls: list[tuple[str, str]] = []
        self.fail_patterns: set[str] = set()
        self.before_load: Callable[[str], None] | None = None

    def _modules(self, snapshot: Snapshot) -> dict[str, str]:
        modules: dict[str, str] = {}
        for rel, content in snapshot.files.items():
            if posixpath.basename(rel) == "go.mod":
                modules[posixpath.dirname(rel) or "."] = parse_gomod(content).module
        return modules

    def _identity(self, pkg_dir: str, modules: dict[str, str]) -> str:
        best = "."
        for mod_dir in modules:
            if mod_dir != "." and (pkg_dir == mod_dir or pkg_dir.startswith(mod_dir + "/")):
                if best == "." or len(mod_dir) > len(best):
                    best = mod_dir
        rel = pkg_dir if best == "." else posixpath.relpath(pkg_dir, best)
        return modules[best] if rel == "." else f"{modules[best]}/{rel}"

    def load(self, root: Path, pattern: str) -> list[PackageNode]:
        self.calls.append((self.repo.current, pattern))
        if self.before_load is not None:
            self.before_load(pattern)
        if pattern in self.fail_patterns:
            raise GraphLoadError(f"failed to load packages for {pattern}")
        snapshot = self.repo.refs[self.repo.current]
        modules = self._modules(snapshot)

        files_by_dir: dict[str, list[str]] = {}
        for rel in snapshot.files:
            if posixpath.basename(rel) in MANIFEST_NAMES:
                continue
            files_by_dir.setdefault(posixpath.dirname(rel) or ".", []).append(rel)

        target = pattern.removeprefix("./")
        recursive = target.endswith("...")
        target = target.removesuffix("...").rstrip("/")

        nodes: list[PackageNode] = []
        matched = False
        for pkg_dir, rels in sorted(files_by_dir.items()):
            if not any(r.endswith(".go") for r in rels):
                continue
            is_root = pkg_dir == target or (recursive and pkg_dir.startswith(target + "/"))
            matched = matched or is_root
            nodes.append(
                PackageNode(
                    path=self._identity(pkg_dir, modules),
                    dir=str(root / pkg_dir),
                    compiled_files=tuple(str(root / r) for r in sorted(rels) if r.endswith(".go")),
                    embed_files=tuple(
                        str(root / r) for r in sorted(rels) if not r.endswith(".go")
                    ),
                    imports=tuple(snapshot.imports.get(pkg_dir, [])),
                    dep_only=not is_root,
                )
            )
        if not matched:
            raise GraphLoadError(f"directory {target} not found")
        return nodes


@pytest.fixture
def repo_root(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def project():
    """Fresh copy of the sample project snapshot."""
    return sample_project()


@pytest.fixture
def make_detector(repo_root):
    """Build a Detector over a FakeRepo with ``main`` as base and ``feature`` as compare."""
    from monodetect.detect import Detector
    from monodetect.manifest.gomod import GoModReader

    def _make(
        feature: Snapshot,
        main: Snapshot | None = None,
        entrypoints: list[str] | None = None,
        **config_kwargs,
    ):
        repo = FakeRepo(repo_root, {"main": main or sample_project(), "feature": feature})
        loader = FakeLoader(repo)
        config = Config(
            path=repo_root,
            base_ref="main",
            compare_ref="feature",
            entrypoints=entrypoints or ["cmd/app1", "cmd/app2", "cmd/app3"],
            **config_kwargs,
        )
        detector = Detector(config, repo, loader, GoModReader())
        return detector, repo, loader

    return _make
