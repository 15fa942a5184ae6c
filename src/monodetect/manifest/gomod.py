"""Readers for go.mod and go.work files."""

from __future__ import annotations

import logging
from pathlib import Path

from monodetect.errors import ManifestError
from monodetect.manifest.types import Manifest, ManifestReader

logger = logging.getLogger(__name__)

ROOT_MODULE = "."


def _tokens(line: str) -> list[str]:
    """Split a directive line into tokens, dropping comments and quotes."""
    code = line.split("//", 1)[0]
    # Parentheses are tokens of their own: "require(" opens a block
    code = code.replace("(", " ( ").replace(")", " ) ")
    return [tok.strip('"`') for tok in code.split()]


def _directives(text: str, source: str) -> list[tuple[str, list[str], int]]:
    """Flatten a go.mod/go.work file into (verb, args, line number) tuples.

    Block forms such as ``require ( ... )`` are expanded so each entry is
    reported with the block's verb.
    """
    out: list[tuple[str, list[str], int]] = []
    block: str | None = None
    for lineno, raw in enumerate(text.splitlines(), start=1):
        toks = _tokens(raw)
        if not toks:
            continue
        if block is not None:
            if toks == [")"]:
                block = None
                continue
            out.append((block, toks, lineno))
            continue
        verb, args = toks[0], toks[1:]
        if args == ["("]:
            block = verb
            continue
        out.append((verb, args, lineno))
    if block is not None:
        raise ManifestError(f"{source}: unterminated {block} block")
    return out


def parse_gomod(text: str, source: str = "go.mod") -> Manifest:
    """Parse the module path, go/toolchain tokens and requirements of a go.mod."""
    module = ""
    go = ""
    toolchain = ""
    requires: dict[str, str] = {}

    for verb, args, lineno in _directives(text, source):
        if verb == "module":
            if len(args) != 1:
                raise ManifestError(f"{source}:{lineno}: malformed module directive")
            module = args[0]
        elif verb == "go":
            if len(args) != 1:
                raise ManifestError(f"{source}:{lineno}: malformed go directive")
            go = args[0]
        elif verb == "toolchain":
            if len(args) != 1:
                raise ManifestError(f"{source}:{lineno}: malformed toolchain directive")
            toolchain = args[0]
        elif verb == "require":
            if len(args) != 2:
                raise ManifestError(f"{source}:{lineno}: malformed require entry")
            requires[args[0]] = args[1]
        # replace, exclude, retract, godebug and tool do not affect detection

    if not module:
        raise ManifestError(f"{source}: missing module directive")

    return Manifest(module=module, go=go, toolchain=toolchain, requires=requires)


def normalize_module_root(path: str) -> str:
    """``./services/api/`` -> ``services/api``; the workspace root stays ``.``."""
    path = path.replace("\\", "/").strip()
    while path.startswith("./"):
        path = path[2:]
    path = path.rstrip("/")
    return path or ROOT_MODULE


def parse_gowork(text: str, source: str = "go.work") -> list[str]:
    """Return the ``use`` directories of a go.work file, in declaration order."""
    roots: list[str] = []
    for verb, args, lineno in _directives(text, source):
        if verb != "use":
            continue
        if len(args) != 1:
            raise ManifestError(f"{source}:{lineno}: malformed use directive")
        root = normalize_module_root(args[0])
        if root not in roots:
            roots.append(root)
    return roots


class GoModReader:
    """Read go.mod manifests and go.work workspace layouts from disk."""

    def read(self, module_dir: Path) -> Manifest:
        path = Path(module_dir) / "go.mod"
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"failed to open go module file {path}: {e}") from e
        return parse_gomod(text, source=str(path))

    def is_workspace(self, root: Path) -> bool:
        return (Path(root) / "go.work").is_file()

    def list_workspace_modules(self, root: Path) -> list[str]:
        path = Path(root) / "go.work"
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"failed to open go workspace file {path}: {e}") from e
        return parse_gowork(text, source=str(path))


def read_manifests(reader: ManifestReader, root: Path) -> dict[str, Manifest]:
    """Read every module's manifest, keyed by module root relative to ``root``."""
    if not reader.is_workspace(root):
        return {ROOT_MODULE: reader.read(root)}

    manifests: dict[str, Manifest] = {}
    for module_root in reader.list_workspace_modules(root):
        module_dir = root if module_root == ROOT_MODULE else root / module_root
        manifests[module_root] = reader.read(module_dir)
    logger.debug("Read %d workspace manifests under %s", len(manifests), root)
    return manifests


def owning_module(entrypoint: str, module_roots: list[str]) -> str:
    """Pick the module an entrypoint belongs to by longest path-prefix match."""
    entry = normalize_module_root(entrypoint)
    best = ROOT_MODULE
    best_len = 0
    for root in module_roots:
        if root == ROOT_MODULE:
            continue
        if (entry == root or entry.startswith(root + "/")) and len(root) > best_len:
            best, best_len = root, len(root)
    return best
