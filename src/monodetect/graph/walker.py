"""Walker — compute the in-module package closure of an entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from monodetect.errors import GraphLoadError

if TYPE_CHECKING:
    from monodetect.graph.hooks import Hook
    from monodetect.graph.loader import PackageLoader
    from monodetect.graph.types import PackageNode

logger = logging.getLogger(__name__)


class CancelSignal(Protocol):
    """Anything with an ``is_set()`` flag, e.g. ``asyncio.Event``."""

    def is_set(self) -> bool: ...


def entry_pattern(entry: str) -> str:
    """Turn an entrypoint into a relative package pattern.

    Without the ``./`` prefix, ``cmd/app`` would be read as an import path
    rather than a directory.
    """
    entry = entry.strip()
    while entry.startswith("./"):
        entry = entry[2:]
    entry = entry.rstrip("/")
    return "./" + entry if entry and entry != "." else "."


def within(identity: str, root: str) -> bool:
    """True when ``identity`` is ``root`` or a package below it."""
    return identity == root or identity.startswith(root + "/")


class Walker:
    """Walk the package graph below an entrypoint, invoking hooks once per package.

    Packages outside the module roots (stdlib, third-party) are never
    expanded, although hooks still see them as import edges of in-module
    packages. The visited set lives on the instance, so one walker must only
    ever serve a single (entrypoint, reference) pair.
    """

    def __init__(
        self,
        root: Path,
        loader: PackageLoader,
        module_roots: Iterable[str],
        cancel: CancelSignal | None = None,
    ) -> None:
        self.root = root
        self.loader = loader
        self.module_roots = tuple(r for r in module_roots if r)
        self.cancel = cancel
        self._visited: set[str] = set()

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    def in_module(self, identity: str) -> bool:
        return any(within(identity, root) for root in self.module_roots)

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    async def walk(self, entry: str, hooks: Sequence[Hook]) -> bool:
        """Walk the closure of ``entry``.

        Returns True when the walk completed and False when it was cut short
        by the cancel signal. Loader failures and hook exceptions propagate.
        """
        if not hooks:
            raise ValueError("walk requires at least one hook")

        pattern = entry_pattern(entry)
        logger.debug("Starting walk: entry=%s root=%s", pattern, self.root)

        if self._cancelled():
            return False
        nodes = await asyncio.to_thread(self.loader.load, self.root, pattern)

        arena: dict[str, PackageNode] = {node.path: node for node in nodes}
        stack = [node.path for node in nodes if not node.dep_only]

        while stack:
            if self._cancelled():
                logger.debug("Walk cancelled: entry=%s visited=%d", pattern, len(self._visited))
                return False

            identity = stack.pop()
            if identity in self._visited or not self.in_module(identity):
                continue

            node = arena.get(identity)
            if node is None:
                raise GraphLoadError(f"package {identity} is imported but was not loaded")
            if node.errors:
                raise GraphLoadError(
                    f"package {identity} contains errors: {'; '.join(node.errors)}"
                )

            self._visited.add(identity)
            for hook in hooks:
                hook.observe(node)

            stack.extend(imp for imp in node.imports if imp not in self._visited)

        logger.debug("Finished walk: entry=%s visited=%d", pattern, len(self._visited))
        return True
