"""Git source-control provider backed by the ``git`` command line."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from monodetect.errors import CheckoutError, ResolveError, SourceControlError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileDiff:
    """Repository-relative paths that differ between two references."""

    created: frozenset[str] = frozenset()
    updated: frozenset[str] = frozenset()
    deleted: frozenset[str] = frozenset()

    def all(self) -> list[str]:
        return sorted(self.created | self.updated | self.deleted)

    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)


class SourceControl(Protocol):
    root: Path

    def resolve(self, ref: str) -> tuple[str, str]: ...

    def diff(self, base_ref: str, compare_ref: str) -> FileDiff: ...

    def run_on_ref(self, ref: str) -> AbstractContextManager[str]: ...


def parse_name_status(output: str) -> FileDiff:
    """Parse ``git diff --name-status --no-renames -z`` output."""
    created: set[str] = set()
    updated: set[str] = set()
    deleted: set[str] = set()
    fields = output.split("\0")
    # Pairs of (status, path); trailing empty field after the last NUL
    for status, path in zip(fields[0::2], fields[1::2], strict=False):
        if not status or not path:
            continue
        code = status[0]
        if code == "A":
            created.add(path)
        elif code == "D":
            deleted.add(path)
        else:
            # M (modified), T (type change), U (unmerged)
            updated.add(path)
    return FileDiff(
        created=frozenset(created), updated=frozenset(updated), deleted=frozenset(deleted)
    )


class Git:
    """Resolve, diff and check out references of a single working tree.

    The working tree is the one piece of global mutable state in a run:
    ``run_on_ref`` holds an exclusive lock while a reference is checked out.
    """

    def __init__(self, path: Path, git_binary: str = "git") -> None:
        self.git_binary = git_binary
        self._lock = threading.Lock()
        toplevel = self._run("rev-parse", "--show-toplevel", cwd=Path(path))
        self.root = Path(toplevel.strip()).resolve()

    def _run(self, *args: str, cwd: Path | None = None, check: bool = True) -> str:
        cmd = [self.git_binary, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd or self.root),
                capture_output=True,
                # Paths that are not valid UTF-8 round-trip through os.fsencode
                encoding="utf-8",
                errors="surrogateescape",
                check=False,
            )
        except OSError as e:
            raise SourceControlError(f"failed to run {self.git_binary}: {e}") from e
        if check and result.returncode != 0:
            raise SourceControlError(f"git {args[0]} failed: {result.stderr.strip()}")
        return result.stdout

    def resolve(self, ref: str) -> tuple[str, str]:
        """Resolve ``ref`` to a commit hash. Returns (hash, ref)."""
        try:
            out = self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        except SourceControlError as e:
            raise ResolveError(f"failed to resolve ref {ref}") from e
        return out.strip(), ref

    def diff(self, base_ref: str, compare_ref: str) -> FileDiff:
        """Files created, updated and deleted going from ``base_ref`` to ``compare_ref``."""
        base_hash, _ = self.resolve(base_ref)
        compare_hash, _ = self.resolve(compare_ref)
        out = self._run(
            "diff", "--name-status", "--no-renames", "-z", base_hash, compare_hash, "--"
        )
        return parse_name_status(out)

    def is_dirty(self) -> bool:
        return bool(self._run("status", "--porcelain", "--untracked-files=no").strip())

    def _current_checkout(self) -> str:
        branch = self._run("symbolic-ref", "-q", "--short", "HEAD", check=False).strip()
        if branch:
            return branch
        return self._run("rev-parse", "HEAD").strip()

    def _checkout(self, target: str, *, detach: bool = False) -> None:
        args = ["checkout", "--quiet", *(["--detach"] if detach else []), target]
        try:
            self._run(*args)
        except SourceControlError as e:
            raise CheckoutError(f"failed to checkout {target}: {e}") from e

    @contextmanager
    def run_on_ref(self, ref: str) -> Iterator[str]:
        """Check out ``ref`` for the duration of the block, then restore.

        Yields the checked-out commit hash. The original branch (or detached
        commit) is restored on every exit path.
        """
        if not self._lock.acquire(blocking=False):
            raise CheckoutError("working tree is already checked out for another reference")
        try:
            target, _ = self.resolve(ref)
            if self.is_dirty():
                raise CheckoutError("working tree has uncommitted changes")
            original = self._current_checkout()

            logger.debug("Checking out %s (%s), restoring %s afterwards", ref, target, original)
            self._checkout(target, detach=True)
            try:
                yield target
            except BaseException:
                try:
                    self._checkout(original)
                except CheckoutError:
                    logger.exception("Failed to restore working tree to %s", original)
                raise
            else:
                self._checkout(original)
        finally:
            self._lock.release()
