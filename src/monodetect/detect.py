"""Change detection engine — classify entrypoints as changed between two refs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager, nullcontext
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar

from monodetect.errors import DetectCancelledError, RunError
from monodetect.graph.hooks import ChangedDependencyDetector, ChangedFileDetector, Lister
from monodetect.graph.loader import GoListLoader
from monodetect.graph.walker import Walker, entry_pattern
from monodetect.manifest.diff import diff_manifests
from monodetect.manifest.gomod import GoModReader, owning_module, read_manifests
from monodetect.manifest.types import Manifest, ManifestChange, ManifestDiff
from monodetect.models import ChangeReason, DetectResult, EntrypointResult, GitRef, RunStats
from monodetect.scm.git import Git

if TYPE_CHECKING:
    from pathlib import Path

    from monodetect.config import Config
    from monodetect.graph.loader import PackageLoader
    from monodetect.logging.logger import RunLogger
    from monodetect.manifest.types import ManifestReader
    from monodetect.scm.git import FileDiff, SourceControl

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_CHANGE = ManifestDiff(kind=ManifestChange.NONE)


@dataclass
class BaseSnapshot:
    """State captured at the base reference."""

    manifests: dict[str, Manifest]
    files_by_entrypoint: dict[str, list[str]]


class PhaseAbort:
    """Cancel signal for one phase.

    Set either by the caller's event or by a sibling task that failed, so the
    remaining walks wind down before the working tree is restored.
    """

    def __init__(self, cancel: asyncio.Event | None) -> None:
        self.cancel = cancel
        self.failed = False

    def is_set(self) -> bool:
        return self.failed or (self.cancel is not None and self.cancel.is_set())


def entry_dir(entry: str) -> str:
    """Directory part of an entrypoint pattern: ``./cmd/...`` -> ``cmd``."""
    path = entry_pattern(entry).removeprefix("./")
    if path == "...":
        return "."
    return path.removesuffix("/...") or "."


class Detector:
    """Run the detection state machine for one (base, compare) pair.

    Phases: resolve the compare ref, diff files, snapshot the base ref, then
    analyse the compare ref and assemble reasons. Both snapshot phases hold
    the working tree at a single reference while entrypoints are walked
    concurrently; the phases themselves never overlap.
    """

    def __init__(
        self,
        config: Config,
        scm: SourceControl,
        loader: PackageLoader,
        manifests: ManifestReader,
        run_logger: RunLogger | None = None,
    ) -> None:
        self.config = config
        self.scm = scm
        self.loader = loader
        self.manifests = manifests
        self.run_logger = run_logger
        self.entrypoints = list(dict.fromkeys(config.entrypoints))

    @classmethod
    def from_config(cls, config: Config, run_logger: RunLogger | None = None) -> Detector:
        """Wire the git, go list and go.mod collaborators for ``config``."""
        return cls(
            config,
            Git(config.root, git_binary=config.git_binary),
            GoListLoader(go_binary=config.go_binary),
            GoModReader(),
            run_logger=run_logger,
        )

    @property
    def root(self) -> Path:
        return self.config.root

    @contextmanager
    def _phase(self, name: str) -> Iterator[None]:
        """Log a phase and wrap its failure in a RunError naming it."""
        timed = self.run_logger.timed(f"detect.{name}") if self.run_logger else nullcontext()
        logger.info("Phase %s started", name)
        try:
            with timed:
                yield
        except DetectCancelledError:
            raise
        except Exception as e:
            raise RunError(name, e) from e

    async def run(self, cancel: asyncio.Event | None = None) -> DetectResult:
        """Classify every configured entrypoint.

        Raises:
            RunError: a phase failed; no partial result is produced.
            DetectCancelledError: ``cancel`` was set before the run finished.
        """
        started_at = datetime.now(UTC)

        with self._phase("resolve"):
            ref_hash, ref_name = await asyncio.to_thread(
                self.scm.resolve, self.config.compare_ref
            )

        result = DetectResult(
            git=GitRef(hash=ref_hash, ref=ref_name),
            stats=RunStats(started_at=started_at, ended_at=started_at),
        )

        with self._phase("diff"):
            diff = await asyncio.to_thread(
                self.scm.diff, self.config.base_ref, self.config.compare_ref
            )

        if diff.is_empty():
            logger.info("No file changes between %s and %s", self.config.base_ref, ref_name)
            return self._finalize(
                result,
                [
                    EntrypointResult(
                        path=entry,
                        changed=False,
                        reasons=[ChangeReason.NO_SOURCE_CONTROL_CHANGES],
                    )
                    for entry in self.entrypoints
                ],
            )

        self._check_cancelled(cancel)
        with self._phase("base-snapshot"):
            base = await self._base_snapshot(cancel)

        self._check_cancelled(cancel)
        with self._phase("compare"):
            entrypoints = await self._compare(base, diff, cancel)

        self._check_cancelled(cancel)
        return self._finalize(result, entrypoints)

    def _check_cancelled(self, cancel: asyncio.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise DetectCancelledError("detection cancelled")

    def _finalize(self, result: DetectResult, entrypoints: list[EntrypointResult]) -> DetectResult:
        ended_at = datetime.now(UTC)
        result.entrypoints = entrypoints
        result.changed = any(e.changed for e in entrypoints)
        result.stats.ended_at = ended_at
        result.stats.duration_ms = int((ended_at - result.stats.started_at).total_seconds() * 1000)
        logger.info(
            "Detection finished: %d/%d entrypoints changed in %dms",
            sum(1 for e in entrypoints if e.changed),
            len(entrypoints),
            result.stats.duration_ms,
        )
        return result

    @asynccontextmanager
    async def _checked_out(self, ref: str) -> AsyncIterator[str]:
        """Hold the working tree at ``ref``, running the git calls off the event loop."""
        scope = self.scm.run_on_ref(ref)
        target = await asyncio.to_thread(scope.__enter__)
        try:
            yield target
        except BaseException as e:
            if not await asyncio.to_thread(scope.__exit__, type(e), e, e.__traceback__):
                raise
        else:
            await asyncio.to_thread(scope.__exit__, None, None, None)

    async def _fan_in(
        self,
        task: Callable[[str, PhaseAbort], Awaitable[T]],
        cancel: asyncio.Event | None,
    ) -> dict[str, T]:
        """Run ``task`` for every entrypoint concurrently and collect results by entrypoint.

        All tasks finish before this returns, even when one fails, so nothing
        is still reading the working tree when the caller restores it.
        """
        abort = PhaseAbort(cancel)
        limit = asyncio.Semaphore(max(1, self.config.max_workers))

        async def one(entry: str) -> T:
            async with limit:
                try:
                    return await task(entry, abort)
                except BaseException:
                    abort.failed = True
                    raise

        results = await asyncio.gather(
            *(one(entry) for entry in self.entrypoints), return_exceptions=True
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            # A sibling's failure makes the others report cancellation; surface the cause
            failures = [e for e in errors if not isinstance(e, DetectCancelledError)]
            raise (failures or errors)[0]
        return dict(zip(self.entrypoints, results, strict=True))

    async def _walk(self, entry: str, hooks: list, module_paths: list[str], abort: PhaseAbort):
        walker = Walker(self.root, self.loader, module_paths, cancel=abort)
        if not await walker.walk(entry, hooks):
            raise DetectCancelledError(f"walk of {entry} cancelled")

    async def _base_snapshot(self, cancel: asyncio.Event | None) -> BaseSnapshot:
        async with self._checked_out(self.config.base_ref):
            manifests = await asyncio.to_thread(read_manifests, self.manifests, self.root)
            module_paths = [m.module for m in manifests.values()]

            async def list_files(entry: str, abort: PhaseAbort) -> list[str]:
                if not (self.root / entry_dir(entry)).is_dir():
                    # New entrypoint: empty closure, reported as created later
                    logger.debug("Entrypoint %s not found at base reference", entry)
                    return []
                lister = Lister()
                await self._walk(entry, [lister], module_paths, abort)
                return lister.files()

            files_by_entrypoint = await self._fan_in(list_files, cancel)

        return BaseSnapshot(manifests=manifests, files_by_entrypoint=files_by_entrypoint)

    def _diff_modules(
        self, base: dict[str, Manifest], compare: dict[str, Manifest]
    ) -> dict[str, ManifestDiff]:
        diffs: dict[str, ManifestDiff] = {}
        for module_root, right in compare.items():
            left = base.get(module_root)
            if left is None:
                # Module added at the compare ref: every requirement is new
                left = Manifest(module=right.module, go=right.go, toolchain=right.toolchain)
            module_diff = diff_manifests(left, right)
            if module_diff.kind == ManifestChange.TOOLCHAIN and not self.config.toolchain_invalidates:
                # Toolchain bumps are ignored; still look for dependency changes
                module_diff = diff_manifests(replace(left, toolchain=right.toolchain), right)
                module_diff = replace(module_diff, kind=ManifestChange.TOOLCHAIN)
            logger.debug("Manifest diff for module %s: %s", module_root, module_diff.kind)
            diffs[module_root] = module_diff
        return diffs

    def _blanket_reason(self, diffs: dict[str, ManifestDiff]) -> ChangeReason | None:
        kinds = {d.kind for d in diffs.values()}
        if ManifestChange.LANGUAGE_VERSION in kinds:
            return ChangeReason.LANGUAGE_VERSION_CHANGED
        if ManifestChange.TOOLCHAIN in kinds and self.config.toolchain_invalidates:
            return ChangeReason.TOOLCHAIN_CHANGED
        return None

    async def _compare(
        self, base: BaseSnapshot, diff: FileDiff, cancel: asyncio.Event | None
    ) -> list[EntrypointResult]:
        changed_files = frozenset(str(self.scm.root / path) for path in diff.all())

        async with self._checked_out(self.config.compare_ref):
            manifests = await asyncio.to_thread(read_manifests, self.manifests, self.root)
            diffs = self._diff_modules(base.manifests, manifests)

            blanket = self._blanket_reason(diffs)
            if blanket is not None:
                logger.info("Invalidating every entrypoint: %s", blanket)
                return [
                    EntrypointResult(path=entry, changed=True, reasons=[blanket])
                    for entry in self.entrypoints
                ]

            module_roots = list(manifests)
            module_paths = [m.module for m in manifests.values()]

            async def classify(entry: str, abort: PhaseAbort) -> EntrypointResult:
                module_diff = diffs.get(owning_module(entry, module_roots), NO_CHANGE)
                files_hook = ChangedFileDetector(changed_files)
                lister = Lister()
                deps_hook = ChangedDependencyDetector(module_diff.changed_dependencies())
                await self._walk(entry, [files_hook, lister, deps_hook], module_paths, abort)

                reasons: list[ChangeReason] = []
                if files_hook.found:
                    reasons.append(ChangeReason.FILES_CHANGED)
                if set(lister.files()) != set(base.files_by_entrypoint.get(entry, [])):
                    reasons.append(ChangeReason.FILES_CREATED_OR_DELETED)
                if deps_hook.found:
                    reasons.append(ChangeReason.DEPENDENCIES_CHANGED)
                return EntrypointResult(path=entry, changed=bool(reasons), reasons=reasons)

            results = await self._fan_in(classify, cancel)

        return [results[entry] for entry in self.entrypoints]
