"""Pydantic models and enums for detection results."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class ChangeReason(StrEnum):
    FILES_CHANGED = "files-changed"
    FILES_CREATED_OR_DELETED = "files-created-or-deleted"
    DEPENDENCIES_CHANGED = "dependencies-changed"
    LANGUAGE_VERSION_CHANGED = "language-version-changed"
    TOOLCHAIN_CHANGED = "toolchain-changed"
    NO_SOURCE_CONTROL_CHANGES = "no-source-control-changes"


class EntrypointResult(BaseModel):
    path: str
    changed: bool
    reasons: list[ChangeReason] = []


class GitRef(BaseModel):
    """Compare reference the run analysed."""

    hash: str
    ref: str


class RunStats(BaseModel):
    started_at: datetime
    ended_at: datetime
    duration_ms: int = 0


class DetectResult(BaseModel):
    """Outcome of one detection run."""

    changed: bool = False
    git: GitRef
    stats: RunStats
    entrypoints: list[EntrypointResult] = []

    def entrypoint(self, path: str) -> EntrypointResult:
        for result in self.entrypoints:
            if result.path == path:
                return result
        raise KeyError(path)
