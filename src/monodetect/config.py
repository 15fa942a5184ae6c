"""Configuration management for monodetect."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    """Run configuration: repository location, refs to compare and entrypoints."""

    path: Path = field(default_factory=lambda: Path("."))
    base_ref: str = "main"
    compare_ref: str = "HEAD"
    entrypoints: list[str] = field(default_factory=list)

    # Blanket invalidation when only the toolchain directive changes
    toolchain_invalidates: bool = False

    # Concurrent entrypoint walks per phase
    max_workers: int = 8

    go_binary: str = "go"
    git_binary: str = "git"

    # JSONL run events; disabled when None
    log_dir: Path | None = None

    @property
    def root(self) -> Path:
        return Path(self.path).resolve()

    def ensure_dirs(self) -> None:
        """Create the event log directory if one is configured."""
        if self.log_dir is not None:
            Path(self.log_dir).mkdir(parents=True, exist_ok=True)
