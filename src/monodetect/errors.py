"""Exception taxonomy for change detection runs.

Every failure is fatal to the run except an entrypoint that is absent at the
base reference, which the engine handles without raising.
"""


class DetectError(Exception):
    """Base class for all monodetect failures."""


class ResolveError(DetectError):
    """A source-control reference could not be resolved to a commit."""


class SourceControlError(DetectError):
    """A git command failed."""


class CheckoutError(SourceControlError):
    """The working tree could not be switched to, or restored from, a reference."""


class ManifestError(DetectError):
    """A go.mod or go.work file is missing or cannot be parsed."""


class GraphLoadError(DetectError):
    """The package graph for an entry pattern could not be loaded."""


class DetectCancelledError(DetectError):
    """The caller cancelled the run before every entrypoint was classified."""


class RunError(DetectError):
    """A run failed; ``phase`` names the step that failed."""

    def __init__(self, phase: str, cause: Exception) -> None:
        super().__init__(f"{phase} failed: {cause}")
        self.phase = phase
        self.cause = cause
