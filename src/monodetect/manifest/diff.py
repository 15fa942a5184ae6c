"""Manifest diff -- classify what changed between two versions of a go.mod."""

from __future__ import annotations

from monodetect.manifest.types import Manifest, ManifestChange, ManifestDiff


def diff_manifests(left: Manifest, right: Manifest) -> ManifestDiff:
    """Compare a base manifest (left) against a compare manifest (right).

    Checks run in priority order and the first difference wins: language
    version, then toolchain, then the required dependency set. Versions are
    compared as plain strings; any textual difference counts as a change.

    Args:
        left: Manifest at the base reference.
        right: Manifest at the compare reference.

    Returns:
        A ManifestDiff. Only ``dependency-set-changed`` carries dependency sets.
    """
    if left.go != right.go:
        return ManifestDiff(kind=ManifestChange.LANGUAGE_VERSION)

    if left.toolchain != right.toolchain:
        return ManifestDiff(kind=ManifestChange.TOOLCHAIN)

    left_deps = set(left.requires)
    right_deps = set(right.requires)
    common = left_deps & right_deps

    removed = frozenset(left_deps - right_deps)
    added = frozenset(right_deps - left_deps)
    changed = frozenset(p for p in common if left.requires[p] != right.requires[p])
    unchanged = frozenset(common - changed)

    if removed or added or changed:
        return ManifestDiff(
            kind=ManifestChange.DEPENDENCIES,
            added=added,
            removed=removed,
            changed=changed,
            unchanged=unchanged,
        )

    return ManifestDiff(kind=ManifestChange.NONE)
