"""
Error taxonomy for git-provenance.

None of these are meant to reach the user as a failed git command.  Hook
entry points catch them, log a diagnostic line and carry on with whatever
attribution they still have.
"""

from __future__ import annotations


class ProvenanceError(Exception):
    """Base class for every error raised by the attribution engine."""


class NotFound(ProvenanceError):
    """No authorship log exists for a commit (expected for untracked commits)."""

    def __init__(self, commit: str):
        super().__init__(f"no authorship log for {commit}")
        self.commit = commit


class StoreCorrupt(ProvenanceError):
    """Persisted attribution data exists but cannot be parsed."""


class StoreError(ProvenanceError):
    """Persisting attribution data failed (nothing was written)."""


class InvalidAttribution(ProvenanceError):
    """Line ranges are not sorted, disjoint and exhaustive over the file."""


class MergeConflict(ProvenanceError):
    """Some files could not be aligned with either merge input.

    ``partial`` is the merge result with those files left out, so callers
    can keep the attribution that did survive.
    """

    def __init__(self, paths: list[str], partial=None):
        super().__init__("cannot align attribution for: " + ", ".join(paths))
        self.paths = paths
        self.partial = partial


class SyncFailure(ProvenanceError):
    """Fetching or pushing the notes namespace failed."""


class ResolutionFailure(ProvenanceError):
    """Attribution for a single blame line could not be resolved."""


class BlameUsageError(ProvenanceError):
    """Invalid ``blame`` command line."""
