"""
History rewrites — keep authorship logs attached to rewritten commits.

``post-rewrite`` (amend, rebase): git passes ``old_sha new_sha`` lines on
stdin.  Each old commit's log is realigned onto the new commit's contents
and stored for the new commit.

``post-checkout``: uncommitted changes carried across a branch switch take
their attribution with them, from the old HEAD's working log to the new one.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable, TextIO

from .attribution import UNBORN_BASE, AuthorshipLogEntry, VirtualAttributions
from .errors import MergeConflict, NotFound, StoreCorrupt
from .git import Repository
from .merge import merge_favoring_first
from .store import AttributionStore


logger = logging.getLogger(__name__)


def read_rewrite_pairs(stream: TextIO) -> list[tuple[str, str]]:
    """Parse git's post-rewrite input (``old new [extra]`` per line)."""
    pairs: list[tuple[str, str]] = []
    for line in stream:
        parts = line.split()
        if len(parts) >= 2:
            pairs.append((parts[0], parts[1]))
    return pairs


def _load_virtual(store: AttributionStore, commit: str) -> VirtualAttributions | None:
    try:
        return store.load_virtual_for_commit(commit)
    except NotFound:
        return None
    except StoreCorrupt as e:
        logger.debug("ignoring corrupt log for %s: %s", commit[:8], e)
        return None


def remap_commit(repository: Repository, store: AttributionStore, old: str, new: str,
                 kind: str = "rebase") -> AuthorshipLogEntry | None:
    """Carry the log of ``old`` over to ``new``.

    When ``new`` already has a log (post-commit ran first) the two are
    merged: after an amend the existing log wins, after a rebase the
    rewritten commit's log does.
    """
    old_va = _load_virtual(store, old)
    if old_va is None or old_va.is_empty():
        return None
    existing = _load_virtual(store, new)

    paths = set(old_va.files()) | set(existing.files() if existing else [])
    contents: dict[str, str] = {}
    for path in sorted(paths):
        content = repository.show_file(new, path)
        if content is not None:
            contents[path] = content

    if existing is None:
        existing = VirtualAttributions.empty(new)
    primary, secondary = (existing, old_va) if kind == "amend" else (old_va, existing)
    try:
        merged = merge_favoring_first(primary, secondary, contents, new_head=new)
    except MergeConflict as e:
        logger.debug("rewrite %s -> %s: %s", old[:8], new[:8], e)
        merged = e.partial

    base = repository.parent(new) or UNBORN_BASE
    entry = AuthorshipLogEntry.from_virtual_attributions(
        new, VirtualAttributions(base, new, merged.file_attributions, merged.prompts),
    )
    store.write_authorship_log(entry)
    return entry


def rewrite_logs(repository: Repository, kind: str, pairs: Iterable[tuple[str, str]],
                 store: AttributionStore | None = None) -> int:
    """Remap every (old, new) pair.  Returns the number of logs written."""
    store = store or AttributionStore(repository)
    remapped = 0
    for old, new in pairs:
        if old == new:
            continue
        if remap_commit(repository, store, old, new, kind) is not None:
            remapped += 1
    logger.debug("post-rewrite (%s): remapped %d logs", kind, remapped)
    return remapped


def rewrite_from_stdin(repository: Repository, kind: str) -> int:
    return rewrite_logs(repository, kind, read_rewrite_pairs(sys.stdin))


# -------------------------------------------------------------------
# Checkout
# -------------------------------------------------------------------

def carry_working_log(repository: Repository, old_head: str, new_head: str,
                      store: AttributionStore | None = None) -> bool:
    """Move attribution of uncommitted changes from ``old_head`` to ``new_head``.

    The working log of ``old_head`` is discarded whether or not anything was
    carried.  Returns True when anything was carried.
    """
    if old_head == new_head or old_head.strip("0") == "":
        return False
    store = store or AttributionStore(repository)
    if not store.has_working(old_head):
        return False
    try:
        return _carry(repository, store, old_head, new_head)
    finally:
        store.discard_working(old_head)


def _carry(repository: Repository, store: AttributionStore, old_head: str, new_head: str) -> bool:
    try:
        old_va = store.load_working(old_head)
    except StoreCorrupt as e:
        logger.debug("not carrying corrupt working log of %s: %s", old_head[:8], e)
        return False

    dirty = set(repository.staged_and_unstaged_filenames()) & set(old_va.files())
    contents: dict[str, str] = {}
    for path in sorted(dirty):
        content = repository.read_worktree(path)
        if content is not None:
            contents[path] = content
    if not contents:
        logger.debug("nothing dirty to carry from %s", old_head[:8])
        return False

    try:
        new_va = store.load_working(new_head)
    except StoreCorrupt:
        new_va = VirtualAttributions.empty(new_head)
    try:
        merged = merge_favoring_first(old_va, new_va, contents, new_head=new_head)
    except MergeConflict as e:
        merged = e.partial

    # Files the new HEAD already tracked in its working log but that the
    # carried changes did not touch stay as they were.
    files = dict(new_va.file_attributions)
    files.update(merged.file_attributions)
    prompts = dict(new_va.prompts)
    prompts.update(merged.prompts)
    store.write_initial(new_head, files, prompts)
    logger.debug("carried %d files from %s to %s", len(merged.files()), old_head[:8], new_head[:8])
    return True
