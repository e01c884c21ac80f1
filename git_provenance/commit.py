"""
Git post-commit hook logic — turn the working log into the commit's authorship log.

Called by the git post-commit hook (via ``git-provenance post-commit``).

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging

from .attribution import UNBORN_BASE, AuthorshipLogEntry, VirtualAttributions
from .errors import MergeConflict, NotFound, StoreCorrupt
from .git import Repository
from .merge import merge_favoring_first
from .store import AttributionStore


logger = logging.getLogger(__name__)


def _previous_head(repository: Repository, commit: str) -> str:
    """HEAD before this commit was made: the reflog entry, else the first parent."""
    previous = repository.resolve("HEAD@{1}")
    if previous and previous != commit:
        return previous
    return repository.parent(commit) or UNBORN_BASE


def _load_working(store: AttributionStore, base: str, fallback: str | None) -> VirtualAttributions:
    try:
        return store.load_working(base, fallback)
    except StoreCorrupt as e:
        logger.debug("working log for %s is corrupt, treating as empty: %s", base[:8], e)
        return VirtualAttributions.empty(base, human_author_fallback=fallback)


def finalize_head_commit(repository: Repository,
                         store: AttributionStore | None = None) -> AuthorshipLogEntry | None:
    """Write the authorship log for HEAD.

    Algorithm:
      1. HEAD -> commit; HEAD@{1} -> the base the working log was kept against
      2. For ``--amend`` (base is not the parent) the replaced commit's log
         is merged underneath the working log
      3. Realign onto the committed contents and finalize
      4. Attribution for files that are still dirty is carried to the new
         HEAD's INITIAL slot

    Returns the new log entry, or None when HEAD is unborn.
    """
    store = store or AttributionStore(repository)
    commit = repository.head()
    if commit is None:
        return None

    parent = repository.parent(commit)
    base = _previous_head(repository, commit)
    fallback = repository.author_identity()
    working = _load_working(store, base, fallback)

    secondary = VirtualAttributions.empty(base, human_author_fallback=fallback)
    if base != UNBORN_BASE and base != parent:
        # Amend: the commit being replaced may already carry attribution.
        try:
            secondary = store.load_virtual_for_commit(base)
        except (NotFound, StoreCorrupt) as e:
            logger.debug("amended commit %s has no usable log: %s", base[:8], e)

    paths = set(working.files()) | set(secondary.files())
    committed: dict[str, str] = {}
    for path in sorted(paths):
        content = repository.show_file(commit, path)
        if content is not None:
            committed[path] = content

    try:
        merged = merge_favoring_first(working, secondary, committed,
                                      new_head=commit, for_initial=False)
    except MergeConflict as e:
        logger.debug("post-commit: %s", e)
        merged = e.partial

    entry = store.finalize_commit(commit, merged)
    _carry_uncommitted(repository, store, working, commit)
    return entry


def _carry_uncommitted(repository: Repository, store: AttributionStore,
                       working: VirtualAttributions, commit: str) -> None:
    """Keep attribution of changes that were left out of the commit."""
    dirty = set(repository.staged_and_unstaged_filenames()) & set(working.files())
    if not dirty:
        return
    contents: dict[str, str] = {}
    for path in sorted(dirty):
        content = repository.read_worktree(path)
        if content is not None:
            contents[path] = content
    empty = VirtualAttributions.empty(commit, human_author_fallback=working.human_author_fallback)
    try:
        leftover = merge_favoring_first(working, empty, contents, new_head=commit)
    except MergeConflict as e:
        leftover = e.partial
    if not leftover.is_empty():
        store.write_initial(commit, leftover.file_attributions, leftover.prompts)
        logger.debug("carried %d uncommitted files to %s", len(leftover.files()), commit[:8])
