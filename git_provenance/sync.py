"""
Notes synchronization — move authorship logs between repositories.

Authorship logs ride on ``refs/notes/provenance``.  A fetch lands the remote
notes in a per-remote tracking ref (``refs/notes/provenance-remote/<remote>``)
and then folds them into the local ref, so a concurrent native ``git fetch``
against the same remote never touches the same refs (or ``FETCH_HEAD``).

Every failure raises ``SyncFailure``; callers log it and carry on.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
import re
import subprocess

from .config import get_notes_ref
from .errors import SyncFailure
from .git import Repository, decode


logger = logging.getLogger(__name__)

NETWORK_TIMEOUT = 300

_MISSING_REMOTE_REF = ("couldn't find remote ref", "could not find remote ref")
_REJECTED = ("[rejected]", "non-fast-forward", "fetch first")


def _notes_ref(repository: Repository) -> str:
    try:
        return get_notes_ref(str(repository.workdir()))
    except FileNotFoundError:
        return get_notes_ref()


def tracking_ref(notes_ref: str, remote: str) -> str:
    """Local ref that mirrors ``notes_ref`` of ``remote`` (URLs are flattened)."""
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", remote).strip("._") or "remote"
    return f"{notes_ref}-remote/{safe}"


def _run(repository: Repository, *args: str) -> subprocess.CompletedProcess:
    try:
        return repository.run(*args, timeout=NETWORK_TIMEOUT)
    except (OSError, subprocess.SubprocessError) as e:
        raise SyncFailure(f"git {args[0]} failed: {e}") from e


def merge_notes(repository: Repository, notes_ref: str, source_ref: str) -> None:
    """Fold ``source_ref`` into ``notes_ref``; local notes win on conflict."""
    if repository.git("rev-parse", "--verify", "-q", source_ref) is None:
        return
    local = repository.git("rev-parse", "--verify", "-q", notes_ref)
    if local is None:
        result = _run(repository, "update-ref", notes_ref, source_ref)
    else:
        result = _run(repository, "notes", f"--ref={notes_ref}", "merge", "-q", "-s", "ours", source_ref)
    if result.returncode != 0:
        raise SyncFailure(f"merging {source_ref} into {notes_ref}: {decode(result.stderr).strip()}")


def fetch_authorship_notes(repository: Repository, remote: str,
                           notes_ref: str | None = None) -> bool:
    """Fetch the remote's authorship logs and merge them into the local notes ref.

    Returns False when the remote has no authorship logs at all.
    """
    notes_ref = notes_ref or _notes_ref(repository)
    tracking = tracking_ref(notes_ref, remote)
    logger.debug("fetching %s from %s", notes_ref, remote)

    result = _run(
        repository, "fetch", "--quiet", "--no-tags", "--no-write-fetch-head",
        remote, f"+{notes_ref}:{tracking}",
    )
    if result.returncode != 0:
        err = decode(result.stderr)
        if any(marker in err for marker in _MISSING_REMOTE_REF):
            logger.debug("remote %s has no %s", remote, notes_ref)
            return False
        raise SyncFailure(f"fetch {notes_ref} from {remote}: {err.strip()}")

    merge_notes(repository, notes_ref, tracking)
    logger.debug("merged authorship notes from %s", remote)
    return True


def push_authorship_notes(repository: Repository, remote: str,
                          notes_ref: str | None = None) -> bool:
    """Publish local authorship logs.  A rejected push is retried once after a fetch+merge.

    Returns False when there is nothing to push.
    """
    notes_ref = notes_ref or _notes_ref(repository)
    if repository.git("rev-parse", "--verify", "-q", notes_ref) is None:
        return False

    for attempt in range(2):
        result = _run(repository, "push", "--quiet", "--no-verify", remote, f"{notes_ref}:{notes_ref}")
        if result.returncode == 0:
            logger.debug("pushed %s to %s", notes_ref, remote)
            return True
        err = decode(result.stderr)
        if attempt == 0 and any(marker in err for marker in _REJECTED):
            logger.debug("notes push to %s rejected, merging remote notes first", remote)
            fetch_authorship_notes(repository, remote, notes_ref)
            continue
        raise SyncFailure(f"push {notes_ref} to {remote}: {err.strip()}")
    return False
