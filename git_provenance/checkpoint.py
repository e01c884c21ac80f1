"""
Checkpoints — record who just changed which lines.

An editor or agent integration calls ``git-provenance checkpoint`` after an
edit and pipes one JSON object on stdin:

    {
        "kind": "ai",                     # or "human"
        "tool": "cursor",
        "model": "gpt-4o",
        "prompt_id": "1f0c...",           # optional, generated if absent
        "author": "Jane <jane@x.org>",    # optional, git's author ident otherwise
        "files": [{"path": "src/a.py", "ranges": [[3, 7]]}]
    }

Lines that changed since the previous snapshot of a file are attributed to
the episode (only those inside ``ranges`` when ranges are given); unchanged
lines keep their earlier author.  The resulting full-file snapshot is
appended to the working log of the current HEAD.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

from .attribution import (
    AI,
    UNBORN_BASE,
    Author,
    Episode,
    FileAttribution,
    Human,
    PromptRecord,
    split_lines,
)
from .errors import InvalidAttribution, NotFound, StoreCorrupt
from .git import Repository, find_repository
from .merge import align
from .store import AttributionStore


logger = logging.getLogger(__name__)

KINDS = ("ai", "human")


def _relative_path(repository: Repository, path: str) -> str:
    workdir = str(repository.workdir())
    abs_path = path if os.path.isabs(path) else os.path.join(os.getcwd(), path)
    rel = os.path.relpath(os.path.abspath(abs_path), workdir)
    return rel.replace(os.sep, "/")


def _committed_attribution(store: AttributionStore, base: str, path: str) -> FileAttribution | None:
    """The file as committed at ``base``, with that commit's authorship where known."""
    if base == UNBORN_BASE:
        return None
    content = store.repository.show_file(base, path)
    if content is None:
        return None
    lines = split_lines(content)
    try:
        entry = store.load_for_commit(base)
    except (NotFound, StoreCorrupt):
        entry = None
    if entry is not None and path in entry.files and entry.line_counts.get(path) == len(lines):
        return FileAttribution(path, tuple(lines), entry.files[path])
    return FileAttribution.uniform(path, lines, Human())


def _in_ranges(line: int, ranges: list[tuple[int, int]]) -> bool:
    return any(start <= line <= end for start, end in ranges)


def attribute_edit(prior: FileAttribution | None, path: str, final_lines: list[str],
                   episode_author: Author, human: Human,
                   ranges: list[tuple[int, int]] | None = None) -> FileAttribution:
    """Snapshot of ``path`` after an edit by ``episode_author``.

    Without ``ranges`` every changed line goes to the episode author; with
    ranges only those lines do (and they do even if their text is unchanged),
    while other changed lines go to ``human``.
    """
    mapping = align(prior.lines, final_lines) if prior is not None else {}
    old = prior.authors() if prior is not None else []
    authors: list[Author] = []
    for i in range(len(final_lines)):
        line_no = i + 1
        if ranges and _in_ranges(line_no, ranges):
            authors.append(episode_author)
        elif i in mapping:
            authors.append(old[mapping[i]])
        elif not ranges:
            authors.append(episode_author)
        else:
            authors.append(human)
    return FileAttribution.from_line_authors(path, final_lines, authors)


def _parse_ranges(raw: Any) -> list[tuple[int, int]]:
    ranges: list[tuple[int, int]] = []
    for r in raw or []:
        if isinstance(r, dict):
            start, end = r.get("start"), r.get("end")
        else:
            start, end = r
        start, end = int(start), int(end)
        if start < 1 or end < start:
            raise InvalidAttribution(f"bad line range {start}-{end}")
        ranges.append((start, end))
    return ranges


def record_checkpoint(repository: Repository, data: dict[str, Any],
                      store: AttributionStore | None = None) -> Episode | None:
    """Append one episode built from ``data`` to the working log of HEAD.

    Returns the episode, or None when ``data`` names no files.
    """
    kind = data.get("kind", "ai")
    if kind not in KINDS:
        raise InvalidAttribution(f"unknown checkpoint kind: {kind!r}")
    tool = data.get("tool")
    if kind == "ai" and not tool:
        raise InvalidAttribution("ai checkpoint without a tool name")

    store = store or AttributionStore(repository)
    base = repository.head() or UNBORN_BASE
    human_identity = data.get("author") or repository.author_identity()
    va = store.load_working(base, human_identity)

    prompt_id = data.get("prompt_id") or uuid.uuid4().hex[:16]
    model = data.get("model")
    timestamp = datetime.now(timezone.utc).isoformat()
    human = Human(human_identity)
    episode_author: Author = AI(tool, model, prompt_id) if kind == "ai" else human

    files: dict[str, FileAttribution] = {}
    for fe in data.get("files") or []:
        path = _relative_path(repository, fe["path"])
        content = repository.read_worktree(path)
        if content is None:
            # Deleted: an empty snapshot drops the file from the working state.
            files[path] = FileAttribution(path, (), ())
            continue
        prior = va.get(path) or _committed_attribution(store, base, path)
        files[path] = attribute_edit(
            prior, path, split_lines(content), episode_author, human,
            _parse_ranges(fe.get("ranges")),
        )

    if not files:
        return None

    prompt = None
    if kind == "ai":
        prompt = PromptRecord(prompt_id, tool, model, timestamp, human_identity)
    episode = Episode(prompt_id, kind, timestamp, files, prompt)
    store.append_episode(base, episode)
    logger.debug("checkpoint %s (%s) on %s: %s", prompt_id, kind, base[:8], ", ".join(sorted(files)))
    return episode


def checkpoint_from_stdin() -> int:
    """Read a checkpoint event from stdin and record it.  Returns an exit status."""
    raw = sys.stdin.read().strip()
    if not raw:
        return 0
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        print(f"git-provenance: invalid checkpoint JSON: {e}", file=sys.stderr)
        return 1
    if not isinstance(data, dict):
        print("git-provenance: checkpoint must be a JSON object", file=sys.stderr)
        return 1

    repository = find_repository()
    if repository is None:
        print("git-provenance: not a git repository", file=sys.stderr)
        return 1

    try:
        record_checkpoint(repository, data)
    except (InvalidAttribution, StoreCorrupt, KeyError, TypeError, ValueError) as e:
        print(f"git-provenance: checkpoint rejected: {e}", file=sys.stderr)
        return 1
    return 0
