"""
Merge engine — reconcile two attribution sets for the same final content.

The typical pair is the attribution captured before a rebase autostash
(``primary``: the user's preserved uncommitted work) and the attribution that
accumulated on the new base once the stash was reapplied (``secondary``).
Line correspondence is a plain line-level content match; nothing is inferred
from content beyond "this exact line survived".

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
from difflib import SequenceMatcher

from .attribution import (
    AI,
    Author,
    FileAttribution,
    Human,
    VirtualAttributions,
    split_lines,
)
from .errors import MergeConflict


logger = logging.getLogger(__name__)


def align(source_lines: tuple[str, ...] | list[str],
          final_lines: tuple[str, ...] | list[str]) -> dict[int, int]:
    """Map final line index -> source line index for every unchanged line."""
    matcher = SequenceMatcher(None, list(source_lines), list(final_lines), autojunk=False)
    mapping: dict[int, int] = {}
    for block in matcher.get_matching_blocks():
        for k in range(block.size):
            mapping[block.b + k] = block.a + k
    return mapping


def realign(fa: FileAttribution, final_lines: list[str] | tuple[str, ...],
            fallback: str | None = None) -> FileAttribution:
    """Carry ``fa`` over to ``final_lines``: unchanged lines keep their author,
    everything else becomes ``Human(fallback)``."""
    if tuple(final_lines) == fa.lines:
        return fa
    mapping = align(fa.lines, final_lines)
    old = fa.authors()
    authors: list[Author] = [
        old[mapping[i]] if i in mapping else Human(fallback)
        for i in range(len(final_lines))
    ]
    return FileAttribution.from_line_authors(fa.path, final_lines, authors)


def _merge_file(primary: FileAttribution, secondary: FileAttribution,
                final_lines: list[str], fallback: str | None) -> FileAttribution:
    pmap = align(primary.lines, final_lines)
    smap = align(secondary.lines, final_lines)
    if not pmap and not smap and (primary.lines or secondary.lines):
        raise MergeConflict([primary.path])

    # Primary lines the alignment skipped, by content; moved lines are found here.
    matched = set(pmap.values())
    spare: dict[str, list[int]] = {}
    for j, line in enumerate(primary.lines):
        if j not in matched:
            spare.setdefault(line, []).append(j)

    p_authors = primary.authors()
    s_authors = secondary.authors()
    authors: list[Author] = []
    for i, line in enumerate(final_lines):
        if i in pmap:
            authors.append(p_authors[pmap[i]])
        elif spare.get(line):
            authors.append(p_authors[spare[line].pop(0)])
        elif i in smap:
            authors.append(s_authors[smap[i]])
        else:
            authors.append(Human(fallback))
    return FileAttribution.from_line_authors(primary.path, final_lines, authors)


def merge_favoring_first(primary: VirtualAttributions, secondary: VirtualAttributions,
                         final_file_contents: dict[str, str], new_head: str | None = None,
                         for_initial: bool = True) -> VirtualAttributions:
    """Merge two attribution sets onto ``final_file_contents``.

    Only paths listed in ``final_file_contents`` appear in the result.  A line
    both inputs still have verbatim keeps ``primary``'s author.  Raises
    MergeConflict (carrying the rest of the merge as ``partial``) when a file
    shares no line at all with the attribution it was supposed to inherit.
    """
    fallback = primary.human_author_fallback
    head = new_head or secondary.head
    base = head if for_initial else primary.base_commit

    merged: dict[str, FileAttribution] = {}
    conflicts: list[str] = []

    for path in sorted(final_file_contents):
        final_lines = split_lines(final_file_contents[path])
        p = primary.get(path)
        s = secondary.get(path)
        if p is None and s is None:
            continue
        if not final_lines:
            continue
        try:
            if p is not None and s is not None:
                fa = _merge_file(p, s, final_lines, fallback)
            else:
                only = p if p is not None else s
                if only.lines and not align(only.lines, final_lines):
                    raise MergeConflict([path])
                fa = realign(only, final_lines, fallback)
        except MergeConflict:
            logger.debug("merge: no common lines for %s, dropping its attribution", path)
            conflicts.append(path)
            continue
        merged[path] = fa

    referenced = {
        r.author.prompt_id
        for fa in merged.values()
        for r in fa.ranges
        if isinstance(r.author, AI) and r.author.prompt_id
    }
    prompts = {pid: rec for pid, rec in secondary.prompts.items() if pid in referenced}
    prompts.update({pid: rec for pid, rec in primary.prompts.items() if pid in referenced})

    result = VirtualAttributions(base, head, merged, prompts, fallback)
    if conflicts:
        raise MergeConflict(conflicts, partial=result)
    return result


def realign_all(va: VirtualAttributions, final_file_contents: dict[str, str],
                new_head: str | None = None) -> VirtualAttributions:
    """Single-input merge: ``va`` realigned onto ``final_file_contents``.

    Files that conflict are dropped rather than raised.
    """
    empty = VirtualAttributions.empty(va.base_commit, va.head, va.human_author_fallback)
    try:
        return merge_favoring_first(va, empty, final_file_contents,
                                    new_head=new_head or va.head, for_initial=True)
    except MergeConflict as e:
        return e.partial
