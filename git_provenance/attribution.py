"""
Attribution data model — who wrote each line.

A file's attribution is a sorted, gap-free list of line ranges, each owned
by either a human identity or an AI tool.  ``VirtualAttributions`` bundles
the attribution of every tracked file at one point relative to a base
commit; ``AuthorshipLogEntry`` is the frozen per-commit form stored in git
notes; ``WorkingLog`` is the mutable pre-commit state kept under the git dir.

Serialized shapes (JSON):

    range   {"start": 3, "end": 4, "author": {"type": "ai", "tool": "cursor",
             "model": "gpt-4o", "prompt_id": "1f0c..."}}
    author  {"type": "human", "identity": "Jane Doe <jane@example.com>"}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from .errors import InvalidAttribution


SCHEMA_VERSION = "1"

# Base id used while HEAD is unborn (no commits yet).
UNBORN_BASE = "0" * 40


# -------------------------------------------------------------------
# Authors
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Human:
    """A person.  ``identity`` of None means "whoever commits the line"."""

    identity: str | None = None

    @property
    def is_ai(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"type": "human", "identity": self.identity}


@dataclass(frozen=True)
class AI:
    """An AI tool, optionally with the model and the prompt episode that produced the line."""

    tool: str
    model: str | None = None
    prompt_id: str | None = None

    @property
    def is_ai(self) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return self.tool

    @property
    def display_mail(self) -> str:
        if self.model:
            return f"<{self.tool}/{self.model}>"
        return f"<{self.tool}>"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": "ai", "tool": self.tool}
        if self.model:
            d["model"] = self.model
        if self.prompt_id:
            d["prompt_id"] = self.prompt_id
        return d


Author = Union[Human, AI]


def author_from_dict(data: dict[str, Any]) -> Author:
    kind = data.get("type")
    if kind == "human":
        return Human(data.get("identity"))
    if kind == "ai":
        tool = data.get("tool")
        if not isinstance(tool, str) or not tool:
            raise InvalidAttribution("ai author without a tool name")
        return AI(tool, data.get("model"), data.get("prompt_id"))
    raise InvalidAttribution(f"unknown author type: {kind!r}")


# -------------------------------------------------------------------
# Line ranges
# -------------------------------------------------------------------

@dataclass(frozen=True)
class LineRange:
    """Lines ``start``..``end`` (1-based, inclusive) owned by ``author``."""

    start: int
    end: int
    author: Author

    def __len__(self) -> int:
        return self.end - self.start + 1

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "author": self.author.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineRange":
        return cls(int(data["start"]), int(data["end"]), author_from_dict(data["author"]))


def validate_ranges(ranges: tuple[LineRange, ...] | list[LineRange], line_count: int) -> None:
    """Raise InvalidAttribution unless ``ranges`` cover 1..line_count exactly once, in order."""
    expected = 1
    for r in ranges:
        if r.start != expected or r.end < r.start:
            raise InvalidAttribution(
                f"range {r.start}-{r.end} does not continue at line {expected}"
            )
        expected = r.end + 1
    if expected != line_count + 1:
        raise InvalidAttribution(
            f"ranges cover {expected - 1} of {line_count} lines"
        )


def coalesce(authors: list[Author]) -> tuple[LineRange, ...]:
    """Turn a per-line author list into the shortest equivalent range list."""
    ranges: list[LineRange] = []
    start = 1
    for i in range(1, len(authors) + 1):
        if i == len(authors) or authors[i] != authors[start - 1]:
            ranges.append(LineRange(start, i, authors[start - 1]))
            start = i + 1
    return tuple(ranges)


def split_lines(content: str) -> list[str]:
    """Split file content into lines the way git counts them (trailing newline optional)."""
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


# -------------------------------------------------------------------
# Per-file attribution
# -------------------------------------------------------------------

@dataclass(frozen=True)
class FileAttribution:
    """Attribution for one file's content.

    ``lines`` is the content the ranges describe; keeping it lets the merge
    engine re-align attribution when the file changes underneath it.
    """

    path: str
    lines: tuple[str, ...]
    ranges: tuple[LineRange, ...]

    def __post_init__(self):
        validate_ranges(self.ranges, len(self.lines))

    @classmethod
    def from_line_authors(cls, path: str, lines: list[str] | tuple[str, ...],
                          authors: list[Author]) -> "FileAttribution":
        if len(lines) != len(authors):
            raise InvalidAttribution(
                f"{path}: {len(authors)} authors for {len(lines)} lines"
            )
        return cls(path, tuple(lines), coalesce(authors))

    @classmethod
    def uniform(cls, path: str, lines: list[str] | tuple[str, ...], author: Author) -> "FileAttribution":
        return cls.from_line_authors(path, lines, [author] * len(lines))

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def authors(self) -> list[Author]:
        out: list[Author] = []
        for r in self.ranges:
            out.extend([r.author] * len(r))
        return out

    def author_at(self, line: int) -> Author | None:
        for r in self.ranges:
            if r.start <= line <= r.end:
                return r.author
        return None

    def has_ai(self) -> bool:
        return any(r.author.is_ai for r in self.ranges)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": list(self.lines),
            "ranges": [r.to_dict() for r in self.ranges],
        }

    @classmethod
    def from_dict(cls, path: str, data: dict[str, Any]) -> "FileAttribution":
        return cls(
            path,
            tuple(data["lines"]),
            tuple(LineRange.from_dict(r) for r in data["ranges"]),
        )


# -------------------------------------------------------------------
# Prompts
# -------------------------------------------------------------------

@dataclass(frozen=True)
class PromptRecord:
    """Metadata for one AI generation episode, shared by all lines it produced."""

    prompt_id: str
    tool: str
    model: str | None = None
    timestamp: str | None = None
    human_author: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"tool": self.tool}
        if self.model:
            d["model"] = self.model
        if self.timestamp:
            d["timestamp"] = self.timestamp
        if self.human_author:
            d["human_author"] = self.human_author
        return d

    @classmethod
    def from_dict(cls, prompt_id: str, data: dict[str, Any]) -> "PromptRecord":
        return cls(
            prompt_id,
            data["tool"],
            data.get("model"),
            data.get("timestamp"),
            data.get("human_author"),
        )


def prompts_to_dict(prompts: dict[str, PromptRecord]) -> dict[str, Any]:
    return {pid: p.to_dict() for pid, p in sorted(prompts.items())}


def prompts_from_dict(data: dict[str, Any]) -> dict[str, PromptRecord]:
    return {pid: PromptRecord.from_dict(pid, p) for pid, p in data.items()}


# -------------------------------------------------------------------
# Virtual attributions
# -------------------------------------------------------------------

@dataclass(frozen=True)
class VirtualAttributions:
    """Provenance of a whole tree at ``head``, anchored at ``base_commit``."""

    base_commit: str
    head: str
    file_attributions: dict[str, FileAttribution] = field(default_factory=dict)
    prompts: dict[str, PromptRecord] = field(default_factory=dict)
    human_author_fallback: str | None = None

    @classmethod
    def empty(cls, base_commit: str, head: str | None = None,
              human_author_fallback: str | None = None) -> "VirtualAttributions":
        return cls(base_commit, head or base_commit, {}, {}, human_author_fallback)

    def files(self) -> list[str]:
        return sorted(self.file_attributions)

    def is_empty(self) -> bool:
        return not self.file_attributions

    def get(self, path: str) -> FileAttribution | None:
        return self.file_attributions.get(path)

    def has_ai(self) -> bool:
        return any(fa.has_ai() for fa in self.file_attributions.values())

    def referenced_prompts(self) -> set[str]:
        ids: set[str] = set()
        for fa in self.file_attributions.values():
            for r in fa.ranges:
                if isinstance(r.author, AI) and r.author.prompt_id:
                    ids.add(r.author.prompt_id)
        return ids


# -------------------------------------------------------------------
# Authorship log (per commit, immutable)
# -------------------------------------------------------------------

@dataclass(frozen=True)
class AuthorshipLogEntry:
    """Attribution of a finalized commit.  Line numbers refer to the file at ``commit``."""

    commit: str
    base_commit: str
    files: dict[str, tuple[LineRange, ...]]
    line_counts: dict[str, int]
    prompts: dict[str, PromptRecord] = field(default_factory=dict)
    created_at: str = ""
    schema_version: str = SCHEMA_VERSION

    def __post_init__(self):
        for path, ranges in self.files.items():
            validate_ranges(ranges, self.line_counts.get(path, 0))

    @classmethod
    def from_virtual_attributions(cls, commit: str, va: VirtualAttributions) -> "AuthorshipLogEntry":
        referenced = va.referenced_prompts()
        return cls(
            commit=commit,
            base_commit=va.base_commit,
            files={p: fa.ranges for p, fa in va.file_attributions.items()},
            line_counts={p: fa.line_count for p, fa in va.file_attributions.items()},
            prompts={pid: p for pid, p in va.prompts.items() if pid in referenced},
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    def author_at(self, path: str, line: int) -> Author | None:
        for r in self.files.get(path, ()):
            if r.start <= line <= r.end:
                return r.author
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "commit": self.commit,
            "base_commit": self.base_commit,
            "created_at": self.created_at,
            "files": {
                path: {
                    "line_count": self.line_counts.get(path, 0),
                    "ranges": [r.to_dict() for r in ranges],
                }
                for path, ranges in sorted(self.files.items())
            },
            "prompts": prompts_to_dict(self.prompts),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthorshipLogEntry":
        files: dict[str, tuple[LineRange, ...]] = {}
        counts: dict[str, int] = {}
        for path, fe in (data.get("files") or {}).items():
            files[path] = tuple(LineRange.from_dict(r) for r in fe["ranges"])
            counts[path] = int(fe["line_count"])
        return cls(
            commit=data["commit"],
            base_commit=data.get("base_commit", ""),
            files=files,
            line_counts=counts,
            prompts=prompts_from_dict(data.get("prompts") or {}),
            created_at=data.get("created_at", ""),
            schema_version=str(data.get("schema_version", SCHEMA_VERSION)),
        )


# -------------------------------------------------------------------
# Working log (pre-commit, mutable on disk)
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Episode:
    """One capture event: the full attribution of each touched file afterwards."""

    prompt_id: str
    kind: str
    timestamp: str
    files: dict[str, FileAttribution]
    prompt: PromptRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "prompt_id": self.prompt_id,
            "kind": self.kind,
            "timestamp": self.timestamp,
            "files": {p: fa.to_dict() for p, fa in sorted(self.files.items())},
        }
        if self.prompt is not None:
            d["prompt"] = self.prompt.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Episode":
        prompt_id = data["prompt_id"]
        prompt = data.get("prompt")
        return cls(
            prompt_id=prompt_id,
            kind=data.get("kind", "ai"),
            timestamp=data.get("timestamp", ""),
            files={p: FileAttribution.from_dict(p, fe) for p, fe in data["files"].items()},
            prompt=PromptRecord.from_dict(prompt_id, prompt) if prompt else None,
        )


@dataclass
class WorkingLog:
    """INITIAL slot plus the append-only episode list for one base commit."""

    base_commit: str
    initial_files: dict[str, FileAttribution] = field(default_factory=dict)
    initial_prompts: dict[str, PromptRecord] = field(default_factory=dict)
    episodes: list[Episode] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.initial_files and not self.initial_prompts and not self.episodes

    def to_virtual_attributions(self, human_author_fallback: str | None = None) -> VirtualAttributions:
        """Replay INITIAL then every episode; the latest snapshot of a file wins."""
        files = dict(self.initial_files)
        prompts = dict(self.initial_prompts)
        for ep in self.episodes:
            files.update(ep.files)
            if ep.prompt is not None:
                prompts[ep.prompt_id] = ep.prompt
        files = {p: fa for p, fa in files.items() if fa.line_count}
        return VirtualAttributions(
            self.base_commit, self.base_commit, files, prompts, human_author_fallback,
        )
