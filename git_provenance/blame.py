"""
Blame overlay — ``git blame`` with AI authorship in the author field.

Runs the native ``git blame`` for line-to-commit resolution (porcelain,
line-porcelain or incremental, whichever the caller asked for; the default
human-readable mode is rendered here from ``--line-porcelain``), then swaps
the author identity of every line whose authorship log names an AI tool.

Hashes, abbreviation, column widths and dates follow git's own rules, as
does porcelain ordering, so a file without AI lines blames byte-for-byte
like native git.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import sys
import time
import unicodedata
from dataclasses import dataclass, field
from typing import BinaryIO

from .attribution import AI, UNBORN_BASE, split_lines
from .config import get_setting
from .dates import (
    ISO,
    DateMode,
    blame_date_width,
    format_tz,
    local_tz_offset,
    parse_date_mode,
    rendered_by_git,
    show_date,
    tz_to_int,
)
from .errors import BlameUsageError, NotFound, ResolutionFailure, StoreCorrupt
from .git import Repository, decode, encode, find_repository
from .merge import realign
from .store import AttributionStore


logger = logging.getLogger(__name__)

USAGE = "usage: git-provenance blame [<options>] [<rev>] [--] <file>"

ZERO_SHA = "0" * 40
UNKNOWN_IDENTITY = ("Unknown", "<unknown>")
EXTERNAL_IDENTITY = ("External file (--contents)", "<external.file>")
EXTERNAL_ABBREV = 7
DEFAULT_ABBREV = 7
MINIMUM_ABBREV = 4

_CONFIG_PATTERN = r"^blame\.(blankboundary|showemail|date|showroot)$"
_HEADER = re.compile(r"^([0-9a-f]{40}|[0-9a-f]{64}) (\d+) (\d+)(?: (\d+))?$")
_FILENAME_KEYS = ("previous", "filename")


# ===================================================================
# Options
# ===================================================================

@dataclass
class BlameOptions:
    """Normalized ``blame`` command line.  ``None`` means "use blame.* config"."""

    path: str | None = None
    revision: str | None = None
    line_ranges: list[str] = field(default_factory=list)
    porcelain: bool = False
    line_porcelain: bool = False
    incremental: bool = False
    show_email: bool | None = None
    show_name: bool = False
    show_number: bool = False
    suppress_author: bool = False
    long_rev: bool = False
    raw_timestamp: bool = False
    blank_boundary: bool | None = None
    show_root: bool | None = None
    abbrev: int | None = None
    date: str | None = None
    mark_unknown: bool | None = None
    contents: str | None = None
    passthrough: list[str] = field(default_factory=list)

    @property
    def output_mode(self) -> str:
        if self.incremental:
            return "incremental"
        if self.line_porcelain:
            return "line-porcelain"
        if self.porcelain:
            return "porcelain"
        return "default"


_SHORT_FLAGS = {
    "p": "porcelain",
    "e": "show_email",
    "f": "show_name",
    "n": "show_number",
    "s": "suppress_author",
    "l": "long_rev",
    "t": "raw_timestamp",
    "b": "blank_boundary",
}

_LONG_FLAGS = {
    "--porcelain": "porcelain",
    "--line-porcelain": "line_porcelain",
    "--incremental": "incremental",
    "--show-email": "show_email",
    "--show-name": "show_name",
    "--show-number": "show_number",
    "--root": "show_root",
    "--mark-unknown": "mark_unknown",
}

# Native options we do not interpret but whose value must travel with them.
_PASSTHROUGH_WITH_VALUE = {"-S", "--ignore-rev", "--ignore-revs-file"}


def _parse_abbrev(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise BlameUsageError(f"option 'abbrev' expects a numerical value, got '{value}'")
    if n < 0:
        raise BlameUsageError(f"option 'abbrev' expects a non-negative value, got '{value}'")
    return n


def parse_blame_args(argv: list[str]) -> BlameOptions:
    """Parse blame arguments.  Raises BlameUsageError on malformed input."""
    opts = BlameOptions()
    positional: list[str] = []
    after_dashdash: list[str] | None = None

    def take_value(i: int, flag: str) -> str:
        if i + 1 >= len(argv):
            raise BlameUsageError(f"option '{flag.lstrip('-')}' requires a value")
        return argv[i + 1]

    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "--":
            after_dashdash = list(argv[i + 1:])
            break
        if arg in _LONG_FLAGS:
            setattr(opts, _LONG_FLAGS[arg], True)
        elif arg == "-L":
            opts.line_ranges.append(take_value(i, arg))
            i += 1
        elif arg.startswith("-L"):
            opts.line_ranges.append(arg[2:])
        elif arg == "--abbrev":
            # A bare --abbrev means the default length; a number may follow.
            if i + 1 < len(argv) and argv[i + 1].isdigit():
                opts.abbrev = _parse_abbrev(argv[i + 1])
                i += 1
            else:
                opts.abbrev = None
        elif arg.startswith("--abbrev="):
            opts.abbrev = _parse_abbrev(arg[len("--abbrev="):])
        elif arg == "--no-abbrev":
            opts.abbrev = 0
        elif arg == "--date":
            opts.date = take_value(i, arg)
            i += 1
        elif arg.startswith("--date="):
            opts.date = arg[len("--date="):]
        elif arg == "--contents":
            opts.contents = take_value(i, arg)
            i += 1
        elif arg.startswith("--contents="):
            opts.contents = arg[len("--contents="):]
        elif arg in _PASSTHROUGH_WITH_VALUE:
            opts.passthrough.extend([arg, take_value(i, arg)])
            i += 1
        elif arg.startswith("-") and not arg.startswith("--") and len(arg) > 1:
            i = _parse_short_bundle(argv, i, opts)
        elif arg.startswith("-") and arg != "-":
            opts.passthrough.append(arg)
        else:
            positional.append(arg)
        i += 1

    if after_dashdash is not None:
        if len(after_dashdash) != 1 or len(positional) > 1:
            raise BlameUsageError("expected [<rev>] -- <file>")
        opts.path = after_dashdash[0]
        opts.revision = positional[0] if positional else None
    elif len(positional) == 1:
        opts.path = positional[0]
    elif len(positional) == 2:
        opts.revision, opts.path = positional
    else:
        raise BlameUsageError("expected [<rev>] <file>")
    return opts


def _parse_short_bundle(argv: list[str], i: int, opts: BlameOptions) -> int:
    """Expand ``-sn``, ``-fL10,20`` and friends.  Returns the last index consumed."""
    arg = argv[i]
    chars = arg[1:]
    known = all(c in _SHORT_FLAGS for c in chars.split("L", 1)[0])
    if not known:
        opts.passthrough.append(arg)
        return i
    for pos, c in enumerate(chars):
        if c == "L":
            rest = chars[pos + 1:]
            if rest:
                opts.line_ranges.append(rest)
                return i
            if i + 1 >= len(argv):
                raise BlameUsageError("switch 'L' requires a value")
            opts.line_ranges.append(argv[i + 1])
            return i + 1
        setattr(opts, _SHORT_FLAGS[c], True)
    return i


def _config_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in ("", "1", "true", "yes", "on")


def apply_config_defaults(repository: Repository, opts: BlameOptions) -> str | None:
    """Fill unset options from ``blame.*`` config.  Returns the effective ``--date`` text."""
    values = repository.config_get_regexp(_CONFIG_PATTERN)
    if opts.blank_boundary is None:
        opts.blank_boundary = _config_bool(values.get("blame.blankboundary"))
    if opts.show_email is None:
        opts.show_email = _config_bool(values.get("blame.showemail"))
    if opts.show_root is None:
        opts.show_root = _config_bool(values.get("blame.showroot"))
    if opts.mark_unknown is None:
        opts.mark_unknown = bool(get_setting("mark_unknown"))
    return opts.date or values.get("blame.date")


def native_blame_args(opts: BlameOptions) -> list[str]:
    mode = opts.output_mode
    args = ["blame"]
    if mode == "incremental":
        args.append("--incremental")
    elif mode == "porcelain":
        args.append("--porcelain")
    else:
        args.append("--line-porcelain")
    for r in opts.line_ranges:
        args.extend(["-L", r])
    if opts.show_root:
        args.append("--root")
    if opts.date:
        args.append(f"--date={opts.date}")
    if opts.contents is not None:
        args.extend(["--contents", opts.contents])
    args.extend(opts.passthrough)
    if opts.revision:
        args.append(opts.revision)
    args.extend(["--", opts.path or ""])
    return args


# ===================================================================
# Porcelain parsing
# ===================================================================

@dataclass
class BlameLine:
    sha: str
    orig: int
    final: int
    details: list[str] = field(default_factory=list)
    content: str | None = None


@dataclass
class BlameGroup:
    """Consecutive lines git reported under one group header."""

    sha: str
    lines: list[BlameLine] = field(default_factory=list)


def _key(detail: str) -> str:
    return detail.split(" ", 1)[0]


def _value(details: list[str], key: str) -> str | None:
    prefix = key + " "
    for d in details:
        if d.startswith(prefix):
            return d[len(prefix):]
    return None


def parse_porcelain(raw: str, incremental: bool = False) -> list[BlameGroup]:
    """Parse native porcelain, line-porcelain or incremental output into groups."""
    groups: list[BlameGroup] = []
    counts: list[int] = []
    current: BlameLine | None = None

    for text in raw.split("\n"):
        if text.startswith("\t"):
            if current is not None:
                current.content = text[1:]
            continue
        m = _HEADER.match(text)
        if m:
            sha, orig, final, count = m.groups()
            current = BlameLine(sha, int(orig), int(final))
            if count is not None or not groups:
                groups.append(BlameGroup(sha))
                counts.append(int(count) if count is not None else 1)
            groups[-1].lines.append(current)
        elif text and current is not None:
            current.details.append(text)

    if incremental:
        for group, count in zip(groups, counts):
            first = group.lines[0]
            group.lines.extend(
                BlameLine(group.sha, first.orig + k, first.final + k) for k in range(1, count)
            )
    return groups


def _commit_info(groups: list[BlameGroup]) -> tuple[dict[str, list[str]], dict[str, list[str]], set[str]]:
    """Per commit: detail block, filename block, and whether git repeats the filename block."""
    details: dict[str, list[str]] = {}
    filenames: dict[str, list[str]] = {}
    multi_path: set[str] = set()
    for group in groups:
        for line in group.lines:
            if not line.details:
                continue
            body = [d for d in line.details if _key(d) not in _FILENAME_KEYS]
            names = [d for d in line.details if _key(d) in _FILENAME_KEYS]
            if body and group.sha not in details:
                details[group.sha] = body
            if names and group.sha not in filenames:
                filenames[group.sha] = names
            if names and not body:
                multi_path.add(group.sha)
    return details, filenames, multi_path


# ===================================================================
# Path quoting (core.quotePath)
# ===================================================================

_UNESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}
_ESCAPES = {v: k for k, v in _UNESCAPES.items()}


def unquote_path(text: str) -> str:
    if len(text) < 2 or not (text.startswith('"') and text.endswith('"')):
        return text
    body = encode(text[1:-1])
    out = bytearray()
    i = 0
    while i < len(body):
        b = body[i]
        if b == 92 and i + 1 < len(body):
            nxt = chr(body[i + 1])
            if nxt in "0123" and i + 3 < len(body):
                out.append(int(body[i + 1:i + 4], 8))
                i += 4
                continue
            out.append(_UNESCAPES.get(nxt, body[i + 1]))
            i += 2
            continue
        out.append(b)
        i += 1
    return decode(bytes(out))


def quote_path(path: str) -> str:
    raw = encode(path)
    if not any(b < 0x20 or b in (0x22, 0x5C, 0x7F) or b >= 0x80 for b in raw):
        return path
    out = ['"']
    for b in raw:
        if b in _ESCAPES:
            out.append("\\" + _ESCAPES[b])
        elif b < 0x20 or b >= 0x7F:
            out.append(f"\\{b:03o}")
        else:
            out.append(chr(b))
    out.append('"')
    return "".join(out)


def display_width(text: str) -> int:
    """Terminal columns taken by ``text`` (wide CJK counts 2, combining marks 0)."""
    width = 0
    for ch in text:
        if unicodedata.combining(ch):
            continue
        width += 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1
    return width


# ===================================================================
# Attribution resolution
# ===================================================================

_UNSET = object()


class AttributionResolver:
    """Decides the displayed (name, mail) of each blamed line; None keeps git's."""

    def __init__(self, repository: Repository, store: AttributionStore,
                 target_path: str, mark_unknown: bool):
        self.repository = repository
        self.store = store
        self.target_path = target_path
        self.mark_unknown = mark_unknown
        self._working = _UNSET

    def identity(self, sha: str, filename: str, orig: int, final: int) -> tuple[str, str] | None:
        if sha.strip("0") == "":
            return self._uncommitted(final)
        try:
            entry = self.store.load_for_commit(sha)
        except NotFound:
            return UNKNOWN_IDENTITY if self.mark_unknown else None
        author = entry.author_at(filename, orig)
        if isinstance(author, AI):
            return author.display_name, author.display_mail
        return None

    def _uncommitted(self, final: int) -> tuple[str, str] | None:
        if self._working is _UNSET:
            self._working = None
            head = self.repository.head() or UNBORN_BASE
            try:
                va = self.store.load_working(head)
            except StoreCorrupt as e:
                raise ResolutionFailure(f"working log for {head[:8]}: {e}") from e
            fa = va.get(self.target_path)
            if fa is not None:
                content = self.repository.read_worktree(self.target_path)
                if content is None:
                    raise ResolutionFailure(f"cannot read {self.target_path}")
                self._working = realign(fa, split_lines(content))
        if self._working is None:
            return None
        author = self._working.author_at(final)
        if isinstance(author, AI):
            return author.display_name, author.display_mail
        return None


def _line_filename(line: BlameLine, group: BlameGroup, filenames: dict[str, list[str]]) -> str:
    name = _value(line.details, "filename") or _value(group.lines[0].details, "filename")
    if name is None:
        name = _value(filenames.get(group.sha, []), "filename") or ""
    return unquote_path(name)


def resolve_identities(groups: list[BlameGroup], resolver: AttributionResolver | None,
                       filenames: dict[str, list[str]]) -> dict[int, tuple[str, str] | None]:
    """Identity override per final line number; failures fall back to git's identity."""
    identities: dict[int, tuple[str, str] | None] = {}
    for group in groups:
        for line in group.lines:
            if resolver is None:
                identities[line.final] = None
                continue
            try:
                identities[line.final] = resolver.identity(
                    line.sha, _line_filename(line, group, filenames), line.orig, line.final,
                )
            except (ResolutionFailure, StoreCorrupt) as e:
                logger.debug("blame: line %d keeps native author: %s", line.final, e)
                identities[line.final] = None
    return identities


# ===================================================================
# External contents (--contents)
# ===================================================================

def external_groups(groups: list[BlameGroup], target_path: str, source: str,
                    line_porcelain: bool, now: int | None = None) -> list[BlameGroup]:
    """Replace every line's origin with the external-file pseudo commit."""
    now = int(time.time()) if now is None else now
    tz = format_tz(local_tz_offset(now))
    name, mail = EXTERNAL_IDENTITY
    details = [
        f"author {name}",
        f"author-mail {mail}",
        f"author-time {now}",
        f"author-tz {tz}",
        f"committer {name}",
        f"committer-mail {mail}",
        f"committer-time {now}",
        f"committer-tz {tz}",
        f"summary Version of {target_path} from {source}",
        f"filename {quote_path(target_path)}",
    ]
    lines = sorted((line for g in groups for line in g.lines), key=lambda l: l.final)
    group = BlameGroup(ZERO_SHA)
    for n, line in enumerate(lines):
        group.lines.append(BlameLine(
            ZERO_SHA, line.final, line.final,
            list(details) if (n == 0 or line_porcelain) else [],
            line.content,
        ))
    return [group] if group.lines else []


# ===================================================================
# Rendering: porcelain, line-porcelain, incremental
# ===================================================================

def _patch(details: list[str], identity: tuple[str, str] | None) -> list[str]:
    if identity is None:
        return list(details)
    name, mail = identity
    rewrite = {"author": name, "author-mail": mail}
    if identity == UNKNOWN_IDENTITY:
        # Nothing of the native identity may show through for unattributed commits.
        rewrite.update({"committer": name, "committer-mail": mail})
    out: list[str] = []
    for d in details:
        key = _key(d)
        out.append(f"{key} {rewrite[key]}" if key in rewrite else d)
    return out


def _runs(lines: list[BlameLine], identities: dict[int, tuple[str, str] | None]):
    run: list[BlameLine] = []
    for line in lines:
        if run and identities.get(line.final) != identities.get(run[0].final):
            yield identities.get(run[0].final), run
            run = []
        run.append(line)
    if run:
        yield identities.get(run[0].final), run


def render_porcelain(groups: list[BlameGroup], identities: dict[int, tuple[str, str] | None],
                     mode: str) -> str:
    """Re-emit git's porcelain output, splitting groups where the author changes.

    Commit details are printed the first time each (commit, identity) pair
    appears, which is exactly git's rule when no identity was replaced.
    """
    details, filenames, multi_path = _commit_info(groups)
    seen: set[tuple[str, tuple[str, str] | None]] = set()
    out: list[str] = []

    for group in groups:
        sha = group.sha
        head_names = [d for d in group.lines[0].details if _key(d) in _FILENAME_KEYS]
        name_block = head_names or filenames.get(sha, [])

        for identity, run in _runs(group.lines, identities):
            first = run[0]
            out.append(f"{sha} {first.orig} {first.final} {len(run)}")
            unseen = (sha, identity) not in seen
            seen.add((sha, identity))

            if mode == "incremental":
                if unseen:
                    out.extend(_patch(details.get(sha, []), identity))
                out.extend(name_block)
                continue

            for n, line in enumerate(run):
                if n:
                    out.append(f"{sha} {line.orig} {line.final}")
                if mode == "line-porcelain":
                    out.extend(_patch(line.details, identity))
                elif n == 0 and unseen:
                    out.extend(_patch(details.get(sha, []), identity))
                    out.extend(name_block)
                elif n == 0 and sha in multi_path:
                    out.extend(name_block)
                out.append("\t" + (line.content or ""))

    return "".join(line + "\n" for line in out)


# ===================================================================
# Rendering: default human-readable output
# ===================================================================

def _abbrev_length(opts: BlameOptions, repository: Repository, shas: list[str],
                   hexsz: int) -> int:
    if opts.long_rev:
        return hexsz
    if opts.abbrev is None:
        if opts.contents is not None:
            return EXTERNAL_ABBREV
        committed = [s for s in shas if s.strip("0")]
        shorts = repository.short_ids(committed)
        auto = max((len(s) for s in shorts.values()), default=DEFAULT_ABBREV)
        return min(auto + 1, hexsz)
    if opts.abbrev == 0:
        return hexsz
    length = min(max(opts.abbrev, MINIMUM_ABBREV), hexsz)
    if length < hexsz:
        length += 1
    return length


def _git_dates(repository: Repository, date_text: str, shas: list[str]) -> dict[str, str]:
    """Author dates as git itself renders them, one call for all commits."""
    committed = sorted({s for s in shas if s.strip("0")})
    if not committed:
        return {}
    out = repository.git_raw("show", "-s", f"--date={date_text}", "--format=%H %ad", *committed)
    result: dict[str, str] = {}
    for line in (out or "").split("\n"):
        sha, _, rendered = line.partition(" ")
        if sha:
            result[sha] = rendered
    return result


def render_default(groups: list[BlameGroup], identities: dict[int, tuple[str, str] | None],
                   opts: BlameOptions, repository: Repository, target_path: str,
                   date_text: str | None) -> str:
    """Reproduce git's human-readable blame from line-porcelain records."""
    lines = [line for g in groups for line in g.lines]
    if not lines:
        return ""

    try:
        mode = parse_date_mode(date_text) if date_text else ISO
    except ValueError:
        mode = ISO
    now = int(time.time())
    shas = [line.sha for line in lines]
    git_dates = _git_dates(repository, date_text, shas) if date_text and rendered_by_git(mode) else {}
    date_width = blame_date_width(mode)

    hexsz = len(lines[0].sha)
    length = _abbrev_length(opts, repository, shas, hexsz)

    rows = []
    for line in lines:
        d = line.details
        identity = identities.get(line.final)
        if identity is not None:
            name, mail = identity
        else:
            name, mail = _value(d, "author") or "", _value(d, "author-mail") or ""
        rows.append({
            "line": line,
            "filename": unquote_path(_value(d, "filename") or ""),
            "boundary": "boundary" in d,
            "name": mail if opts.show_email else name,
            "time": int(_value(d, "author-time") or 0),
            "tz": _value(d, "author-tz") or "+0000",
        })

    show_name = opts.show_name or any(r["filename"] != target_path for r in rows)
    longest_file = max(len(encode(r["filename"])) for r in rows)
    longest_author = max(display_width(r["name"]) for r in rows)
    orig_digits = len(str(max(r["line"].orig for r in rows)))
    final_digits = len(str(max(r["line"].final for r in rows)))

    out: list[str] = []
    for r in rows:
        line = r["line"]
        if r["boundary"]:
            if opts.blank_boundary:
                text = " " * length
            else:
                text = "^" + line.sha[:length - 1]
        else:
            text = line.sha[:length]

        if show_name:
            text += " " + r["filename"] + " " * (longest_file - len(encode(r["filename"])))
        if opts.show_number:
            text += f" {line.orig:>{orig_digits}}"

        if not opts.suppress_author:
            if opts.raw_timestamp:
                stamp = f"{r['time']} {r['tz']}"
            else:
                if line.sha in git_dates:
                    stamp = git_dates[line.sha]
                else:
                    stamp = show_date(r["time"], tz_to_int(r["tz"]), mode, now)
                stamp += " " * max(0, date_width - display_width(stamp))
            pad = longest_author - display_width(r["name"])
            text += f" ({r['name']}{' ' * pad} {stamp:>10}"

        text += f" {line.final:>{final_digits}}) " + (line.content or "")
        out.append(text)

    return "".join(line + "\n" for line in out)


# ===================================================================
# Main entry point
# ===================================================================

def _target_path(repository: Repository, path: str) -> str:
    """Repository-relative form of the blamed path, as git reports it."""
    if os.path.isabs(path):
        try:
            return os.path.relpath(path, repository.workdir()).replace(os.sep, "/")
        except (FileNotFoundError, ValueError):
            return path
    return posixpath.normpath(repository.show_prefix() + path)


def blame_command(
    argv: list[str],
    repository: Repository | None = None,
    stdin: BinaryIO | None = None,
    stdout: BinaryIO | None = None,
) -> int:
    """Run the blame overlay and write its output.

    Parameters
    ----------
    argv : list[str]
        Arguments after ``blame``: native blame flags plus ``--mark-unknown``.
    repository : Repository | None
        Repository to blame in; discovered from the working directory if None.
    stdin, stdout : binary streams
        ``stdin`` is read once for ``--contents -``.

    Returns
    -------
    int
        Exit status: 0, 129 for usage errors, or native git's status when it fails.
    """
    out = stdout if stdout is not None else sys.stdout.buffer

    try:
        opts = parse_blame_args(argv)
    except BlameUsageError as e:
        print(f"git-provenance blame: {e}", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 129

    if repository is None:
        repository = find_repository()
        if repository is None:
            print("fatal: not a git repository (or any of the parent directories): .git",
                  file=sys.stderr)
            return 128

    date_text = apply_config_defaults(repository, opts)

    contents_input = None
    if opts.contents == "-":
        stream = stdin if stdin is not None else sys.stdin.buffer
        contents_input = stream.read()

    result = repository.run(*native_blame_args(opts), input=contents_input)
    if result.stderr:
        sys.stderr.write(decode(result.stderr))
    if result.returncode != 0:
        return result.returncode

    mode = opts.output_mode
    target_path = _target_path(repository, opts.path or "")
    groups = parse_porcelain(decode(result.stdout), incremental=(mode == "incremental"))

    if opts.contents is not None:
        groups = external_groups(groups, target_path, opts.contents,
                                 line_porcelain=mode in ("line-porcelain", "default"))
        identities = resolve_identities(groups, None, {})
    else:
        store = AttributionStore(repository)
        resolver = AttributionResolver(repository, store, target_path, bool(opts.mark_unknown))
        _, filenames, _ = _commit_info(groups)
        identities = resolve_identities(groups, resolver, filenames)

    if mode == "default":
        text = render_default(groups, identities, opts, repository, target_path, date_text)
    else:
        text = render_porcelain(groups, identities, mode)

    out.write(encode(text))
    out.flush()
    return 0
