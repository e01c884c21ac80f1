"""
Thin git collaborators — repository handle and command-line invocation.

``Repository`` wraps the ``git`` binary for the queries the attribution
engine needs.  It is cheap to rebuild from ``global_args_for_exec()``, which
is how a background thread gets its own handle instead of sharing one.

``GitInvocation`` is the parsed form of a wrapped ``git ...`` command line:
global options, subcommand, subcommand arguments.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import get_git_bin
from .errors import SyncFailure


logger = logging.getLogger(__name__)

ENCODING = "utf-8"

# Global options that consume the following argument.
_GLOBAL_OPTS_WITH_VALUE = {"-C", "-c", "--git-dir", "--work-tree", "--namespace", "--config-env", "--exec-path"}
# Global options that only affect the wrapped process, never the repository.
_GLOBAL_OPTS_LOCAL_ONLY = {"-p", "--paginate", "-P", "--no-pager", "--no-optional-locks"}

# fetch / pull / push options that consume the following argument.
_REMOTE_OPTS_WITH_VALUE = {
    "--depth", "--deepen", "--shallow-since", "--shallow-exclude", "-j", "--jobs",
    "--upload-pack", "--receive-pack", "--exec", "--refmap", "-o", "--server-option",
    "--negotiation-tip", "--recurse-submodules-default", "-s", "--strategy",
    "-X", "--strategy-option", "--push-option",
}


def decode(data: bytes) -> str:
    return data.decode(ENCODING, errors="surrogateescape")


def encode(text: str) -> bytes:
    return text.encode(ENCODING, errors="surrogateescape")


# -------------------------------------------------------------------
# Invocation parsing
# -------------------------------------------------------------------

@dataclass(frozen=True)
class GitInvocation:
    """A ``git`` command line split into global options, subcommand and its arguments."""

    global_args: tuple[str, ...]
    command: str | None
    command_args: tuple[str, ...]

    def has_command_flag(self, flag: str) -> bool:
        for arg in self.command_args:
            if arg == "--":
                return False
            if arg == flag or (flag.startswith("--") and arg.startswith(flag + "=")):
                return True
        return False

    def positional_args(self) -> list[str]:
        """Non-option arguments, skipping the values of options that take one."""
        out: list[str] = []
        skip = False
        after_dashdash = False
        for arg in self.command_args:
            if skip:
                skip = False
                continue
            if after_dashdash:
                out.append(arg)
            elif arg == "--":
                after_dashdash = True
            elif arg in _REMOTE_OPTS_WITH_VALUE:
                skip = True
            elif not arg.startswith("-"):
                out.append(arg)
        return out


def parse_git_cli(argv: list[str]) -> GitInvocation:
    """Split ``argv`` (without the leading ``git``) into a GitInvocation."""
    global_args: list[str] = []
    i = 0
    while i < len(argv):
        arg = argv[i]
        if not arg.startswith("-"):
            break
        if arg in _GLOBAL_OPTS_WITH_VALUE and i + 1 < len(argv):
            global_args.extend([arg, argv[i + 1]])
            i += 2
            continue
        global_args.append(arg)
        i += 1
    command = argv[i] if i < len(argv) else None
    rest = tuple(argv[i + 1:]) if command is not None else ()
    return GitInvocation(tuple(global_args), command, rest)


def is_dry_run(command_args: tuple[str, ...] | list[str]) -> bool:
    for arg in command_args:
        if arg == "--":
            break
        if arg == "--dry-run":
            return True
    return False


# -------------------------------------------------------------------
# Repository
# -------------------------------------------------------------------

class Repository:
    """Handle on one repository, addressed through git's own global options."""

    def __init__(self, workdir: Path | None, git_dir: Path,
                 global_args: tuple[str, ...] = (), git_bin: str = "git"):
        self._workdir = workdir
        self.git_dir = git_dir
        self._global_args = tuple(global_args)
        self.git_bin = git_bin
        self.pre_command_head: str | None = None

    # -- process helpers --------------------------------------------

    def command(self, *args: str) -> list[str]:
        return [self.git_bin, *self._global_args, *args]

    def run(self, *args: str, input: bytes | None = None,
            timeout: float | None = None) -> subprocess.CompletedProcess:
        """Run git and return the completed process (bytes stdout/stderr)."""
        return subprocess.run(
            self.command(*args),
            input=input,
            capture_output=True,
            timeout=timeout,
        )

    def git(self, *args: str, input: str | None = None) -> str | None:
        """Run a git command and return stripped stdout, or None on failure."""
        raw = self.git_raw(*args, input=input)
        return raw.strip() if raw is not None else None

    def git_raw(self, *args: str, input: str | None = None) -> str | None:
        """Run a git command and return raw stdout (not stripped), or None."""
        try:
            result = self.run(*args, input=encode(input) if input is not None else None, timeout=60)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("git %s failed to start: %s", " ".join(args), e)
            return None
        if result.returncode != 0:
            return None
        return decode(result.stdout)

    # -- queries used by the engine ---------------------------------

    def head(self) -> str | None:
        """Full id of HEAD, or None while HEAD is unborn."""
        return self.git("rev-parse", "--verify", "-q", "HEAD^{commit}") or None

    def workdir(self) -> Path:
        if self._workdir is None:
            raise FileNotFoundError("repository has no working tree")
        return self._workdir

    def global_args_for_exec(self) -> tuple[str, ...]:
        return self._global_args

    def config_get_regexp(self, pattern: str) -> dict[str, str]:
        """All config entries whose (lower-cased) key matches ``pattern``, in one git call."""
        out = self.git_raw("config", "--get-regexp", pattern)
        values: dict[str, str] = {}
        if not out:
            return values
        for line in out.splitlines():
            key, _, value = line.partition(" ")
            values[key.lower()] = value
        return values

    def staged_and_unstaged_filenames(self) -> list[str]:
        names: set[str] = set()
        for extra in (("--cached",), ()):
            out = self.git("diff", "--name-only", *extra)
            if out:
                names.update(n for n in out.splitlines() if n)
        return sorted(names)

    def show_file(self, commit: str, path: str) -> str | None:
        return self.git_raw("show", f"{commit}:{path}")

    def read_worktree(self, path: str) -> str | None:
        """Content of ``path`` in the working tree, undecoded bytes preserved."""
        try:
            with open(self.workdir() / path, encoding=ENCODING,
                      errors="surrogateescape", newline="") as f:
                return f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def parent(self, commit: str) -> str | None:
        return self.git("rev-parse", "--verify", "-q", f"{commit}^") or None

    def resolve(self, rev: str) -> str | None:
        return self.git("rev-parse", "--verify", "-q", f"{rev}^{{commit}}") or None

    def changed_files(self, commit: str) -> list[str]:
        """Files added or modified by ``commit`` (root commits diff against the empty tree)."""
        out = self.git(
            "diff-tree", "--no-commit-id", "--name-only", "-r", "--root",
            "--diff-filter=ACMRT", commit,
        )
        if not out:
            return []
        return [f for f in out.splitlines() if f.strip()]

    def short_ids(self, commits: list[str]) -> dict[str, str]:
        """Unique abbreviations of ``commits`` as git's ``%h`` renders them."""
        if not commits:
            return {}
        out = self.git("show", "-s", "--format=%H %h", *commits)
        result: dict[str, str] = {}
        for line in (out or "").splitlines():
            full, _, short = line.partition(" ")
            if full and short:
                result[full] = short
        return result

    def remotes(self) -> list[str]:
        out = self.git("remote")
        return [r for r in (out or "").splitlines() if r]

    def current_branch(self) -> str | None:
        return self.git("symbolic-ref", "--short", "-q", "HEAD") or None

    def upstream_remote(self) -> str | None:
        branch = self.current_branch()
        if not branch:
            return None
        return self.git("config", "--get", f"branch.{branch}.remote") or None

    def author_identity(self) -> str | None:
        """``Name <email>`` git would record as author right now."""
        ident = self.git("var", "GIT_AUTHOR_IDENT")
        if not ident:
            return None
        return ident.rsplit(" ", 2)[0]

    def show_prefix(self) -> str:
        return self.git("rev-parse", "--show-prefix") or ""

    def require_pre_command_head(self) -> None:
        """Remember HEAD before a wrapped command runs."""
        self.pre_command_head = self.head()


def find_repository(global_args: tuple[str, ...] | list[str] = (),
                    git_bin: str | None = None) -> Repository | None:
    """Open the repository that ``git <global_args>`` would operate on."""
    global_args = tuple(a for a in global_args if a not in _GLOBAL_OPTS_LOCAL_ONLY)
    git_bin = git_bin or get_git_bin()
    probe = Repository(None, Path("."), global_args, git_bin)
    git_dir = probe.git("rev-parse", "--absolute-git-dir")
    if not git_dir:
        return None
    toplevel = probe.git("rev-parse", "--show-toplevel")
    return Repository(Path(toplevel) if toplevel else None, Path(git_dir), global_args, git_bin)


def fetch_remote_from_args(repository: Repository, invocation: GitInvocation) -> str:
    """Which remote a fetch/pull/push talks to: explicit argument, upstream, or ``origin``."""
    remotes = repository.remotes()
    positional = invocation.positional_args()
    if positional:
        candidate = positional[0]
        if candidate in remotes or "/" in candidate or ":" in candidate:
            return candidate
    upstream = repository.upstream_remote()
    if upstream and upstream != ".":
        return upstream
    if "origin" in remotes:
        return "origin"
    if len(remotes) == 1:
        return remotes[0]
    raise SyncFailure("cannot determine remote from arguments")
