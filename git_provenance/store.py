"""
Attribution store — authorship logs and working logs.

Authorship logs (one per commit, immutable) are JSON git notes on
``refs/notes/provenance``, so they travel with ``git fetch``/``git push`` of
that ref and never touch ordinary history.  Writing a note is a single ref
update, which is what makes ``finalize_commit`` all-or-nothing.

Working logs (mutable, pre-commit) live under the git dir:

    <git-dir>/provenance/working_logs/<base_commit>/INITIAL.json
    <git-dir>/provenance/working_logs/<base_commit>/episodes.jsonl

No external dependencies — stdlib only.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from .attribution import (
    AuthorshipLogEntry,
    Episode,
    FileAttribution,
    PromptRecord,
    VirtualAttributions,
    WorkingLog,
    prompts_from_dict,
    prompts_to_dict,
    split_lines,
)
from .config import get_notes_ref
from .errors import InvalidAttribution, NotFound, StoreCorrupt, StoreError
from .git import Repository, decode, encode


logger = logging.getLogger(__name__)

STORE_DIR_NAME = "provenance"
INITIAL_FILE = "INITIAL.json"
EPISODES_FILE = "episodes.jsonl"

_PARSE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, InvalidAttribution)


class AttributionStore:
    """Owns every authorship log and working log of one repository."""

    def __init__(self, repository: Repository, notes_ref: str | None = None):
        self.repository = repository
        self.notes_ref = notes_ref or get_notes_ref(_project_dir(repository))
        self.root = repository.git_dir / STORE_DIR_NAME
        self._log_cache: dict[str, AuthorshipLogEntry | None] = {}

    # ---------------------------------------------------------------
    # Working logs
    # ---------------------------------------------------------------

    def _working_dir(self, base_commit: str) -> Path:
        return self.root / "working_logs" / base_commit

    def has_working(self, base_commit: str) -> bool:
        d = self._working_dir(base_commit)
        return (d / INITIAL_FILE).exists() or (d / EPISODES_FILE).exists()

    def working_bases(self) -> list[str]:
        d = self.root / "working_logs"
        if not d.is_dir():
            return []
        return sorted(p.name for p in d.iterdir() if p.is_dir())

    def read_working_log(self, base_commit: str) -> WorkingLog:
        """Parse the working log for ``base_commit``; raises StoreCorrupt on bad data."""
        d = self._working_dir(base_commit)
        log = WorkingLog(base_commit)

        initial_path = d / INITIAL_FILE
        if initial_path.exists():
            try:
                data = json.loads(initial_path.read_text(encoding="utf-8"))
                log.initial_files = {
                    p: FileAttribution.from_dict(p, fe) for p, fe in data.get("files", {}).items()
                }
                log.initial_prompts = prompts_from_dict(data.get("prompts") or {})
            except (OSError, json.JSONDecodeError) + _PARSE_ERRORS as e:
                raise StoreCorrupt(f"{initial_path}: {e}") from e

        episodes_path = d / EPISODES_FILE
        if episodes_path.exists():
            try:
                text = episodes_path.read_text(encoding="utf-8")
            except OSError as e:
                raise StoreCorrupt(f"{episodes_path}: {e}") from e
            for n, line in enumerate(text.splitlines(), 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    log.episodes.append(Episode.from_dict(json.loads(line)))
                except (json.JSONDecodeError,) + _PARSE_ERRORS as e:
                    raise StoreCorrupt(f"{episodes_path}:{n}: {e}") from e

        return log

    def load_working(self, base_commit: str,
                     human_author_fallback: str | None = None) -> VirtualAttributions:
        """Current uncommitted attribution, rebuilt from the working log alone."""
        if not self.has_working(base_commit):
            return VirtualAttributions.empty(base_commit, human_author_fallback=human_author_fallback)
        return self.read_working_log(base_commit).to_virtual_attributions(human_author_fallback)

    def write_initial(self, base_commit: str, files: dict[str, FileAttribution],
                      prompts: dict[str, PromptRecord]) -> None:
        """Replace the INITIAL slot for ``base_commit``.  Writing the same data twice is a no-op."""
        path = self._working_dir(base_commit) / INITIAL_FILE
        if not files and not prompts:
            if path.exists():
                path.unlink()
            return
        data = {
            "files": {p: fa.to_dict() for p, fa in sorted(files.items())},
            "prompts": prompts_to_dict(prompts),
        }
        _atomic_write(path, json.dumps(data, indent=1) + "\n")

    def append_episode(self, base_commit: str, episode: Episode) -> None:
        d = self._working_dir(base_commit)
        d.mkdir(parents=True, exist_ok=True)
        with open(d / EPISODES_FILE, "a", encoding="utf-8") as f:
            f.write(json.dumps(episode.to_dict()) + "\n")

    def discard_working(self, base_commit: str) -> None:
        d = self._working_dir(base_commit)
        if d.exists():
            shutil.rmtree(d, ignore_errors=True)

    # ---------------------------------------------------------------
    # Authorship logs
    # ---------------------------------------------------------------

    def load_for_commit(self, commit: str) -> AuthorshipLogEntry:
        """Authorship log of ``commit``.  Raises NotFound or StoreCorrupt."""
        if commit in self._log_cache:
            cached = self._log_cache[commit]
            if cached is None:
                raise NotFound(commit)
            return cached

        result = self.repository.run("notes", f"--ref={self.notes_ref}", "show", commit)
        if result.returncode != 0:
            self._log_cache[commit] = None
            raise NotFound(commit)
        try:
            entry = AuthorshipLogEntry.from_dict(json.loads(decode(result.stdout)))
        except (json.JSONDecodeError,) + _PARSE_ERRORS as e:
            raise StoreCorrupt(f"authorship log for {commit}: {e}") from e
        self._log_cache[commit] = entry
        return entry

    def write_authorship_log(self, entry: AuthorshipLogEntry) -> None:
        payload = json.dumps(entry.to_dict(), indent=1) + "\n"
        result = self.repository.run(
            "notes", f"--ref={self.notes_ref}", "add", "-f", "-F", "-", entry.commit,
            input=encode(payload),
        )
        if result.returncode != 0:
            raise StoreError(
                f"cannot write authorship log for {entry.commit}: {decode(result.stderr).strip()}"
            )
        self._log_cache[entry.commit] = entry

    def finalize_commit(self, commit: str, attributions: VirtualAttributions) -> AuthorshipLogEntry:
        """Persist ``attributions`` as the log of ``commit`` and clear its working log.

        The note is written first; the working log is only removed once that
        succeeded, so a failure leaves the store exactly as it was.
        """
        entry = AuthorshipLogEntry.from_virtual_attributions(commit, attributions)
        self.write_authorship_log(entry)
        self.discard_working(attributions.base_commit)
        logger.debug("finalized %s (%d files) from base %s",
                     commit[:8], len(entry.files), attributions.base_commit[:8])
        return entry

    def load_virtual_for_commit(self, commit: str) -> VirtualAttributions:
        """Authorship log of ``commit`` joined with the committed file contents.

        Files whose committed line count disagrees with the log are skipped.
        Raises NotFound or StoreCorrupt like ``load_for_commit``.
        """
        entry = self.load_for_commit(commit)
        files: dict[str, FileAttribution] = {}
        for path, ranges in entry.files.items():
            content = self.repository.show_file(commit, path)
            if content is None:
                continue
            lines = split_lines(content)
            if len(lines) != entry.line_counts.get(path):
                logger.debug("log for %s disagrees with %s, skipping", commit[:8], path)
                continue
            files[path] = FileAttribution(path, tuple(lines), ranges)
        return VirtualAttributions(entry.base_commit or commit, commit, files, dict(entry.prompts))

    def commits_with_logs(self) -> list[str]:
        out = self.repository.git("notes", f"--ref={self.notes_ref}", "list")
        commits: list[str] = []
        for line in (out or "").splitlines():
            parts = line.split()
            if len(parts) == 2:
                commits.append(parts[1])
        return commits


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _project_dir(repository: Repository) -> str | None:
    try:
        return str(repository.workdir())
    except FileNotFoundError:
        return None


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
