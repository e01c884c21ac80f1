"""
Git hook installation.

Installs ``post-commit``, ``post-rewrite`` and ``post-checkout`` hooks that
call back into ``git-provenance``.  Existing hooks are appended to, never
replaced, and every call ends in ``|| true`` so a provenance failure can
never fail a git operation.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import stat
from pathlib import Path

from .git import Repository


GIT_HOOKS = {
    "post-commit": """\
# git-provenance: record authorship log for the new commit
git-provenance post-commit 2>/dev/null || true
""",
    "post-rewrite": """\
# git-provenance: carry authorship logs across amend/rebase
git-provenance post-rewrite "$1" 2>/dev/null || true
""",
    "post-checkout": """\
# git-provenance: carry uncommitted attribution across checkouts
git-provenance post-checkout "$1" "$2" "$3" 2>/dev/null || true
""",
}


def _marker(hook_name: str) -> str:
    return f"git-provenance {hook_name}"


def hooks_dir(repository: Repository) -> Path:
    """Where git looks for hooks (honours core.hooksPath and linked worktrees)."""
    path = repository.git("rev-parse", "--path-format=absolute", "--git-path", "hooks")
    if path:
        return Path(path)
    return repository.git_dir / "hooks"


def install_hook(directory: Path, hook_name: str, script: str) -> bool:
    """Add ``script`` to one hook file.  Returns False if it was already there.

    Logic:
      1. If the hook already contains the marker, skip.
      2. If it exists with other content, append the call.
      3. If it doesn't exist, create it with a shebang + the call.
      4. chmod +x the hook file.
    """
    directory.mkdir(parents=True, exist_ok=True)
    hook_path = directory / hook_name

    if hook_path.exists():
        content = hook_path.read_text()
        if _marker(hook_name) in content:
            return False
        if not content.endswith("\n"):
            content += "\n"
        content += "\n" + script
    else:
        content = "#!/bin/sh\n" + script
    hook_path.write_text(content)

    current = hook_path.stat().st_mode
    hook_path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return True


def configure_git_hooks(repository: Repository) -> list[str]:
    """Install every provenance hook.  Returns the names of hooks that changed."""
    directory = hooks_dir(repository)
    return [name for name, script in GIT_HOOKS.items() if install_hook(directory, name, script)]
