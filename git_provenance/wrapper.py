"""
``git-provenance git ...`` — run git between the provenance pre and post hooks.

``blame`` is answered by the overlay; every other command is passed to git
untouched, with stdin/stdout/stderr inherited.  Hook failures are logged and
never change git's exit status.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
import subprocess

from .blame import blame_command
from .command_hooks import POST_COMMAND_HOOKS, PRE_COMMAND_HOOKS, CommandHooksContext
from .config import get_git_bin
from .git import parse_git_cli, find_repository


logger = logging.getLogger(__name__)


def _exit_status(returncode: int) -> int:
    # Killed by a signal: report it the way a shell would.
    return 128 - returncode if returncode < 0 else returncode


def run_git(argv: list[str]) -> int:
    """Run ``git <argv>`` with provenance hooks and return git's exit status."""
    invocation = parse_git_cli(argv)
    git_bin = get_git_bin()

    if invocation.command == "blame":
        repository = find_repository(invocation.global_args, git_bin)
        if repository is not None:
            return blame_command(list(invocation.command_args), repository=repository)

    pre = PRE_COMMAND_HOOKS.get(invocation.command or "")
    post = POST_COMMAND_HOOKS.get(invocation.command or "")
    repository = None
    if pre is not None or post is not None:
        repository = find_repository(invocation.global_args, git_bin)

    context = CommandHooksContext()
    exit_status = 1
    try:
        if repository is not None and pre is not None:
            try:
                pre(invocation, repository, context)
            except Exception as e:
                # Hooks never keep git from running.
                logger.debug("%s pre-hook failed: %s", invocation.command, e, exc_info=True)

        exit_status = _exit_status(subprocess.call([git_bin, *argv]))

        if repository is not None and post is not None:
            try:
                post(repository, invocation, exit_status, context)
            except Exception as e:
                logger.debug("%s post-hook failed: %s", invocation.command, e, exc_info=True)
    finally:
        context.join_fetch()
    return exit_status
