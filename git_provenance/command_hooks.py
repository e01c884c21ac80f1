"""
Pre/post command hooks for wrapped ``git fetch``, ``pull``, ``rebase`` and ``push``.

A pre hook may start one background ``FetchTask`` that pulls authorship
notes from the same remote while git does its own network work, and may
capture the uncommitted attribution that a rebase autostash is about to
shelve.  Everything it wants the post hook to see travels in a
``CommandHooksContext`` owned by the caller.

Post hooks always join the fetch task first, even when git failed, so notes
written by the task are on disk before any attribution is merged.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .attribution import VirtualAttributions
from .errors import MergeConflict, StoreCorrupt, SyncFailure
from .git import GitInvocation, Repository, find_repository, fetch_remote_from_args, is_dry_run
from .merge import merge_favoring_first
from .store import AttributionStore
from .sync import fetch_authorship_notes, push_authorship_notes


logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Background fetch
# -------------------------------------------------------------------

class FetchTask:
    """Authorship-notes fetch running beside the wrapped command.

    The thread opens its own ``Repository`` from the immutable global
    arguments instead of sharing the caller's handle.
    """

    def __init__(self, global_args: tuple[str, ...], remote: str, git_bin: str = "git"):
        self.global_args = tuple(global_args)
        self.remote = remote
        self.git_bin = git_bin
        self.fetched = False
        self._thread = threading.Thread(target=self._run, name="provenance-fetch")

    def start(self) -> "FetchTask":
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> None:
        if self._thread.ident is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        logger.debug("started fetching authorship notes from remote: %s", self.remote)
        repository = find_repository(self.global_args, self.git_bin)
        if repository is None:
            logger.debug("failed to open repository for authorship fetch")
            return
        try:
            self.fetched = fetch_authorship_notes(repository, self.remote)
        except SyncFailure as e:
            logger.debug("authorship fetch failed: %s", e)


@dataclass
class CommandHooksContext:
    """Per-invocation state handed from a pre hook to its post hook."""

    fetch_task: FetchTask | None = None
    stashed_va: VirtualAttributions | None = None
    pre_command_head: str | None = None

    def join_fetch(self) -> None:
        task, self.fetch_task = self.fetch_task, None
        if task is not None:
            task.join()


# -------------------------------------------------------------------
# Pull / rebase configuration
# -------------------------------------------------------------------

@dataclass(frozen=True)
class PullRebaseAutostashConfig:
    is_rebase: bool
    is_autostash: bool


def _flag_value(invocation: GitInvocation, flag: str) -> str | None:
    for arg in invocation.command_args:
        if arg == "--":
            break
        if arg.startswith(flag + "="):
            return arg[len(flag) + 1:]
    return None


def get_pull_rebase_autostash_config(invocation: GitInvocation, repository: Repository,
                                     command: str = "pull") -> PullRebaseAutostashConfig:
    """Whether this pull (or rebase) rebases with autostash.

    Command-line flags win; config is read with at most one git call.
    """
    if command == "rebase":
        rebase_from_cli: bool | None = True
    elif invocation.has_command_flag("--no-rebase"):
        rebase_from_cli = False
    elif invocation.has_command_flag("--rebase") or invocation.has_command_flag("-r"):
        value = _flag_value(invocation, "--rebase")
        rebase_from_cli = value is None or value.lower() != "false"
    else:
        rebase_from_cli = None

    if invocation.has_command_flag("--no-autostash"):
        autostash_from_cli: bool | None = False
    elif invocation.has_command_flag("--autostash"):
        autostash_from_cli = True
    else:
        autostash_from_cli = None

    if rebase_from_cli is not None and autostash_from_cli is not None:
        return PullRebaseAutostashConfig(rebase_from_cli, autostash_from_cli)

    config = repository.config_get_regexp(r"^(pull\.rebase|rebase\.autostash)$")

    if rebase_from_cli is not None:
        is_rebase = rebase_from_cli
    else:
        # pull.rebase may be true, merges, interactive...; anything but false rebases.
        value = config.get("pull.rebase")
        is_rebase = value is not None and value.lower() != "false"

    if autostash_from_cli is not None:
        is_autostash = autostash_from_cli
    else:
        is_autostash = config.get("rebase.autostash", "").lower() == "true"

    return PullRebaseAutostashConfig(is_rebase, is_autostash)


def has_uncommitted_changes(repository: Repository) -> bool:
    return bool(repository.staged_and_unstaged_filenames())


# -------------------------------------------------------------------
# Fetch / pull hooks
# -------------------------------------------------------------------

def fetch_pull_pre_command_hook(invocation: GitInvocation,
                                repository: Repository) -> FetchTask | None:
    """Start the background notes fetch; None for dry runs or unknown remotes."""
    if is_dry_run(invocation.command_args):
        return None
    try:
        remote = fetch_remote_from_args(repository, invocation)
    except SyncFailure:
        logger.debug("failed to extract remote for authorship fetch; skipping")
        return None
    return FetchTask(repository.global_args_for_exec(), remote, repository.git_bin).start()


def fetch_pull_post_command_hook(repository: Repository, invocation: GitInvocation,
                                 exit_status: int, context: CommandHooksContext) -> None:
    context.join_fetch()


def _capture_autostash(invocation: GitInvocation, repository: Repository,
                       context: CommandHooksContext, command: str) -> None:
    """Remember uncommitted attribution when an autostash is about to shelve it."""
    repository.require_pre_command_head()
    context.pre_command_head = repository.pre_command_head

    config = get_pull_rebase_autostash_config(invocation, repository, command)
    has_changes = has_uncommitted_changes(repository)
    logger.debug("%s pre-hook: rebase=%s, autostash=%s, has_changes=%s",
                 command, config.is_rebase, config.is_autostash, has_changes)
    if not (config.is_rebase and config.is_autostash and has_changes):
        return

    head = context.pre_command_head
    if head is None:
        logger.debug("failed to get HEAD for attribution capture")
        return
    store = AttributionStore(repository)
    try:
        va = store.load_working(head, repository.author_identity())
    except StoreCorrupt as e:
        logger.debug("failed to load working log: %s", e)
        return
    if va.is_empty():
        logger.debug("no attributions in working log to preserve")
        return
    logger.debug("captured attribution for %d files ahead of autostash", len(va.files()))
    context.stashed_va = va


def pull_pre_command_hook(invocation: GitInvocation, repository: Repository,
                          context: CommandHooksContext) -> None:
    if is_dry_run(invocation.command_args):
        return
    context.fetch_task = fetch_pull_pre_command_hook(invocation, repository)
    _capture_autostash(invocation, repository, context, "pull")


def restore_stashed_attributions(repository: Repository, context: CommandHooksContext) -> bool:
    """Re-seed the new HEAD's INITIAL slot with attribution that survived the autostash."""
    old_head = context.pre_command_head
    new_head = repository.head()
    if old_head is None or new_head is None or old_head == new_head:
        return False
    stashed = context.stashed_va
    context.stashed_va = None
    if stashed is None or stashed.is_empty():
        return False

    logger.debug("restoring stashed attribution: %s -> %s", old_head[:8], new_head[:8])
    working_files: dict[str, str] = {}
    for path in stashed.files():
        content = repository.read_worktree(path)
        if content is not None:
            working_files[path] = content
    if not working_files:
        logger.debug("no working files to restore attributions for")
        return False

    store = AttributionStore(repository)
    try:
        new_va = store.load_working(new_head)
    except StoreCorrupt as e:
        logger.debug("failed to load working log for %s: %s, using empty", new_head[:8], e)
        new_va = VirtualAttributions.empty(new_head)

    try:
        merged = merge_favoring_first(stashed, new_va, working_files, new_head=new_head)
    except MergeConflict as e:
        logger.debug("dropping attribution after autostash: %s", e)
        merged = e.partial

    files = dict(new_va.file_attributions)
    files.update(merged.file_attributions)
    prompts = dict(new_va.prompts)
    prompts.update(merged.prompts)
    try:
        store.write_initial(new_head, files, prompts)
    except OSError as e:
        logger.debug("failed to write INITIAL attributions: %s", e)
        return False
    logger.debug("restored AI attributions to INITIAL for new HEAD %s", new_head[:8])
    return True


def pull_post_command_hook(repository: Repository, invocation: GitInvocation,
                           exit_status: int, context: CommandHooksContext) -> None:
    context.join_fetch()
    if exit_status != 0:
        logger.debug("pull failed, skipping post-pull authorship restoration")
        return
    restore_stashed_attributions(repository, context)


# -------------------------------------------------------------------
# Rebase hooks
# -------------------------------------------------------------------

_REBASE_CONTROL_FLAGS = ("--continue", "--abort", "--skip", "--quit", "--edit-todo", "--show-current-patch")


def rebase_pre_command_hook(invocation: GitInvocation, repository: Repository,
                            context: CommandHooksContext) -> None:
    if any(invocation.has_command_flag(f) for f in _REBASE_CONTROL_FLAGS):
        return
    _capture_autostash(invocation, repository, context, "rebase")


def rebase_post_command_hook(repository: Repository, invocation: GitInvocation,
                             exit_status: int, context: CommandHooksContext) -> None:
    if exit_status != 0:
        logger.debug("rebase failed or stopped, keeping working log as is")
        return
    restore_stashed_attributions(repository, context)


# -------------------------------------------------------------------
# Push hook
# -------------------------------------------------------------------

def push_post_command_hook(repository: Repository, invocation: GitInvocation,
                           exit_status: int, context: CommandHooksContext) -> None:
    """After a successful push, publish authorship notes to the same remote."""
    if exit_status != 0 or is_dry_run(invocation.command_args):
        return
    try:
        remote = fetch_remote_from_args(repository, invocation)
        push_authorship_notes(repository, remote)
    except SyncFailure as e:
        logger.debug("authorship push failed: %s", e)


# -------------------------------------------------------------------
# Dispatch
# -------------------------------------------------------------------

def _fetch_pre(invocation: GitInvocation, repository: Repository,
               context: CommandHooksContext) -> None:
    context.fetch_task = fetch_pull_pre_command_hook(invocation, repository)


PRE_COMMAND_HOOKS = {
    "fetch": _fetch_pre,
    "pull": pull_pre_command_hook,
    "rebase": rebase_pre_command_hook,
}

POST_COMMAND_HOOKS = {
    "fetch": fetch_pull_post_command_hook,
    "pull": pull_post_command_hook,
    "rebase": rebase_post_command_hook,
    "push": push_post_command_hook,
}
