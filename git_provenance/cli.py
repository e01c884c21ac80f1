"""
git-provenance CLI — line-level AI authorship on top of git.

Zero external dependencies — uses only the Python standard library.

Commands:
    git-provenance blame [flags] <file>       git blame with AI authors
    git-provenance git <args...>              Run git with provenance pre/post hooks
    git-provenance checkpoint                 Record an edit episode from stdin
    git-provenance post-commit                Finalize HEAD's authorship log (git hook)
    git-provenance post-rewrite <kind>        Remap logs after amend/rebase (git hook)
    git-provenance post-checkout <o> <n> <f>  Carry uncommitted attribution (git hook)
    git-provenance install-hooks              Install the git hooks
    git-provenance status                     Show provenance status
    git-provenance show <commit>              Print a commit's authorship log
    git-provenance fetch-notes [remote]       Fetch authorship logs
    git-provenance push-notes [remote]        Push authorship logs
    git-provenance config [key] [value]       Show or change settings
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .blame import blame_command
from .checkpoint import checkpoint_from_stdin
from .commit import finalize_head_commit
from .config import (
    DEFAULTS,
    configure_logging,
    get_global_config,
    get_project_config,
    get_setting,
    save_global_config,
    save_project_config,
)
from .errors import NotFound, StoreCorrupt, SyncFailure
from .git import GitInvocation, Repository, fetch_remote_from_args, find_repository
from .hooks import GIT_HOOKS, configure_git_hooks, hooks_dir
from .rewrite import carry_working_log, rewrite_from_stdin
from .store import AttributionStore
from .sync import fetch_authorship_notes, push_authorship_notes
from .wrapper import run_git

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _repository_or_exit() -> Repository:
    repository = find_repository()
    if repository is None:
        print("git-provenance: not a git repository", file=sys.stderr)
        sys.exit(1)
    return repository


# ===================================================================
# blame / git  (raw argument passthrough)
# ===================================================================

def cmd_blame(argv: list[str]) -> int:
    return blame_command(argv)


def cmd_git(argv: list[str]) -> int:
    return run_git(argv)


PASSTHROUGH = {
    "blame": cmd_blame,
    "git": cmd_git,
}


# ===================================================================
# checkpoint  (called by editor / agent integrations, reads stdin)
# ===================================================================

def cmd_checkpoint(_args) -> int:
    return checkpoint_from_stdin()


# ===================================================================
# Git hook entry points: never fail the git command
# ===================================================================

def cmd_post_commit(_args) -> int:
    """Write HEAD's authorship log (called by git post-commit hook)."""
    repository = find_repository()
    if repository is None:
        return 0
    try:
        entry = finalize_head_commit(repository)
    except Exception as e:
        logger.debug("post-commit failed: %s", e)
        return 0
    if entry is not None:
        ai_lines = sum(len(r) for ranges in entry.files.values() for r in ranges if r.author.is_ai)
        if ai_lines:
            print(f"git-provenance: {entry.commit[:8]} has {ai_lines} AI-authored line(s)")
    return 0


def cmd_post_rewrite(args) -> int:
    """Remap authorship logs after amend/rebase (called by git post-rewrite hook)."""
    repository = find_repository()
    if repository is None:
        return 0
    try:
        rewrite_from_stdin(repository, args.kind)
    except Exception as e:
        logger.debug("post-rewrite failed: %s", e)
    return 0


def cmd_post_checkout(args) -> int:
    """Carry uncommitted attribution to the new HEAD (called by git post-checkout hook)."""
    if args.flag != "1":
        # File checkout, HEAD did not move.
        return 0
    repository = find_repository()
    if repository is None:
        return 0
    try:
        carry_working_log(repository, args.old, args.new)
    except Exception as e:
        logger.debug("post-checkout failed: %s", e)
    return 0


# ===================================================================
# install-hooks / status / show
# ===================================================================

def cmd_install_hooks(_args) -> int:
    repository = _repository_or_exit()
    changed = configure_git_hooks(repository)
    for name in GIT_HOOKS:
        state = "installed" if name in changed else "already configured"
        print(f"  Git {name + ':':<15} {state}")
    return 0


def cmd_status(_args) -> int:
    repository = _repository_or_exit()
    store = AttributionStore(repository)

    print("git-provenance status\n")
    print(f"  Notes ref:        {store.notes_ref}")
    print(f"  Authorship logs:  {len(store.commits_with_logs())} recorded")

    bases = store.working_bases()
    print(f"  Working logs:     {len(bases)}")
    for base in bases:
        try:
            log = store.read_working_log(base)
        except StoreCorrupt as e:
            print(f"    {base[:8]}  corrupt ({e})")
            continue
        print(f"    {base[:8]}  {len(log.initial_files)} carried file(s), {len(log.episodes)} episode(s)")

    directory = hooks_dir(repository)
    print()
    for name in GIT_HOOKS:
        path = directory / name
        ok = False
        try:
            ok = path.exists() and f"git-provenance {name}" in path.read_text()
        except OSError:
            pass
        print(f"  Git {name + ':':<15} {'configured' if ok else 'not configured'}")
    return 0


def cmd_show(args) -> int:
    repository = _repository_or_exit()
    commit = repository.resolve(args.commit)
    if commit is None:
        print(f"git-provenance: unknown revision: {args.commit}", file=sys.stderr)
        return 1
    try:
        entry = AttributionStore(repository).load_for_commit(commit)
    except NotFound:
        print(f"git-provenance: no authorship log for {commit[:8]}", file=sys.stderr)
        return 1
    except StoreCorrupt as e:
        print(f"git-provenance: {e}", file=sys.stderr)
        return 1
    print(json.dumps(entry.to_dict(), indent=2))
    return 0


# ===================================================================
# fetch-notes / push-notes
# ===================================================================

def _remote(repository: Repository, remote: str | None) -> str:
    args = (remote,) if remote else ()
    return fetch_remote_from_args(repository, GitInvocation((), "fetch", args))


def cmd_fetch_notes(args) -> int:
    repository = _repository_or_exit()
    try:
        remote = _remote(repository, args.remote)
        fetched = fetch_authorship_notes(repository, remote)
    except SyncFailure as e:
        print(f"git-provenance: {e}", file=sys.stderr)
        return 1
    if not fetched:
        print(f"git-provenance: {remote} has no authorship logs")
    return 0


def cmd_push_notes(args) -> int:
    repository = _repository_or_exit()
    try:
        remote = _remote(repository, args.remote)
        pushed = push_authorship_notes(repository, remote)
    except SyncFailure as e:
        print(f"git-provenance: {e}", file=sys.stderr)
        return 1
    if not pushed:
        print("git-provenance: no authorship logs to push")
    return 0


# ===================================================================
# config
# ===================================================================

def cmd_config(args) -> int:
    repository = find_repository()
    project_dir = None
    if repository is not None:
        try:
            project_dir = str(repository.workdir())
        except FileNotFoundError:
            pass

    if args.key is None:
        for key in DEFAULTS:
            print(f"  {key + ':':<14} {get_setting(key, project_dir)}")
        return 0

    if args.key not in DEFAULTS:
        print(f"git-provenance: unknown setting: {args.key}", file=sys.stderr)
        return 1

    if args.value is None:
        print(get_setting(args.key, project_dir))
        return 0

    if args.use_global:
        config = get_global_config()
        config[args.key] = args.value
        save_global_config(config)
        return 0

    if project_dir is None:
        print("git-provenance: not a git repository (use --global)", file=sys.stderr)
        return 1
    config = get_project_config(project_dir)
    config[args.key] = args.value
    save_project_config(config, project_dir)
    return 0


# ===================================================================
# Entry point
# ===================================================================

def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()

    # blame and git take git's own flags verbatim; argparse would try to read them.
    if argv and argv[0] in PASSTHROUGH:
        return PASSTHROUGH[argv[0]](argv[1:])

    parser = argparse.ArgumentParser(
        prog="git-provenance",
        description="git-provenance — line-level AI authorship for git",
    )
    parser.add_argument(
        "--version", action="version", version=f"git-provenance {VERSION}",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("blame", help="git blame with AI authors (takes git blame flags)")
    sub.add_parser("git", help="Run git with provenance hooks")
    sub.add_parser("checkpoint", help="Record an edit episode from stdin (used by integrations)")
    sub.add_parser("post-commit", help="Finalize HEAD's authorship log (called by git hook)")

    # post-rewrite <amend|rebase>
    sub_rewrite = sub.add_parser("post-rewrite", help="Remap logs after amend/rebase (called by git hook)")
    sub_rewrite.add_argument("kind", choices=["amend", "rebase"], help="Rewrite kind passed by git")

    # post-checkout <old> <new> <flag>
    sub_checkout = sub.add_parser("post-checkout", help="Carry uncommitted attribution (called by git hook)")
    sub_checkout.add_argument("old", help="Previous HEAD")
    sub_checkout.add_argument("new", help="New HEAD")
    sub_checkout.add_argument("flag", help="1 for a branch checkout, 0 for a file checkout")

    sub.add_parser("install-hooks", help="Install post-commit, post-rewrite and post-checkout hooks")
    sub.add_parser("status", help="Show git-provenance status")

    # show <commit>
    sub_show = sub.add_parser("show", help="Print a commit's authorship log")
    sub_show.add_argument("commit", nargs="?", default="HEAD", help="Commit (default: HEAD)")

    # fetch-notes / push-notes [remote]
    sub_fetch = sub.add_parser("fetch-notes", help="Fetch authorship logs from a remote")
    sub_fetch.add_argument("remote", nargs="?", default=None, help="Remote (default: upstream or origin)")
    sub_push = sub.add_parser("push-notes", help="Push authorship logs to a remote")
    sub_push.add_argument("remote", nargs="?", default=None, help="Remote (default: upstream or origin)")

    # config [key] [value] [--global]
    sub_config = sub.add_parser("config", help="Show or change git-provenance settings")
    sub_config.add_argument("key", nargs="?", default=None, help="Setting name")
    sub_config.add_argument("value", nargs="?", default=None, help="New value")
    sub_config.add_argument("--global", dest="use_global", action="store_true",
                            help="Write ~/.git-provenance/config.json instead of the project config")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    dispatch = {
        "checkpoint": cmd_checkpoint,
        "post-commit": cmd_post_commit,
        "post-rewrite": cmd_post_rewrite,
        "post-checkout": cmd_post_checkout,
        "install-hooks": cmd_install_hooks,
        "status": cmd_status,
        "show": cmd_show,
        "fetch-notes": cmd_fetch_notes,
        "push-notes": cmd_push_notes,
        "config": cmd_config,
    }
    return dispatch[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
