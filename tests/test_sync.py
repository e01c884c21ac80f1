"""Tests for pushing and fetching authorship notes."""

import pytest

from conftest import clone, commit_all, git

from git_provenance.attribution import AI, AuthorshipLogEntry, LineRange
from git_provenance.errors import SyncFailure
from git_provenance.git import find_repository
from git_provenance.store import AttributionStore
from git_provenance.sync import fetch_authorship_notes, push_authorship_notes, tracking_ref


NOTES_REF = "refs/notes/provenance"


def note(store, commit, path="a.txt", tool="cursor", line_count=2):
    entry = AuthorshipLogEntry(
        commit=commit,
        base_commit=commit,
        files={path: (LineRange(1, line_count, AI(tool)),)},
        line_counts={path: line_count},
    )
    store.write_authorship_log(entry)
    return entry


def open_repo(path):
    repository = find_repository(("-C", str(path)))
    assert repository is not None
    return repository


def notes_on(repo_path):
    out = git(repo_path, "notes", f"--ref={NOTES_REF}", "list")
    return {line.split()[1] for line in out.splitlines()}


@pytest.mark.parametrize("remote, expected", [
    ("origin", "refs/notes/provenance-remote/origin"),
    ("https://example.com/team/repo.git", "refs/notes/provenance-remote/https_example.com_team_repo.git"),
    ("/srv/git/repo.git", "refs/notes/provenance-remote/srv_git_repo.git"),
    ("::", "refs/notes/provenance-remote/remote"),
])
def test_tracking_ref(remote, expected):
    assert tracking_ref(NOTES_REF, remote) == expected


def test_nothing_to_push(repository, remote):
    assert push_authorship_notes(repository, "origin") is False


def test_remote_without_notes(repository, remote):
    assert fetch_authorship_notes(repository, "origin") is False


def test_unknown_remote(repository, remote):
    with pytest.raises(SyncFailure):
        fetch_authorship_notes(repository, "no-such-remote")


def test_push_then_fetch_in_clone(tmp_path, git_repo, repository, remote):
    root = git(git_repo, "rev-parse", "HEAD").strip()
    note(AttributionStore(repository), root)
    assert push_authorship_notes(repository, "origin") is True
    assert notes_on(remote) == {root}

    other = open_repo(clone(remote, tmp_path / "other"))
    assert fetch_authorship_notes(other, "origin") is True
    entry = AttributionStore(other).load_for_commit(root)
    assert entry.author_at("a.txt", 2) == AI("cursor")
    assert other.git("rev-parse", "--verify", "-q", "refs/notes/provenance-remote/origin")


def test_fetch_keeps_local_notes(tmp_path, git_repo, repository, remote):
    root = git(git_repo, "rev-parse", "HEAD").strip()
    note(AttributionStore(repository), root)
    push_authorship_notes(repository, "origin")

    other_path = clone(remote, tmp_path / "other")
    (other_path / "b.txt").write_text("y\n")
    local = commit_all(other_path, "local work")
    other = open_repo(other_path)
    note(AttributionStore(other), local, path="b.txt", tool="claude", line_count=1)

    assert fetch_authorship_notes(other, "origin") is True
    assert notes_on(other_path) == {root, local}


def test_rejected_push_is_retried_after_merge(tmp_path, git_repo, repository, remote):
    root = git(git_repo, "rev-parse", "HEAD").strip()
    note(AttributionStore(repository), root)
    push_authorship_notes(repository, "origin")

    other_path = clone(remote, tmp_path / "other")
    (other_path / "b.txt").write_text("y\n")
    local = commit_all(other_path, "local work")
    git(other_path, "push", "-q", "origin", "main")
    other = open_repo(other_path)
    note(AttributionStore(other), local, path="b.txt", tool="claude", line_count=1)

    assert push_authorship_notes(other, "origin") is True
    assert notes_on(remote) == {root, local}
