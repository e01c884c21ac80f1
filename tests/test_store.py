"""Tests for the attribution store: working logs on disk, authorship logs in git notes."""

import pytest

from conftest import commit_all, git

from git_provenance.attribution import (
    AI,
    AuthorshipLogEntry,
    Episode,
    FileAttribution,
    Human,
    PromptRecord,
    VirtualAttributions,
)
from git_provenance.errors import NotFound, StoreCorrupt
from git_provenance.store import AttributionStore


CURSOR = AI("cursor", "gpt-4o", "p1")
JANE = Human("Jane <jane@example.com>")


@pytest.fixture
def committed(git_repo):
    (git_repo / "a.txt").write_text("one\ntwo\n")
    return commit_all(git_repo, "initial")


@pytest.fixture
def store(repository, committed):
    return AttributionStore(repository)


def episode(path="a.txt", lines=("one", "two"), authors=(JANE, CURSOR)):
    fa = FileAttribution.from_line_authors(path, list(lines), list(authors))
    return Episode("p1", "ai", "2024-01-01T00:00:00+00:00", {path: fa},
                   PromptRecord("p1", "cursor", "gpt-4o"))


class TestWorkingLogs:
    def test_missing_log_is_empty(self, store, committed):
        va = store.load_working(committed, "Fallback <f@x>")
        assert va.is_empty()
        assert va.human_author_fallback == "Fallback <f@x>"
        assert not store.has_working(committed)

    def test_episode_is_replayed(self, store, committed):
        store.append_episode(committed, episode())
        assert store.has_working(committed)
        assert store.working_bases() == [committed]
        va = store.load_working(committed)
        assert va.get("a.txt").authors() == [JANE, CURSOR]
        assert "p1" in va.prompts

    def test_lives_under_git_dir(self, store, committed, git_repo):
        store.append_episode(committed, episode())
        path = git_repo / ".git" / "provenance" / "working_logs" / committed / "episodes.jsonl"
        assert path.exists()

    def test_initial_then_episodes(self, store, committed):
        initial = FileAttribution.uniform("b.txt", ["x"], CURSOR)
        store.write_initial(committed, {"b.txt": initial}, {"p1": PromptRecord("p1", "cursor")})
        store.append_episode(committed, episode())
        va = store.load_working(committed)
        assert va.files() == ["a.txt", "b.txt"]

    def test_write_initial_is_idempotent(self, store, committed):
        initial = {"b.txt": FileAttribution.uniform("b.txt", ["x"], CURSOR)}
        store.write_initial(committed, initial, {})
        store.write_initial(committed, initial, {})
        log = store.read_working_log(committed)
        assert log.initial_files == initial
        assert log.episodes == []

    def test_empty_initial_removes_slot(self, store, committed):
        store.write_initial(committed, {"b.txt": FileAttribution.uniform("b.txt", ["x"], CURSOR)}, {})
        store.write_initial(committed, {}, {})
        assert not store.has_working(committed)

    def test_corrupt_episode_line(self, store, committed):
        store.append_episode(committed, episode())
        path = store.root / "working_logs" / committed / "episodes.jsonl"
        with open(path, "a") as f:
            f.write("{not json\n")
        with pytest.raises(StoreCorrupt):
            store.load_working(committed)

    def test_corrupt_initial(self, store, committed):
        path = store.root / "working_logs" / committed / "INITIAL.json"
        path.parent.mkdir(parents=True)
        path.write_text('{"files": {"a.txt": {"lines": ["x"], "ranges": []}}}')
        with pytest.raises(StoreCorrupt):
            store.read_working_log(committed)

    def test_discard(self, store, committed):
        store.append_episode(committed, episode())
        store.discard_working(committed)
        assert not store.has_working(committed)
        assert store.working_bases() == []


class TestAuthorshipLogs:
    def test_missing_log(self, store, committed):
        with pytest.raises(NotFound):
            store.load_for_commit(committed)

    def test_write_then_load(self, repository, store, committed):
        va = VirtualAttributions(
            "base", committed,
            {"a.txt": FileAttribution.from_line_authors("a.txt", ["one", "two"], [JANE, CURSOR])},
            {"p1": PromptRecord("p1", "cursor", "gpt-4o")},
        )
        entry = AuthorshipLogEntry.from_virtual_attributions(committed, va)
        store.write_authorship_log(entry)

        fresh = AttributionStore(repository)
        loaded = fresh.load_for_commit(committed)
        assert loaded == entry
        assert fresh.commits_with_logs() == [committed]

    def test_note_is_on_provenance_ref(self, git_repo, store, committed):
        va = VirtualAttributions.empty("base", committed)
        store.write_authorship_log(AuthorshipLogEntry.from_virtual_attributions(committed, va))
        raw = git(git_repo, "notes", "--ref=refs/notes/provenance", "show", committed)
        assert '"commit": "%s"' % committed in raw

    def test_corrupt_note(self, git_repo, repository, committed):
        git(git_repo, "notes", "--ref=refs/notes/provenance", "add", "-m", "not json", committed)
        with pytest.raises(StoreCorrupt):
            AttributionStore(repository).load_for_commit(committed)

    def test_finalize_clears_working_log(self, store, committed):
        store.append_episode(committed, episode())
        va = store.load_working(committed)
        entry = store.finalize_commit(committed, va)
        assert not store.has_working(committed)
        assert entry.author_at("a.txt", 2) == CURSOR
        assert set(entry.prompts) == {"p1"}

    def test_load_virtual_for_commit(self, store, committed):
        store.append_episode(committed, episode())
        store.finalize_commit(committed, store.load_working(committed))
        va = store.load_virtual_for_commit(committed)
        assert va.get("a.txt").lines == ("one", "two")
        assert va.get("a.txt").authors() == [JANE, CURSOR]

    def test_load_virtual_skips_mismatched_files(self, store, committed):
        fa = FileAttribution.uniform("a.txt", ["only one line"], CURSOR)
        va = VirtualAttributions("base", committed, {"a.txt": fa}, {})
        store.write_authorship_log(AuthorshipLogEntry.from_virtual_attributions(committed, va))
        assert store.load_virtual_for_commit(committed).is_empty()


def test_custom_notes_ref(monkeypatch, repository, committed):
    monkeypatch.setenv("GIT_PROVENANCE_NOTES_REF", "team-provenance")
    assert AttributionStore(repository).notes_ref == "refs/notes/team-provenance"
