"""Tests for the attribution data model."""

import pytest

from git_provenance.attribution import (
    AI,
    AuthorshipLogEntry,
    Episode,
    FileAttribution,
    Human,
    LineRange,
    PromptRecord,
    VirtualAttributions,
    WorkingLog,
    author_from_dict,
    coalesce,
    split_lines,
    validate_ranges,
)
from git_provenance.errors import InvalidAttribution


CURSOR = AI("cursor", "gpt-4o", "p1")
JANE = Human("Jane <jane@example.com>")


class TestSplitLines:
    def test_trailing_newline_is_not_a_line(self):
        assert split_lines("a\nb\n") == ["a", "b"]

    def test_missing_trailing_newline(self):
        assert split_lines("a\nb") == ["a", "b"]

    def test_empty(self):
        assert split_lines("") == []

    def test_blank_lines_kept(self):
        assert split_lines("\n\nx\n") == ["", "", "x"]


class TestRanges:
    def test_coalesce_merges_equal_neighbours(self):
        ranges = coalesce([JANE, JANE, CURSOR, CURSOR, CURSOR, JANE])
        assert ranges == (
            LineRange(1, 2, JANE),
            LineRange(3, 5, CURSOR),
            LineRange(6, 6, JANE),
        )

    def test_coalesce_empty(self):
        assert coalesce([]) == ()

    def test_validate_rejects_gap(self):
        with pytest.raises(InvalidAttribution):
            validate_ranges([LineRange(1, 2, JANE), LineRange(4, 5, JANE)], 5)

    def test_validate_rejects_overlap(self):
        with pytest.raises(InvalidAttribution):
            validate_ranges([LineRange(1, 3, JANE), LineRange(3, 5, JANE)], 5)

    def test_validate_rejects_short_cover(self):
        with pytest.raises(InvalidAttribution):
            validate_ranges([LineRange(1, 3, JANE)], 5)

    def test_validate_accepts_empty_file(self):
        validate_ranges([], 0)

    def test_range_length(self):
        assert len(LineRange(3, 7, JANE)) == 5


class TestAuthors:
    def test_ai_display(self):
        assert CURSOR.display_name == "cursor"
        assert CURSOR.display_mail == "<cursor/gpt-4o>"
        assert AI("claude").display_mail == "<claude>"

    def test_author_round_trip(self):
        for author in (CURSOR, JANE, Human(), AI("aider")):
            assert author_from_dict(author.to_dict()) == author

    def test_unknown_author_type(self):
        with pytest.raises(InvalidAttribution):
            author_from_dict({"type": "robot"})

    def test_ai_without_tool(self):
        with pytest.raises(InvalidAttribution):
            author_from_dict({"type": "ai"})


class TestFileAttribution:
    def test_construction_validates(self):
        with pytest.raises(InvalidAttribution):
            FileAttribution("a.py", ("x", "y"), (LineRange(1, 1, JANE),))

    def test_author_at(self):
        fa = FileAttribution.from_line_authors("a.py", ["x", "y", "z"], [JANE, CURSOR, JANE])
        assert fa.author_at(1) == JANE
        assert fa.author_at(2) == CURSOR
        assert fa.author_at(4) is None
        assert fa.has_ai()
        assert fa.authors() == [JANE, CURSOR, JANE]

    def test_author_count_must_match(self):
        with pytest.raises(InvalidAttribution):
            FileAttribution.from_line_authors("a.py", ["x"], [JANE, JANE])

    def test_dict_round_trip(self):
        fa = FileAttribution.from_line_authors("a.py", ["x", "y"], [CURSOR, JANE])
        assert FileAttribution.from_dict("a.py", fa.to_dict()) == fa


class TestAuthorshipLogEntry:
    def _va(self):
        fa = FileAttribution.from_line_authors("a.py", ["x", "y"], [JANE, CURSOR])
        prompts = {
            "p1": PromptRecord("p1", "cursor", "gpt-4o"),
            "stale": PromptRecord("stale", "cursor"),
        }
        return VirtualAttributions("base", "head", {"a.py": fa}, prompts)

    def test_only_referenced_prompts_are_kept(self):
        entry = AuthorshipLogEntry.from_virtual_attributions("c1", self._va())
        assert set(entry.prompts) == {"p1"}
        assert entry.base_commit == "base"
        assert entry.line_counts == {"a.py": 2}

    def test_dict_round_trip(self):
        entry = AuthorshipLogEntry.from_virtual_attributions("c1", self._va())
        again = AuthorshipLogEntry.from_dict(entry.to_dict())
        assert again == entry
        assert again.author_at("a.py", 2) == CURSOR
        assert again.author_at("b.py", 1) is None

    def test_bad_ranges_rejected_on_load(self):
        data = AuthorshipLogEntry.from_virtual_attributions("c1", self._va()).to_dict()
        data["files"]["a.py"]["line_count"] = 3
        with pytest.raises(InvalidAttribution):
            AuthorshipLogEntry.from_dict(data)


class TestWorkingLog:
    def test_latest_snapshot_wins(self):
        first = FileAttribution.uniform("a.py", ["x"], JANE)
        second = FileAttribution.from_line_authors("a.py", ["x", "y"], [JANE, CURSOR])
        log = WorkingLog("base", initial_files={"a.py": first})
        log.episodes.append(Episode(
            "p1", "ai", "t", {"a.py": second}, PromptRecord("p1", "cursor", "gpt-4o"),
        ))
        va = log.to_virtual_attributions("Fallback <f@x>")
        assert va.get("a.py") == second
        assert "p1" in va.prompts
        assert va.human_author_fallback == "Fallback <f@x>"
        assert va.referenced_prompts() == {"p1"}

    def test_empty_snapshot_drops_file(self):
        log = WorkingLog("base", initial_files={"a.py": FileAttribution.uniform("a.py", ["x"], JANE)})
        log.episodes.append(Episode("p2", "human", "t", {"a.py": FileAttribution("a.py", (), ())}))
        assert log.to_virtual_attributions().is_empty()

    def test_episode_round_trip(self):
        ep = Episode(
            "p1", "ai", "2024-01-01T00:00:00+00:00",
            {"a.py": FileAttribution.uniform("a.py", ["x"], CURSOR)},
            PromptRecord("p1", "cursor", "gpt-4o", human_author="Jane <jane@example.com>"),
        )
        assert Episode.from_dict(ep.to_dict()) == ep
