"""Tests for blame argument parsing, porcelain parsing and rendering helpers."""

import pytest

from git_provenance.blame import (
    BlameOptions,
    display_width,
    native_blame_args,
    parse_blame_args,
    parse_porcelain,
    quote_path,
    render_porcelain,
    unquote_path,
)
from git_provenance.errors import BlameUsageError


class TestParseBlameArgs:
    def test_path_only(self):
        opts = parse_blame_args(["a.py"])
        assert opts.path == "a.py"
        assert opts.revision is None
        assert opts.output_mode == "default"

    def test_revision_and_path(self):
        opts = parse_blame_args(["HEAD~2", "a.py"])
        assert (opts.revision, opts.path) == ("HEAD~2", "a.py")

    def test_dashdash(self):
        opts = parse_blame_args(["-s", "HEAD", "--", "-odd-name.py"])
        assert (opts.revision, opts.path) == ("HEAD", "-odd-name.py")
        assert opts.suppress_author

    @pytest.mark.parametrize("argv", [
        ["-L", "2,5", "a.py"],
        ["-L2,5", "a.py"],
    ])
    def test_line_range_forms(self, argv):
        assert parse_blame_args(argv).line_ranges == ["2,5"]

    def test_repeated_ranges(self):
        opts = parse_blame_args(["-L", "1,2", "-L", "/def/,+3", "a.py"])
        assert opts.line_ranges == ["1,2", "/def/,+3"]

    def test_short_bundle(self):
        opts = parse_blame_args(["-sn", "a.py"])
        assert opts.suppress_author and opts.show_number
        assert not opts.show_name

    def test_bundle_ending_in_range(self):
        opts = parse_blame_args(["-fL10,20", "a.py"])
        assert opts.show_name
        assert opts.line_ranges == ["10,20"]

    def test_bundle_with_separate_range(self):
        opts = parse_blame_args(["-eL", "3,4", "a.py"])
        assert opts.show_email
        assert opts.line_ranges == ["3,4"]
        assert opts.path == "a.py"

    @pytest.mark.parametrize("argv, expected", [
        (["--abbrev", "4", "a.py"], 4),
        (["--abbrev=12", "a.py"], 12),
        (["--abbrev=0", "a.py"], 0),
        (["--no-abbrev", "a.py"], 0),
        (["--abbrev", "a.py"], None),
    ])
    def test_abbrev(self, argv, expected):
        opts = parse_blame_args(argv)
        assert opts.abbrev == expected
        assert opts.path == "a.py"

    def test_bad_abbrev(self):
        with pytest.raises(BlameUsageError):
            parse_blame_args(["--abbrev=x", "a.py"])

    @pytest.mark.parametrize("argv", [
        ["--date", "short", "a.py"],
        ["--date=short", "a.py"],
    ])
    def test_date_forms(self, argv):
        assert parse_blame_args(argv).date == "short"

    @pytest.mark.parametrize("argv", [
        ["--contents", "-", "a.py"],
        ["--contents=-", "a.py"],
    ])
    def test_contents_forms(self, argv):
        opts = parse_blame_args(argv)
        assert opts.contents == "-"
        assert opts.path == "a.py"

    def test_engine_flags(self):
        opts = parse_blame_args(["--mark-unknown", "--root", "-b", "-l", "-t", "a.py"])
        assert opts.mark_unknown and opts.show_root and opts.blank_boundary
        assert opts.long_rev and opts.raw_timestamp

    def test_unknown_flags_pass_through(self):
        opts = parse_blame_args(["-w", "-M", "--ignore-rev", "abc123", "a.py"])
        assert opts.passthrough == ["-w", "-M", "--ignore-rev", "abc123"]
        assert opts.path == "a.py"

    @pytest.mark.parametrize("argv", [
        [],
        ["a", "b", "c"],
        ["-L"],
        ["--date"],
        ["HEAD", "--", "a.py", "b.py"],
    ])
    def test_usage_errors(self, argv):
        with pytest.raises(BlameUsageError):
            parse_blame_args(argv)

    @pytest.mark.parametrize("flag, mode", [
        ("--porcelain", "porcelain"),
        ("-p", "porcelain"),
        ("--line-porcelain", "line-porcelain"),
        ("--incremental", "incremental"),
    ])
    def test_output_modes(self, flag, mode):
        assert parse_blame_args([flag, "a.py"]).output_mode == mode


class TestNativeArgs:
    def test_default_mode_uses_line_porcelain(self):
        opts = parse_blame_args(["-s", "-L", "2,3", "--root", "--date=short", "HEAD", "a.py"])
        assert native_blame_args(opts) == [
            "blame", "--line-porcelain", "-L", "2,3", "--root", "--date=short",
            "HEAD", "--", "a.py",
        ]

    def test_incremental(self):
        assert native_blame_args(parse_blame_args(["--incremental", "a.py"])) == [
            "blame", "--incremental", "--", "a.py",
        ]

    def test_contents(self):
        opts = BlameOptions(path="a.py", contents="-", porcelain=True)
        assert native_blame_args(opts) == ["blame", "--porcelain", "--contents", "-", "--", "a.py"]


class TestPaths:
    def test_plain_path_unquoted(self):
        assert quote_path("src/a.py") == "src/a.py"
        assert unquote_path("src/a.py") == "src/a.py"

    def test_control_characters(self):
        assert quote_path("a\tb") == '"a\\tb"'
        assert unquote_path('"a\\tb"') == "a\tb"

    def test_non_ascii_is_octal(self):
        assert quote_path("café") == '"caf\\303\\251"'
        assert unquote_path('"caf\\303\\251"') == "café"

    def test_display_width(self):
        assert display_width("abc") == 3
        assert display_width("日本") == 4
        assert display_width("é") == 1


SHA = "a" * 40
PORCELAIN = "".join(line + "\n" for line in [
    f"{SHA} 1 1 3",
    "author Alice",
    "author-mail <alice@example.com>",
    "author-time 1577930645",
    "author-tz +0100",
    "committer Alice",
    "committer-mail <alice@example.com>",
    "committer-time 1577930645",
    "committer-tz +0100",
    "summary init",
    "boundary",
    "filename f.txt",
    "\tone",
    f"{SHA} 2 2",
    "\ttwo",
    f"{SHA} 3 3",
    "\tthree",
])


class TestPorcelain:
    def test_parse(self):
        groups = parse_porcelain(PORCELAIN)
        assert len(groups) == 1
        assert [line.final for line in groups[0].lines] == [1, 2, 3]
        assert groups[0].lines[2].content == "three"
        assert "boundary" in groups[0].lines[0].details

    def test_unchanged_identities_round_trip(self):
        groups = parse_porcelain(PORCELAIN)
        assert render_porcelain(groups, {}, "porcelain") == PORCELAIN

    def test_group_split_where_identity_changes(self):
        groups = parse_porcelain(PORCELAIN)
        cursor = ("cursor", "<cursor/gpt-4o>")
        text = render_porcelain(groups, {1: None, 2: cursor, 3: cursor}, "porcelain")
        lines = text.splitlines()

        assert lines[0] == f"{SHA} 1 1 1"
        assert lines[12] == "\tone"
        assert lines[13] == f"{SHA} 2 2 2"
        assert lines[14] == "author cursor"
        assert lines[15] == "author-mail <cursor/gpt-4o>"
        assert lines[16] == "author-time 1577930645"
        assert "filename f.txt" in lines[17:27]
        assert lines[-3:] == ["\ttwo", f"{SHA} 3 3", "\tthree"]

    def test_incremental_expands_counts(self):
        raw = "".join(line + "\n" for line in [
            f"{SHA} 4 1 2",
            "author Alice",
            "summary init",
            "filename f.txt",
        ])
        groups = parse_porcelain(raw, incremental=True)
        assert [(line.orig, line.final) for line in groups[0].lines] == [(4, 1), (5, 2)]
        assert render_porcelain(groups, {}, "incremental") == raw
