"""Unit tests for review diffs."""
from codeloop.edits import Diff, DiffLine, collapse_runs_of_sames, unified_diff


def ops(diff: Diff) -> list[tuple[str, str]]:
    return [(line.op, line.text) for line in diff.lines]


class TestDiff:
    """Tests for line diffs."""

    def test_identical(self):
        diff = Diff.from_lines(["a", "b"], ["a", "b"])

        assert ops(diff) == [("same", "a"), ("same", "b")]
        assert not diff.has_changes

    def test_insertion(self):
        diff = Diff.from_lines(["a", "c"], ["a", "b", "c"])
        assert ops(diff) == [("same", "a"), ("insert", "b"), ("same", "c")]

    def test_deletion(self):
        diff = Diff.from_lines(["a", "b", "c"], ["a", "c"])
        assert ops(diff) == [("same", "a"), ("delete", "b"), ("same", "c")]

    def test_replacement_lists_inserts_first(self):
        diff = Diff.from_lines(["a", "old", "c"], ["a", "new", "c"])
        assert ops(diff) == [("same", "a"), ("insert", "new"), ("delete", "old"), ("same", "c")]

    def test_from_empty(self):
        diff = Diff.from_lines([], ["x", "y"])
        assert ops(diff) == [("insert", "x"), ("insert", "y")]

    def test_as_text(self):
        diff = Diff.from_lines(["a", "old"], ["a", "new"])
        assert diff.as_text() == "  a\n+ new\n- old"


class TestCollapse:
    """Tests for hiding long unchanged runs."""

    def test_long_run_collapsed(self):
        lines = [DiffLine.same(str(i)) for i in range(30)] + [DiffLine.insert("x")]

        collapsed = collapse_runs_of_sames(lines, min_run=20, keep=5)

        assert [line.text for line in collapsed[:5]] == ["0", "1", "2", "3", "4"]
        assert collapsed[5].op == "collapsed"
        assert len(collapsed[5].children) == 20
        assert collapsed[-1].op == "insert"
        assert len(collapsed) == 12

    def test_short_run_kept(self):
        lines = [DiffLine.same(str(i)) for i in range(5)]
        assert collapse_runs_of_sames(lines, min_run=20, keep=5) == lines

    def test_collapse_optional(self):
        before = [str(i) for i in range(40)]
        after = before + ["new"]

        assert len(Diff.from_lines(before, after, collapse_sames=False).lines) == 41
        assert len(Diff.from_lines(before, after).lines) < 41


class TestUnifiedDiff:
    """Tests for unified patch output."""

    def test_headers_and_hunk(self):
        patch = unified_diff("a\nb\n", "a\nc\n", filename="f.txt")

        assert patch.startswith("--- a/f.txt\n+++ b/f.txt")
        assert "-b" in patch
        assert "+c" in patch

    def test_no_changes(self):
        assert unified_diff("same", "same") == ""
