"""Tests for byte-range removal, the safe rewriter and diffs."""

from pathlib import Path

import pytest

from codeclear.apply_models import ByteRange, SkipReason
from codeclear.diff_engine import DiffEngine
from codeclear.models import Finding
from codeclear.parser import PythonDeclarationParser
from codeclear.rewriter import SafeRewriter, collapse_blank_lines, remove_ranges

SOURCE = b"def keep():\n    return 1\n\n\ndef drop():\n    return 2\n\n\ndef also_keep():\n    return 3\n"


def _range(id_: str, data: bytes, snippet: bytes) -> ByteRange:
    offset = data.index(snippet)
    return ByteRange(id=id_, offset=offset, length=len(snippet), label=id_)


class TestRemoveRanges:
    def test_round_trip(self):
        r = _range("drop", SOURCE, b"def drop():\n    return 2\n")
        removal = remove_ranges(SOURCE, [r])
        assert removal.applied == ["drop"]
        restored = removal.content[:r.offset] + SOURCE[r.offset:r.end] + removal.content[r.offset:]
        assert restored == SOURCE

    def test_multiple_ranges_keep_offsets_valid(self):
        data = b"aaaBBBcccDDDeee"
        ranges = [ByteRange("b", 3, 3), ByteRange("d", 9, 3)]
        removal = remove_ranges(data, ranges)
        assert removal.content == b"aaaccceee"
        assert sorted(removal.applied) == ["b", "d"]
        assert removal.cuts == [3, 6]

    def test_input_order_does_not_matter(self):
        data = b"0123456789"
        forward = remove_ranges(data, [ByteRange("a", 1, 2), ByteRange("b", 5, 2)])
        backward = remove_ranges(data, [ByteRange("b", 5, 2), ByteRange("a", 1, 2)])
        assert forward.content == backward.content == b"034789"

    def test_partial_overlap_skips_both(self):
        data = b"0123456789"
        removal = remove_ranges(data, [ByteRange("a", 1, 4), ByteRange("b", 3, 4)])
        assert removal.content == data
        assert removal.applied == []
        reasons = {s.range.id: (s.reason, s.conflicts_with) for s in removal.skipped}
        assert reasons == {"a": (SkipReason.OVERLAP, ("b",)), "b": (SkipReason.OVERLAP, ("a",))}

    def test_nested_range_keeps_outer(self):
        data = b"class A:\n    def m(self):\n        pass\n\nx = 1\n"
        outer = _range("A", data, b"class A:\n    def m(self):\n        pass\n")
        inner = _range("A.m", data, b"    def m(self):\n        pass\n")
        removal = remove_ranges(data, [inner, outer])
        assert removal.applied == ["A"]
        assert removal.content == b"\nx = 1\n"
        assert [(s.range.id, s.reason) for s in removal.skipped] == [("A.m", SkipReason.OVERLAP)]

    def test_out_of_bounds_never_clamped(self):
        data = b"short"
        removal = remove_ranges(data, [ByteRange("far", 3, 10), ByteRange("ok", 0, 1)])
        assert removal.content == b"hort"
        assert [(s.range.id, s.reason) for s in removal.skipped] == [("far", SkipReason.OUT_OF_BOUNDS)]

    @pytest.mark.parametrize("offset,length", [(-1, 2), (2, 0), (2, -3)])
    def test_invalid_ranges(self, offset, length):
        removal = remove_ranges(b"abcdef", [ByteRange("bad", offset, length)])
        assert removal.content == b"abcdef"
        assert removal.skipped[0].reason is SkipReason.OUT_OF_BOUNDS

    def test_invalid_range_does_not_block_valid_one(self):
        removal = remove_ranges(b"abcdef", [ByteRange("bad", 2, 100), ByteRange("ok", 2, 2)])
        assert removal.content == b"abef"
        assert removal.applied == ["ok"]


class TestCollapseBlankLines:
    def test_collapses_run_at_cut(self):
        content = b"a = 1\n\n\n\n\nb = 2\n"
        assert collapse_blank_lines(content, [7]) == b"a = 1\n\n\nb = 2\n"

    def test_leaves_distant_runs_alone(self):
        content = b"a = 1\n\n\n\n\nb = 2\nc = 3\n"
        assert collapse_blank_lines(content, [len(content) - 1]) == content

    def test_empty(self):
        assert collapse_blank_lines(b"", [0]) == b""


class TestSafeRewriter:
    def _findings(self, root: Path, source: str, names, rel: str = "pkg/mod.py"):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        decls, _ = PythonDeclarationParser(root).parse_file(path)
        return [Finding(declaration=d, reason="", risk_score=5) for d in decls if d.name in names]

    def test_rewrite_does_not_touch_disk(self, temp_dir: Path):
        findings = self._findings(temp_dir, SOURCE.decode(), {"drop"})
        rewriter = SafeRewriter(root=temp_dir)
        result = rewriter.rewrite(findings)
        assert result.ok
        assert result.removed_count == 1
        assert (temp_dir / "pkg/mod.py").read_bytes() == SOURCE
        assert result.files[0].modified == b"def keep():\n    return 1\n\n\ndef also_keep():\n    return 3\n"

    def test_persist_writes_changed_files(self, temp_dir: Path):
        findings = self._findings(temp_dir, SOURCE.decode(), {"drop", "also_keep"})
        rewriter = SafeRewriter(root=temp_dir)
        written = rewriter.persist(rewriter.rewrite(findings))
        assert written == ["pkg/mod.py"]
        assert (temp_dir / "pkg/mod.py").read_bytes() == b"def keep():\n    return 1\n\n\n"

    def test_without_collapse(self, temp_dir: Path):
        source = "a = 1\n\n\nb = 2\n\n\nc = 3\n"
        findings = self._findings(temp_dir, source, {"b"})
        result = SafeRewriter(root=temp_dir, collapse_blank_lines=False).rewrite(findings)
        assert result.files[0].modified == b"a = 1\n\n\n\n\nc = 3\n"
        collapsed = SafeRewriter(root=temp_dir).rewrite(findings)
        assert collapsed.files[0].modified == b"a = 1\n\n\nc = 3\n"

    def test_missing_file_is_a_file_error(self, temp_dir: Path):
        findings = self._findings(temp_dir, SOURCE.decode(), {"drop"})
        (temp_dir / "pkg/mod.py").unlink()
        result = SafeRewriter(root=temp_dir).rewrite(findings)
        assert not result.ok
        assert result.errors[0].file_path == "pkg/mod.py"

    def test_thread_pool_matches_sequential(self, temp_dir: Path):
        findings = []
        for i in range(6):
            findings += self._findings(temp_dir, SOURCE.decode(), {"drop"}, rel=f"pkg/mod{i}.py")
        sequential = SafeRewriter(root=temp_dir).rewrite(findings)
        parallel = SafeRewriter(root=temp_dir, max_workers=4).rewrite(findings)
        assert [f.file_path for f in parallel.files] == [f.file_path for f in sequential.files]
        assert [f.modified for f in parallel.files] == [f.modified for f in sequential.files]
        assert parallel.removed_count == 6

    def test_skips_are_reported_per_file(self, temp_dir: Path):
        source = "class Box:\n    def open(self):\n        pass\n"
        findings = self._findings(temp_dir, source, {"Box", "open"})
        result = SafeRewriter(root=temp_dir).rewrite(findings)
        assert result.removed_count == 1
        assert len(result.skipped) == 1
        assert result.skipped[0].file_path == "pkg/mod.py"
        assert result.skipped[0].range.label == "pkg.mod.Box.open"

    def test_diff_is_attached(self, temp_dir: Path):
        findings = self._findings(temp_dir, SOURCE.decode(), {"drop"})
        result = SafeRewriter(root=temp_dir).rewrite(findings)
        diff = result.files[0].diff
        assert diff.startswith("--- a/pkg/mod.py\n+++ b/pkg/mod.py\n")
        assert "-def drop():\n" in diff


class TestDiffEngine:
    def test_line_diff_markers(self):
        lines = DiffEngine().line_diff("a\nb\nc\n", "a\nc\nd\n")
        assert lines == ["  a", "- b", "  c", "+ d"]

    def test_line_diff_identical(self):
        assert DiffEngine().line_diff("x\ny", "x\ny") == ["  x", "  y"]

    def test_create_diff_empty_when_equal(self):
        assert DiffEngine().create_diff("same\n", "same\n") == ""

    def test_create_diff_without_trailing_newline(self):
        diff = DiffEngine().create_diff("a", "b", "f.py")
        assert diff.endswith("+b\n")

    def test_preview(self, temp_dir: Path):
        path = temp_dir / "mod.py"
        path.write_bytes(SOURCE)
        decls, _ = PythonDeclarationParser(temp_dir).parse_file(path)
        findings = [Finding(declaration=d, reason="", risk_score=5) for d in decls if d.name == "drop"]
        preview = DiffEngine().preview(SafeRewriter(root=temp_dir).rewrite(findings))
        assert preview.startswith("Proposed removals: 1 declarations in 1 file(s)")
        assert "[MODIFY] mod.py" in preview
