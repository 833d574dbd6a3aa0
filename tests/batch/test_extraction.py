"""
Tests for file list recovery from model output.
"""

from batch.extraction import extract_file_list


class TestJsonArray:
    """Bare and embedded JSON arrays."""

    def test_bare_array(self):
        assert extract_file_list('["src/a.ts", "src/b.ts"]') == ["src/a.ts", "src/b.ts"]

    def test_array_after_prose(self):
        text = 'I found these files:\n["src/a.ts", "lib/b.py"]\nDone.'
        assert extract_file_list(text) == ["src/a.ts", "lib/b.py"]

    def test_non_strings_and_blanks_dropped(self):
        assert extract_file_list('["a.ts", 3, null, "  ", " b.ts "]') == ["a.ts", "b.ts"]

    def test_array_inside_json_fence(self):
        text = 'Result:\n```json\n[\n  "src/x.tsx",\n  "src/y.tsx"\n]\n```'
        assert extract_file_list(text) == ["src/x.tsx", "src/y.tsx"]


class TestFencedBlock:
    """Code fences holding one path per line."""

    def test_plain_lines(self):
        text = "Here:\n```\nsrc/a.ts\n// comment\n# note\n\nsrc/b.ts\n```"
        assert extract_file_list(text) == ["src/a.ts", "src/b.ts"]

    def test_text_fence(self):
        text = "```text\nREADME.md\n```"
        assert extract_file_list(text) == ["README.md"]


class TestBullets:
    """Markdown bullet lists."""

    def test_dash_and_star_bullets(self):
        text = "Files:\n- `src/a.ts`\n* src/b.ts\n"
        assert extract_file_list(text) == ["src/a.ts", "src/b.ts"]


class TestLines:
    """Loose lines that look like paths."""

    def test_path_like_lines(self):
        text = "1. src/a.ts\n2) 'lib/util.py'\nnotes.md\nnothing here"
        assert extract_file_list(text) == ["src/a.ts", "lib/util.py", "notes.md"]

    def test_prose_and_comment_lines_skipped(self):
        text = "File list follows\n// src/skip.ts\n> quoted/path.ts\nsrc/keep.ts"
        assert extract_file_list(text) == ["src/keep.ts"]

    def test_overlong_line_skipped(self):
        text = "src/" + "x" * 400 + ".ts\nsrc/ok.ts"
        assert extract_file_list(text) == ["src/ok.ts"]


class TestNoMatch:
    """Inputs with no recognisable list."""

    def test_empty_text(self):
        assert extract_file_list("") == []

    def test_plain_prose(self):
        assert extract_file_list("I could not find any matching files.") == []

    def test_empty_json_array(self):
        assert extract_file_list("[]") == []

    def test_order_preserved_and_duplicates_kept(self):
        assert extract_file_list('["b.ts", "a.ts", "b.ts"]') == ["b.ts", "a.ts", "b.ts"]
