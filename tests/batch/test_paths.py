"""
Tests for directory mentions and file selection.
"""

from batch.files import IgnoreFilter
from batch.paths import (
    extract_directory,
    filter_files_by_extension,
    get_filtered_files,
    validate_directory,
)


class TestExtractDirectory:
    """Tests for extract_directory()."""

    def test_simple_mention(self):
        info = extract_directory("@/src/services add logging")

        assert info.has_path
        assert info.directory == "src/services"
        assert info.cleaned_prompt == "add logging"

    def test_mention_in_middle(self):
        info = extract_directory("please refactor @/lib now")

        assert info.directory == "lib"
        assert info.cleaned_prompt == "please refactor  now"

    def test_trailing_punctuation_not_part_of_path(self):
        info = extract_directory("look at @/src/app, then fix it")

        assert info.directory == "src/app"

    def test_escaped_space(self):
        info = extract_directory(r"@/my\ docs translate")

        assert info.directory == "my docs"
        assert info.cleaned_prompt == "translate"

    def test_reserved_mentions_skipped(self):
        info = extract_directory("check @problems and @terminal then @/src")

        assert info.directory == "src"

    def test_url_and_commit_skipped(self):
        info = extract_directory("see @https://example.com and @abc1234 for context")

        assert not info.has_path
        assert info.directory == ""
        assert info.cleaned_prompt == "see @https://example.com and @abc1234 for context"

    def test_escaped_at_ignored(self):
        info = extract_directory(r"mail me \@/src please")

        assert not info.has_path

    def test_no_mention(self):
        info = extract_directory("summarise every file")

        assert not info.has_path
        assert info.cleaned_prompt == "summarise every file"

    def test_first_path_wins(self):
        info = extract_directory("@/a and @/b")

        assert info.directory == "a"
        assert info.cleaned_prompt == "and @/b"


class TestValidateDirectory:
    """Tests for validate_directory()."""

    def test_existing_directory(self, project_dir):
        assert validate_directory("src", project_dir)

    def test_file_is_not_directory(self, project_dir):
        assert not validate_directory("src/a.ts", project_dir)

    def test_missing(self, project_dir):
        assert not validate_directory("nope", project_dir)

    def test_absolute(self, project_dir):
        assert validate_directory(str(project_dir / "docs"), project_dir)


class TestGetFilteredFiles:
    """Tests for get_filtered_files()."""

    def test_lists_relative_files(self, project_dir):
        files = get_filtered_files("src", project_dir)

        assert files == ["src/a.ts", "src/b.ts", "src/util/helpers.py"]

    def test_project_root_excludes_ignored_directories(self, project_dir):
        files = get_filtered_files("", project_dir)

        assert "docs/readme.md" in files
        assert not any("node_modules" in f for f in files)
        assert not any(f.endswith("/") for f in files)

    def test_ignore_filter_applied(self, project_dir):
        ignore = IgnoreFilter(project_dir, patterns=["*.ts"])

        files = get_filtered_files("src", project_dir, ignore_filter=ignore)

        assert files == ["src/util/helpers.py"]

    def test_limit(self, project_dir):
        files = get_filtered_files("src", project_dir, limit=2)

        # the limit counts directory entries too
        assert len(files) <= 2

    def test_empty_directory(self, temp_dir):
        (temp_dir / "empty").mkdir()

        assert get_filtered_files("empty", temp_dir) == []


class TestFilterByExtension:
    """Tests for filter_files_by_extension()."""

    def test_filters_case_insensitively(self):
        files = ["a.ts", "b.TS", "c.py", "d"]

        assert filter_files_by_extension(files, [".ts"]) == ["a.ts", "b.TS"]

    def test_empty_extensions_keep_all(self):
        files = ["a.ts", "c.py"]

        assert filter_files_by_extension(files, []) == files
