"""
Tests for directory listing and ignore rules.
"""

from batch.files import IgnoreFilter, LocalFileLister, is_path_in_ignored_directory


class TestIgnoredDirectories:
    """Tests for is_path_in_ignored_directory()."""

    def test_ignored_component(self):
        assert is_path_in_ignored_directory("node_modules/lib/index.js")
        assert is_path_in_ignored_directory("src/__pycache__/a.pyc")

    def test_file_name_is_not_a_directory(self):
        assert not is_path_in_ignored_directory("src/build")

    def test_regular_path(self):
        assert not is_path_in_ignored_directory("src/app/main.py")


class TestLocalFileLister:
    """Tests for LocalFileLister."""

    def test_recursive_listing_marks_directories(self, project_dir):
        entries, limit_reached = LocalFileLister().list(project_dir / "src")

        base = (project_dir / "src").as_posix()
        assert not limit_reached
        assert entries == [
            f"{base}/util/",
            f"{base}/a.ts",
            f"{base}/b.ts",
            f"{base}/util/helpers.py",
        ]

    def test_prunes_ignored_directories(self, project_dir):
        entries, _ = LocalFileLister().list(project_dir)

        assert not any("node_modules" in e for e in entries)

    def test_non_recursive(self, project_dir):
        entries, _ = LocalFileLister().list(project_dir / "src", recursive=False)

        assert not any(e.endswith("helpers.py") for e in entries)

    def test_limit_reached(self, project_dir):
        entries, limit_reached = LocalFileLister().list(project_dir / "src", limit=2)

        assert limit_reached
        assert len(entries) == 2


class TestIgnoreFilter:
    """Tests for IgnoreFilter."""

    def test_reads_ignore_file(self, temp_dir):
        (temp_dir / ".batchignore").write_text("# generated\n\n*.log\ndist-old/\n")

        ignore = IgnoreFilter(temp_dir)

        assert ignore.patterns == ["*.log", "dist-old/"]
        assert ignore.is_ignored("debug.log")
        assert ignore.is_ignored("deep/nested/trace.log")
        assert ignore.is_ignored("dist-old/bundle.js")
        assert not ignore.is_ignored("src/main.py")

    def test_missing_ignore_file(self, temp_dir):
        ignore = IgnoreFilter(temp_dir)

        assert ignore.patterns == []
        assert not ignore.is_ignored("anything.txt")

    def test_custom_file_name(self, temp_dir):
        (temp_dir / ".myignore").write_text("secret.txt\n")

        assert IgnoreFilter(temp_dir, ".myignore").is_ignored("a/secret.txt")

    def test_path_pattern_matches_relative_path(self, temp_dir):
        ignore = IgnoreFilter(temp_dir, patterns=["src/gen/*.ts"])

        assert ignore.is_ignored("src/gen/api.ts")
        assert not ignore.is_ignored("src/api.ts")

    def test_absolute_paths(self, temp_dir):
        ignore = IgnoreFilter(temp_dir, patterns=["*.md"])

        assert ignore.is_ignored(str(temp_dir / "docs" / "readme.md"))
        assert not ignore.is_ignored("/elsewhere/readme.md")
