"""
Directory mentions in legacy prompts, and the file set they select.

A prompt like "@/src/services add logging" names the directory
src/services; the rest of the prompt is the instruction.
"""

import re
from pathlib import Path
from typing import Optional

from batch.files import IgnoreFilter, LocalFileLister, is_path_in_ignored_directory
from batch.models import PathInfo
from shared.logging import get_logger

log = get_logger("batch", "paths")

# @/path (with "\ " escaped spaces), @scheme://url, @<commit hash>,
# @problems, @git-changes, @terminal; optional trailing punctuation, then
# whitespace or end of text.
MENTION_PATTERN = re.compile(
    r"(?<!\\)@("
    r"(?:/|\w+://)(?:[^\s\\]|\\ )+?"
    r"|[a-f0-9]{7,40}\b"
    r"|problems\b"
    r"|git-changes\b"
    r"|terminal\b"
    r")(?=[.,;:!?]?(?=\s|$))"
)

RESERVED_MENTIONS = frozenset({"problems", "git-changes", "terminal"})
_COMMIT_HASH = re.compile(r"^[a-f0-9]{7,40}$")


def extract_directory(prompt: str, cwd: Optional[Path] = None) -> PathInfo:
    """
    Pull the first directory mention out of `prompt`.

    `cwd` is accepted for symmetry with the file helpers; the returned
    directory is always relative to it.
    """
    for match in MENTION_PATTERN.finditer(prompt):
        token = match.group(0)
        value = token.strip()[1:].strip()

        if (
            value in RESERVED_MENTIONS
            or value.startswith(("http://", "https://"))
            or _COMMIT_HASH.match(value)
        ):
            continue

        if value.startswith("/"):
            directory = value.replace("\\ ", " ")[1:]
            cleaned = prompt.replace(token, "", 1).strip()
            return PathInfo(directory=directory, has_path=True, cleaned_prompt=cleaned)

    return PathInfo(directory="", has_path=False, cleaned_prompt=prompt)


def _absolute(directory: str, cwd: Path) -> Path:
    path = Path(directory)
    return path if path.is_absolute() else Path(cwd) / path


def validate_directory(directory: str, cwd: Path) -> bool:
    """True if `directory` (relative to cwd, or absolute) is an existing directory."""
    try:
        return _absolute(directory, cwd).is_dir()
    except OSError:
        return False


def get_filtered_files(
    directory: str,
    cwd: Path,
    lister: Optional[LocalFileLister] = None,
    ignore_filter: Optional[IgnoreFilter] = None,
    limit: int = 1000,
) -> list[str]:
    """
    Files under `directory`, as POSIX paths relative to cwd.

    Directories, built-in ignored directories and paths matched by the
    ignore filter are dropped.
    """
    cwd = Path(cwd)
    lister = lister or LocalFileLister()
    absolute = _absolute(directory, cwd)

    entries, limit_reached = lister.list(absolute, True, limit)
    if limit_reached:
        log.warning("batch.paths.limit_reached", directory=directory, limit=limit)

    files = []
    for entry in entries:
        if entry.endswith("/"):
            continue
        try:
            rel = Path(entry).relative_to(cwd).as_posix()
        except ValueError:
            rel = Path(entry).as_posix()
        if ignore_filter is not None and ignore_filter.is_ignored(rel):
            continue
        if is_path_in_ignored_directory(rel):
            continue
        files.append(rel)

    log.info("batch.paths.files_listed", directory=directory or ".", count=len(files))
    return files


def filter_files_by_extension(files: list[str], extensions: list[str]) -> list[str]:
    """Keep files whose suffix is in `extensions` (e.g. [".ts", ".js"]); empty keeps all."""
    if not extensions:
        return files
    wanted = {ext.lower() for ext in extensions}
    return [f for f in files if Path(f).suffix.lower() in wanted]
