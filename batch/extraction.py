"""
Recover a file list from free-form model output.

Agents asked for "a JSON array of paths" answer in every shape imaginable:
the bare array, an array inside a code fence, a markdown bullet list, or
prose with paths sprinkled in. extract_file_list() tries those shapes in
that order and returns the first non-empty result.
"""

import json
import re
from typing import Optional

from shared.logging import get_logger

log = get_logger("batch", "extraction")

_JSON_ARRAY = re.compile(r"\[[\s\S]*?\]")
_FENCED_BLOCK = re.compile(r"```(?:json|txt|text)?\s*([\s\S]*?)```")
_BULLET = re.compile(r"^[\s]*[-*]\s+(.+)$", re.MULTILINE)
_ORDINAL = re.compile(r"^\d+[.)]\s*")
_QUOTES = re.compile(r"^[\"'`]|[\"'`]$")
_BACKTICKS = re.compile(r"^`|`$")
_KNOWN_EXTENSION = re.compile(
    r"\.(ts|tsx|js|jsx|py|java|go|rs|cpp|c|h|css|scss|html|vue|json|yaml|yml|md|txt)$",
    re.IGNORECASE,
)

MAX_PATH_LINE = 300

# Lines that talk about files rather than name one
_PROSE_MARKERS = ("File", "文件")


def extract_file_list(text: str) -> list[str]:
    """
    Return the file paths found in `text`, in document order.

    An empty list means no list was recognised. Never raises.
    """
    if not text:
        return []

    for strategy in (_from_json_array, _from_fenced_block, _from_bullets, _from_lines):
        files = strategy(text)
        if files:
            log.debug("batch.extraction.matched", strategy=strategy.__name__, count=len(files))
            return files

    log.info("batch.extraction.no_files", response_length=len(text))
    return []


def _string_items(raw: str) -> Optional[list[str]]:
    """Parse `raw` as a JSON array of non-blank strings.

    Returns None when `raw` is not JSON at all, [] when it is JSON but
    holds nothing usable.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(parsed, list):
        return []
    return [item.strip() for item in parsed if isinstance(item, str) and item.strip()]


def _from_json_array(text: str) -> list[str]:
    match = _JSON_ARRAY.search(text)
    if not match:
        return []
    return _string_items(match.group(0)) or []


def _from_fenced_block(text: str) -> list[str]:
    match = _FENCED_BLOCK.search(text)
    if not match:
        return []
    content = match.group(1)

    items = _string_items(content)
    if items is not None:
        return items

    lines = []
    for line in content.split("\n"):
        line = line.strip()
        if line and not line.startswith("//") and not line.startswith("#"):
            lines.append(line)
    return lines


def _from_bullets(text: str) -> list[str]:
    files = []
    for match in _BULLET.finditer(text):
        path = _BACKTICKS.sub("", match.group(1).strip())
        if path:
            files.append(path)
    return files


def _from_lines(text: str) -> list[str]:
    files = []
    for line in text.split("\n"):
        line = line.strip()
        if (
            not line
            or len(line) > MAX_PATH_LINE
            or any(marker in line for marker in _PROSE_MARKERS)
            or line.startswith(("//", "#", ">"))
        ):
            continue

        if "/" in line or "\\" in line or _KNOWN_EXTENSION.search(line):
            path = _QUOTES.sub("", _ORDINAL.sub("", line)).strip()
            if path:
                files.append(path)
    return files
