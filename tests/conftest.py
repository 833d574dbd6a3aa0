"""
Root-level shared fixtures for all batchloop tests.

Module-specific fixtures live in their respective conftest.py files.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Automatically cleaned up after test completion.
    """
    temp_path = Path(tempfile.mkdtemp(prefix="batchloop_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def project_dir(temp_dir) -> Path:
    """A small project tree to list, discover and process."""
    files = {
        "src/a.ts": "export const a = 1\n",
        "src/b.ts": "export const b = 2\n",
        "src/util/helpers.py": "def helper():\n    pass\n",
        "docs/readme.md": "# docs\n",
        "node_modules/lib/index.js": "module.exports = {}\n",
    }
    for rel, content in files.items():
        path = temp_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return temp_dir


def pytest_configure(config):
    """Configure pytest for async tests."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )
