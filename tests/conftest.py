"""
Pytest configuration and shared fixtures for all tests.

This module provides shared fixtures for the test suite, including:
- A temporary site layout (content, public and data directories)
- A configuration dictionary pointing at that layout
- Helpers for writing source documents
"""

import pytest

from config import get_default_config, merge_config


SITE_URL = "http://blog.example.com"


@pytest.fixture
def site_dirs(tmp_path):
    """Create content/public/data directories under tmp_path."""
    dirs = {
        "source_dir": tmp_path / "content",
        "output_dir": tmp_path / "public",
        "data_dir": tmp_path / "data",
    }
    dirs["source_dir"].mkdir()
    return dirs


@pytest.fixture
def test_config(site_dirs):
    """Default configuration pointed at the temporary site."""
    return merge_config(get_default_config(), {
        "site": {"url": SITE_URL, "title": "Example Blog"},
        "paths": {key: str(path) for key, path in site_dirs.items()},
        "watch": {"debounce_seconds": 0.05, "max_wait_seconds": 0.5, "poll_interval": 0.05},
    })


@pytest.fixture
def write_document(site_dirs):
    """Write a Markdown document into the source directory.

    Returns a function ``write(relative_path, body, **front_matter)`` that
    returns the written path.
    """
    def write(relative_path, body="", **front_matter):
        path = site_dirs["source_dir"] / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        text = body
        if front_matter:
            lines = [f"{key}: {value}" for key, value in front_matter.items()]
            text = "---\n" + "\n".join(lines) + "\n---\n" + body
        path.write_text(text, encoding="utf-8")
        return path

    return write
