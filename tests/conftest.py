"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add repo root to path (for 'vimball.*' imports without installing)
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from vimball.config import VimballConfig, apply_defaults  # noqa: E402


@pytest.fixture
def vimfiles(tmp_path):
    """Empty vimfiles directory."""
    d = tmp_path / "vimfiles"
    d.mkdir()
    return d


@pytest.fixture
def make_cfg(vimfiles):
    """Build a VimballConfig rooted at the vimfiles fixture.

    Keyword arguments override config keys.
    """

    def _make(**raw):
        base = {"vimfiles": str(vimfiles), "helptags": None}
        base.update(raw)
        return VimballConfig(raw=apply_defaults(base))

    return _make


def write_source(root: Path, rel: str, text: str) -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(text.encode("utf-8"))
    return p


@pytest.fixture
def plugin_sources(vimfiles):
    """A two-file plugin below vimfiles plus its recipe in vimfiles/vimballs."""
    write_source(vimfiles, "plugin/foo.vim", "let g:loaded_foo = 103\necho 'foo'\n")
    write_source(vimfiles, "doc/foo.txt", "*foo.txt*  The foo plugin\n")
    recipe = write_source(vimfiles, "vimballs/foo.recipe", "plugin/foo.vim\n\ndoc/foo.txt\n")
    return recipe
