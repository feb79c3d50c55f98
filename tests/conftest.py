"""Shared fixtures for diskpulse tests."""

from pathlib import Path

import pytest


def _make_file(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


@pytest.fixture
def make_file():
    """Create sparse files of a given apparent size (no real disk use)."""
    return _make_file


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Point the config file somewhere empty so user settings never leak in."""
    config = tmp_path_factory.mktemp("config") / "config.json"
    monkeypatch.setenv("DISKPULSE_CONFIG", str(config))
    return config


@pytest.fixture
def sample_tree(tmp_path):
    """
    root/
      a/b.bin   10 MB
      a/c.tmp   50 MB
      d.txt      1 KB
    """
    root = tmp_path / "root"
    _make_file(root / "a" / "b.bin", 10_000_000)
    _make_file(root / "a" / "c.tmp", 50_000_000)
    _make_file(root / "d.txt", 1_000)
    return root


@pytest.fixture
def fake_home(tmp_path, monkeypatch):
    """Use a temporary directory as the home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home
