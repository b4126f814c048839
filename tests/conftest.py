"""Shared fixtures for filekv tests."""
import os

import pytest

from filekv.file_kv import FileMap


@pytest.fixture
def store_dir(tmp_path):
    """Directory used as the backing store (not created yet)."""
    return tmp_path / "store"


@pytest.fixture
def store(store_dir):
    """A fresh FileMap over an empty directory."""
    with FileMap(store_dir) as fm:
        yield fm


def entry_files(directory, suffix=".dat"):
    """Names of the entry files currently on disk."""
    return sorted(f for f in os.listdir(directory) if f.endswith(suffix))
