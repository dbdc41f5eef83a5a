from __future__ import annotations

import os

import pytest

from foundry.core.backup.api import BackupManager
from foundry.core.config.paths import ConfigFsPaths
from foundry.core.config.store import ConfigStore
from tests.helpers.fakes import FakeClock


@pytest.fixture
def fs(tmp_path):
    """
    Isolated nix-foundry root under tmp_path (never the real ~/.config).
    """
    root = tmp_path / "nix-foundry"
    os.makedirs(root, exist_ok=True)
    return ConfigFsPaths(root=str(root))


@pytest.fixture
def store(fs):
    return ConfigStore(fs=fs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backups(fs, clock):
    return BackupManager(fs.root, fs.backups_dir, clock=clock)
