from __future__ import annotations

from datetime import timedelta

import pytest

from foundry.core.backup.api import BackupManager
from foundry.core.config.models import BackupSettings, Scope
from foundry.core.errors import FilesystemError
from tests.helpers.fakes import DummyLogger, FakeClock

HOUR = 3600.0


def _populate(fs, clock: FakeClock, ages_h) -> BackupManager:
    """Create one backup per (name, age in hours), then set the clock to 'now'."""
    mgr = BackupManager(fs.root, fs.backups_dir, clock=clock)
    now = clock.time()
    for name, age in sorted(ages_h, key=lambda x: -x[1]):
        clock.set(now - age * HOUR)
        mgr.create(name)
    clock.set(now)
    return mgr


@pytest.fixture
def seeded(store):
    store.init(Scope.USER)
    return store


def test_rotate_scenario(seeded, fs, clock):
    mgr = _populate(fs, clock, [("b1h", 1), ("b2h", 2), ("b30h", 30), ("pre-restore-5h", 5)])
    deleted = mgr.rotate(max_age=timedelta(hours=24), max_count=2)
    assert deleted == ["b30h"]
    assert {e.name for e in mgr.list()} == {"b1h", "b2h", "pre-restore-5h"}


def test_count_limit_counts_regular_backups_only(seeded, fs, clock):
    mgr = _populate(fs, clock, [("n1", 1), ("pre-restore-a", 2), ("n3", 3), ("n4", 4)])
    deleted = mgr.rotate(max_age=timedelta(days=365), max_count=2)
    assert deleted == ["n4"]
    assert {e.name for e in mgr.list()} == {"n1", "n3", "pre-restore-a"}


@pytest.mark.parametrize(
    "max_age,max_count",
    [
        (timedelta(seconds=1), None),
        (None, 1),
        (timedelta(minutes=1), 1),
        (timedelta(days=1), 3),
        (timedelta(0), 0),
    ],
)
def test_safety_backups_survive_every_policy(seeded, fs, clock, max_age, max_count):
    mgr = _populate(
        fs,
        clock,
        [("r1", 1), ("r2", 48), ("pre-restore-old", 500), ("pre-restore-new", 0.5), ("r3", 1000)],
    )
    mgr.settings = BackupSettings(max_backups=1, max_age_days=1)
    mgr.rotate(max_age=max_age, max_count=max_count)
    names = {e.name for e in mgr.list()}
    assert {"pre-restore-old", "pre-restore-new"} <= names


def test_defaults_come_from_settings(seeded, fs, clock):
    mgr = _populate(fs, clock, [("a", 1), ("b", 2), ("c", 3)])
    mgr.settings = BackupSettings(max_backups=1)
    assert mgr.rotate() == ["b", "c"]


def test_deletion_failures_are_logged_and_skipped(seeded, fs, clock, monkeypatch):
    mgr = _populate(fs, clock, [("a", 1), ("b", 2), ("c", 3)])
    mgr.logger = DummyLogger()
    real_delete = mgr.delete

    def _flaky(name):
        if name == "b":
            raise FilesystemError("Unable to delete backup.", name=name)
        real_delete(name)

    monkeypatch.setattr(mgr, "delete", _flaky)
    assert mgr.rotate(max_count=1) == ["c"]
    assert {e.name for e in mgr.list()} == {"a", "b"}
    assert any("name=b" in m for m in mgr.logger.messages)
