from __future__ import annotations

import logging
import os
import tarfile
from logging.handlers import RotatingFileHandler

import pytest

from foundry.core.config.io import write_yaml_file
from foundry.core.config.models import Scope
from foundry.core.context import build_context
from foundry.core.errors import (
    AlreadyExistsError,
    ChecksumMismatchError,
    EncryptionError,
    FilesystemError,
    FoundryError,
    InUseError,
    NotFoundError,
    ValidationError,
    exit_code_for,
)
from foundry.core.logger import LOGGER_NAME, setup_logging


def _reset_logger(logger) -> None:
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = True


@pytest.mark.parametrize(
    "err,code,exit_code",
    [
        (NotFoundError("x"), "not_found", 3),
        (AlreadyExistsError("x"), "already_exists", 4),
        (ValidationError("x"), "validation_error", 2),
        (ChecksumMismatchError("x"), "checksum_mismatch", 5),
        (EncryptionError("x"), "encryption_error", 6),
        (FilesystemError("x"), "io_error", 1),
        (InUseError("x"), "in_use", 7),
    ],
)
def test_error_codes_and_exit_codes(err, code, exit_code):
    assert isinstance(err, FoundryError)
    assert err.code == code
    assert exit_code_for(err) == exit_code


def test_error_carries_context_and_serializes():
    err = NotFoundError("Backup 'a' not found.", name="a", dir="/tmp/backups")
    assert "name=a" in str(err)
    d = err.to_dict()
    assert d["code"] == "not_found"
    assert d["context"] == {"name": "a", "dir": "/tmp/backups"}
    assert exit_code_for(RuntimeError("boom")) == 1


def test_setup_logging_is_idempotent(tmp_path):
    logger = setup_logging(str(tmp_path / "logs"), "debug")
    n = len(logger.handlers)
    again = setup_logging(str(tmp_path / "logs"), "debug")
    assert again is logger
    assert len(again.handlers) == n
    assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
    assert logger.level == logging.DEBUG
    assert logger.name == LOGGER_NAME
    _reset_logger(logger)


def test_build_context_wires_components(fs, tmp_path):
    ctx = build_context(root=fs.root, log=False)
    assert ctx.backups.backup_dir == os.path.abspath(fs.backups_dir)
    assert ctx.backups.key_provider is None
    ctx.store.init(Scope.USER)
    assert ctx.resolver.resolve_user().name == "config"
    entry = ctx.backups.create("wired")
    assert entry.name == "wired"


def test_setup_logging_applies_file_settings_and_retargets(tmp_path):
    logger = setup_logging(str(tmp_path / "one"), "warn", file_name="nf.log", fmt="%(levelname)s::%(message)s")
    assert logger.level == logging.WARNING
    logger.warning("rotated name=a")
    logger.info("dropped")
    for h in logger.handlers:
        h.flush()
    assert (tmp_path / "one" / "nf.log").read_text(encoding="utf-8") == "WARNING::rotated name=a\n"

    setup_logging(str(tmp_path / "two"), "info", max_bytes=4096, backup_count=1)
    files = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(files) == 1
    assert files[0].baseFilename == str(tmp_path / "two" / "foundry.log")
    assert (files[0].maxBytes, files[0].backupCount) == (4096, 1)
    _reset_logger(logger)


def test_build_context_uses_logging_section(fs):
    write_yaml_file(
        fs.settings_file,
        {"logging": {"level": "debug", "fileName": "nf.log", "format": "%(levelname)s %(message)s", "backupCount": 2}},
    )
    ctx = build_context(root=fs.root)
    try:
        (fh,) = [h for h in ctx.logger.handlers if isinstance(h, RotatingFileHandler)]
        assert fh.baseFilename == os.path.join(os.path.abspath(fs.logs_dir), "nf.log")
        assert fh.backupCount == 2
        assert ctx.logger.level == logging.DEBUG
    finally:
        _reset_logger(ctx.logger)


def test_home_relative_key_path_is_kept_out_of_backups(fs, tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    key_rel = os.path.relpath(os.path.join(fs.root, "secret.key"), str(tmp_path))
    write_yaml_file(fs.settings_file, {"backup": {"keyPath": "~/" + key_rel}})
    with open(os.path.join(fs.root, "secret.key"), "wb") as f:
        f.write(b"k" * 32)

    ctx = build_context(root=fs.root, log=False)
    assert ctx.sections.backup_settings().key_path == os.path.join(fs.root, "secret.key")
    ctx.store.init(Scope.USER)
    entry = ctx.backups.create("k")
    with tarfile.open(entry.path, "r:gz") as tf:
        names = tf.getnames()
    assert "config.yaml" in names
    assert "secret.key" not in names
