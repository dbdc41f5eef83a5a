from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from typing import Iterator, List, Optional, Tuple

from foundry.core.backup.archiver import Target, extract_archive
from foundry.core.backup.checksums import verify_manifest
from foundry.core.backup.collector import LOCK_MARKER
from foundry.core.backup.models import ChecksumManifest
from foundry.core.errors import FilesystemError, InUseError
from foundry.core.fsops import atomic_swap, atomic_write_text
from foundry.core.logger import LOGGER_NAME


def lock_path(config_dir: str) -> str:
    return os.path.join(config_dir, LOCK_MARKER)


def is_in_use(config_dir: str) -> bool:
    return os.path.lexists(lock_path(config_dir))


@contextlib.contextmanager
def lock_marker(config_dir: str) -> Iterator[str]:
    """
    Advisory "in use" marker around apply-like operations.

    Nothing enforces it beyond restore refusing to run while it exists.
    """
    path = lock_path(config_dir)
    if os.path.lexists(path):
        raise InUseError("Configuration directory is already in use.", path=path)
    atomic_write_text(path, f"{os.getpid()}\n")
    try:
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)


def make_staging_dir(config_dir: str) -> str:
    parent = os.path.dirname(os.path.abspath(config_dir))
    base = os.path.basename(os.path.abspath(config_dir))
    try:
        os.makedirs(parent, exist_ok=True)
        return tempfile.mkdtemp(prefix=f".{base}.restore-", dir=parent)
    except OSError as e:
        raise FilesystemError("Unable to create restore staging directory.", path=parent, error=str(e)) from e


def stage_archive(src: Target, staging_dir: str, manifest: Optional[ChecksumManifest]) -> int:
    """Extract into staging and verify against manifest; returns the number of files checked."""
    extract_archive(src, staging_dir)
    if manifest is None:
        return 0
    return verify_manifest(staging_dir, manifest)


def carry_over(config_dir: str, staging_dir: str, rel_paths: List[str]) -> List[Tuple[str, str]]:
    """
    Move live paths that are not part of a backup (the backups directory,
    for one) into the staged tree. Returns the moves so they can be undone.
    """
    moved: List[Tuple[str, str]] = []
    try:
        for rel in rel_paths:
            src = os.path.join(config_dir, *rel.split("/"))
            if not os.path.lexists(src):
                continue
            dst = os.path.join(staging_dir, *rel.split("/"))
            if os.path.lexists(dst):
                if os.path.isdir(dst) and not os.path.islink(dst):
                    shutil.rmtree(dst)
                else:
                    os.remove(dst)
            os.makedirs(os.path.dirname(dst), exist_ok=True)
            os.rename(src, dst)
            moved.append((src, dst))
    except OSError as e:
        undo_carry_over(moved)
        raise FilesystemError("Unable to carry live data into restore staging.", path=config_dir, error=str(e)) from e
    return moved


def undo_carry_over(moved: List[Tuple[str, str]], logger: Optional[logging.Logger] = None) -> None:
    log = logger or logging.getLogger(LOGGER_NAME)
    for src, dst in reversed(moved):
        try:
            os.makedirs(os.path.dirname(src), exist_ok=True)
            os.rename(dst, src)
        except OSError as e:
            log.error(f"Failed to move {dst} back to {src}: {e}")


def swap_into_place(config_dir: str, staging_dir: str) -> None:
    try:
        if os.path.isdir(config_dir):
            shutil.copymode(config_dir, staging_dir)
    except OSError as e:
        raise FilesystemError("Unable to prepare staged tree.", path=staging_dir, error=str(e)) from e
    atomic_swap(os.path.abspath(config_dir), staging_dir)
