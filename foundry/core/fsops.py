"""
Atomic filesystem primitives.

rename(2) is the atomicity boundary for everything in this package: data is
written to a sibling temp path first and only becomes visible under its final
name through os.replace. Directory fsync makes the rename itself durable.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from typing import BinaryIO, Iterator, Optional

from foundry.core.errors import FilesystemError
from foundry.core.logger import get_logger

logger = get_logger()

_CHUNK = 1024 * 1024

# mkstemp names used by atomic writes: ".tmp_<random>.tmp"
TEMP_PREFIX = ".tmp_"
TEMP_SUFFIX = ".tmp"


def is_temp_artifact(file_name: str) -> bool:
    return file_name.startswith(TEMP_PREFIX) and file_name.endswith(TEMP_SUFFIX)


def fsync_dir(path: str) -> None:
    """Best-effort fsync of a directory (no-op where directories can't be opened)."""
    if os.name == "nt":
        return
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.warning(f"Failed to sync directory {path}: {e}")
    finally:
        os.close(fd)


def _remove_quietly(path: str) -> None:
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Unable to remove temp artifact {path}: {e}")


def copy_file_contents(src: str, dst: str) -> None:
    """Stream-copy src to dst and carry over the mode bits."""
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        for chunk in iter(lambda: fin.read(_CHUNK), b""):
            fout.write(chunk)
        fout.flush()
        os.fsync(fout.fileno())
    shutil.copymode(src, dst)


def atomic_copy(src: str, dst: str) -> None:
    tmp = dst + ".tmp"
    try:
        os.makedirs(os.path.dirname(os.path.abspath(dst)), exist_ok=True)
    except OSError as e:
        raise FilesystemError("Atomic copy setup failed.", src=src, dst=dst, error=str(e)) from e

    if os.path.lexists(tmp):
        _remove_quietly(tmp)
    try:
        try:
            os.link(src, tmp)
        except OSError:
            # cross-device or unsupported: fall back to a full copy
            copy_file_contents(src, tmp)
    except OSError as e:
        _remove_quietly(tmp)
        logger.error(f"Atomic copy failed src={src} temp={tmp}: {e}")
        raise FilesystemError("Atomic copy failed.", src=src, dst=dst, error=str(e)) from e

    try:
        os.replace(tmp, dst)
    except OSError as e:
        _remove_quietly(tmp)
        raise FilesystemError("Atomic commit failed.", temp=tmp, dst=dst, error=str(e)) from e

    fsync_dir(os.path.dirname(os.path.abspath(dst)))
    logger.debug(f"Atomic copy completed src={src} dst={dst}")


@contextlib.contextmanager
def atomic_output(path: str, *, mode: Optional[int] = None) -> Iterator[BinaryIO]:
    """
    Binary file handle whose contents replace path only when the block exits
    cleanly. On any error the temp file is removed and path is untouched.
    """
    parent = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(parent, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=parent)
    except OSError as e:
        raise FilesystemError("Unable to prepare atomic write.", path=path, error=str(e)) from e
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    except OSError as e:
        raise FilesystemError("Atomic write failed.", path=path, error=str(e)) from e
    finally:
        if os.path.exists(tmp):
            _remove_quietly(tmp)
    fsync_dir(parent)


def atomic_write_bytes(path: str, data: bytes, *, mode: Optional[int] = None) -> None:
    with atomic_output(path, mode=mode) as f:
        f.write(data)


def atomic_write_text(path: str, text: str, *, mode: Optional[int] = None) -> None:
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


def atomic_swap(old_path: str, new_path: str) -> None:
    """
    Replace old_path with new_path using two renames.

    old_path is moved to old_path + ".bak" first; if moving new_path into place
    fails, the .bak copy is renamed back so old_path is left as it was.
    """
    backup_path = old_path + ".bak"
    if os.path.lexists(backup_path):
        raise FilesystemError("Stale swap backup present; resolve it manually.", path=backup_path)

    had_old = os.path.lexists(old_path)
    if had_old:
        try:
            os.rename(old_path, backup_path)
        except OSError as e:
            raise FilesystemError("Swap backup failed.", path=old_path, error=str(e)) from e

    try:
        os.rename(new_path, old_path)
    except OSError as e:
        if had_old:
            try:
                os.rename(backup_path, old_path)
            except OSError as rerr:
                logger.error(f"Failed to rollback atomic swap original={old_path} backup={backup_path}: {rerr}")
                raise FilesystemError(
                    "Swap failed and rollback failed.", path=old_path, backup=backup_path, error=str(e), rollback_error=str(rerr)
                ) from e
        raise FilesystemError("Swap failed.", path=old_path, new_path=new_path, error=str(e)) from e

    fsync_dir(os.path.dirname(os.path.abspath(old_path)))
    if had_old:
        _remove_quietly(backup_path)
