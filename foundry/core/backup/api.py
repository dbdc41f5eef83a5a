from __future__ import annotations

import logging
import os
import re
import shutil
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from foundry.core.backup.archiver import write_archive
from foundry.core.backup.checksums import generate_manifest, read_manifest, write_manifest
from foundry.core.backup.collector import relative_excludes
from foundry.core.backup.models import (
    ARCHIVE_SUFFIX,
    ENCRYPTED_SUFFIX,
    MANIFEST_SUFFIX,
    META_SUFFIX,
    SAFETY_PREFIX,
    BackupEntry,
    BackupMeta,
    RestoreResult,
)
from foundry.core.backup.restorer import (
    carry_over,
    is_in_use,
    lock_path,
    make_staging_dir,
    stage_archive,
    swap_into_place,
    undo_carry_over,
)
from foundry.core.config.models import BackupSettings
from foundry.core.crypto import KeyProvider, decrypt_file, encrypt_file, read_key_file
from foundry.core.errors import (
    AlreadyExistsError,
    EncryptionError,
    FilesystemError,
    FoundryError,
    InUseError,
    NotFoundError,
    ValidationError,
)
from foundry.core.fsops import atomic_copy, atomic_write_text, fsync_dir
from foundry.core.logger import LOGGER_NAME

TOOL_VERSION = "0.1.0"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
_TIMESTAMP_NAME_RE = re.compile(r"^(?:" + re.escape(SAFETY_PREFIX) + r")?(\d{8}-\d{6})$")


def _check_backup_name(name: str) -> None:
    if not name or name.strip() != name:
        raise ValidationError("Backup name must be a non-empty plain file name.", name=name)
    if "/" in name or "\\" in name or name.startswith(".") or name in (".", ".."):
        raise ValidationError("Backup name must be a plain file name.", name=name)
    if name.endswith(".tmp"):
        raise ValidationError("Backup name may not end in .tmp.", name=name)


def _remove_if_present(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        return


class BackupManager:
    """
    Snapshots of a configuration directory as gzip tarballs with sidecars.

    <name>.tar.gz or <name>.tar.gz.enc holds the tree, <name>.sha256 the
    per-file digests and <name>.meta.json the creation metadata. Only this
    class writes into the backup directory.
    """

    def __init__(
        self,
        config_dir: str,
        backup_dir: Optional[str] = None,
        *,
        key_provider: Optional[KeyProvider] = None,
        settings: Optional[BackupSettings] = None,
        clock: Any = None,
        logger: Optional[logging.Logger] = None,
        exclude: Iterable[str] = (),
    ):
        self.config_dir = os.path.abspath(config_dir)
        self.backup_dir = os.path.abspath(backup_dir or os.path.join(self.config_dir, "backups"))
        self.key_provider = key_provider
        self.settings = settings or BackupSettings()
        self.clock = clock or time
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        # live paths left out of snapshots and carried across restores
        self._excludes = relative_excludes(self.config_dir, [self.backup_dir, *exclude])

    # ---- paths ----
    def _now(self) -> datetime:
        return datetime.fromtimestamp(float(self.clock.time()), tz=timezone.utc)

    def archive_path(self, name: str, *, encrypted: bool = False) -> str:
        return os.path.join(self.backup_dir, name + (ENCRYPTED_SUFFIX if encrypted else ARCHIVE_SUFFIX))

    def manifest_path(self, name: str) -> str:
        return os.path.join(self.backup_dir, name + MANIFEST_SUFFIX)

    def meta_path(self, name: str) -> str:
        return os.path.join(self.backup_dir, name + META_SUFFIX)

    def _existing_archives(self, name: str) -> List[str]:
        return [p for p in (self.archive_path(name), self.archive_path(name, encrypted=True)) if os.path.isfile(p)]

    # ---- create ----
    def create(self, name: Optional[str] = None, *, force: bool = False) -> BackupEntry:
        created_at = self._now()
        name = name or created_at.strftime(TIMESTAMP_FORMAT)
        _check_backup_name(name)
        if not os.path.isdir(self.config_dir):
            raise NotFoundError("Configuration directory does not exist.", path=self.config_dir)

        existing = self._existing_archives(name)
        if existing and not force:
            raise AlreadyExistsError(f"Backup '{name}' already exists.", name=name, path=existing[0])

        encrypted = self.key_provider is not None
        final_archive = self.archive_path(name, encrypted=encrypted)
        plain_tmp = self.archive_path(name) + ".tmp"
        enc_tmp = self.archive_path(name, encrypted=True) + ".tmp"
        manifest_tmp = self.manifest_path(name) + ".tmp"
        meta_tmp = self.meta_path(name) + ".tmp"
        temps = [plain_tmp, enc_tmp, manifest_tmp, meta_tmp]
        aside: List[Tuple[str, str]] = []
        committing = False

        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            manifest = generate_manifest(self.config_dir, exclude=self._excludes)
            stats = write_archive(
                self.config_dir, plain_tmp, exclude=self._excludes, compresslevel=self.settings.compression_level
            )
            archive_tmp = plain_tmp
            if encrypted:
                encrypt_file(plain_tmp, enc_tmp, self.key_provider.get_key())
                _remove_if_present(plain_tmp)
                archive_tmp = enc_tmp

            meta = BackupMeta(
                name=name,
                created_at=created_at,
                uncompressed_size=stats.uncompressed_size,
                file_count=stats.file_count,
                encrypted=encrypted,
                tool_version=TOOL_VERSION,
            )
            write_manifest(manifest_tmp, manifest)
            atomic_write_text(meta_tmp, meta.model_dump_json(indent=2) + "\n")

            # an overwritten backup stays recoverable until the new one is complete
            aside = self._set_aside(name)
            committing = True
            os.replace(manifest_tmp, self.manifest_path(name))
            os.replace(meta_tmp, self.meta_path(name))
            os.replace(archive_tmp, final_archive)
            fsync_dir(self.backup_dir)
        except FoundryError:
            self._abort_create(name, temps, aside, committing)
            raise
        except OSError as e:
            self._abort_create(name, temps, aside, committing)
            raise FilesystemError("Backup creation failed.", name=name, error=str(e)) from e

        self._cleanup([held for _, held in aside])
        if aside:
            self.logger.info(f"Replaced previous backup name={name}")

        self.logger.info(
            f"Backup created name={name} files={stats.file_count} encrypted={encrypted} path={final_archive}"
        )
        return self.get(name)

    def create_safety_backup(self) -> BackupEntry:
        base = SAFETY_PREFIX + self._now().strftime(TIMESTAMP_FORMAT)
        name = base
        n = 1
        while self._existing_archives(name):
            name = f"{base}-{n}"
            n += 1
        return self.create(name)

    def _cleanup(self, paths: List[str]) -> None:
        for p in paths:
            try:
                _remove_if_present(p)
            except OSError as e:
                self.logger.warning(f"Unable to remove temp artifact {p}: {e}")

    def _final_paths(self, name: str) -> List[str]:
        return [
            self.archive_path(name),
            self.archive_path(name, encrypted=True),
            self.manifest_path(name),
            self.meta_path(name),
        ]

    def _set_aside(self, name: str) -> List[Tuple[str, str]]:
        """Rename the files of an existing backup to held names; returns (final, held) pairs."""
        moved: List[Tuple[str, str]] = []
        try:
            for final in self._final_paths(name):
                if os.path.lexists(final):
                    held = final + ".prev.tmp"
                    os.rename(final, held)
                    moved.append((final, held))
        except OSError:
            self._put_back(moved)
            raise
        return moved

    def _put_back(self, moved: List[Tuple[str, str]]) -> None:
        for final, held in reversed(moved):
            try:
                os.rename(held, final)
            except OSError as e:
                self.logger.error(f"Unable to restore previous backup file {held} -> {final}: {e}")

    def _abort_create(self, name: str, temps: List[str], aside: List[Tuple[str, str]], committing: bool) -> None:
        self._cleanup(temps)
        if not committing:
            return
        # whatever sits under a final name now came from this attempt
        self._cleanup(self._final_paths(name))
        self._put_back(aside)
        self.logger.warning(f"Backup creation aborted name={name}; previous files restored={len(aside)}")

    # ---- list / get ----
    def _read_meta(self, name: str) -> Optional[BackupMeta]:
        path = self.meta_path(name)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return BackupMeta.model_validate_json(f.read())
        except (OSError, PydanticValidationError) as e:
            self.logger.warning(f"Ignoring unreadable backup metadata path={path}: {e}")
            return None

    def _entry(self, name: str, path: str, encrypted: bool) -> BackupEntry:
        st = os.stat(path)
        meta = self._read_meta(name)
        uncompressed = None
        if meta is not None:
            created_at = meta.created_at
            uncompressed = meta.uncompressed_size
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
        else:
            m = _TIMESTAMP_NAME_RE.match(name)
            if m:
                created_at = datetime.strptime(m.group(1), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
            else:
                created_at = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
        return BackupEntry(
            name=name,
            created_at=created_at,
            size=int(st.st_size),
            uncompressed_size=uncompressed,
            path=path,
            encrypted=encrypted,
        )

    def list(self) -> List[BackupEntry]:
        if not os.path.isdir(self.backup_dir):
            return []
        found = {}
        for fn in os.listdir(self.backup_dir):
            if fn.endswith(ENCRYPTED_SUFFIX):
                name, encrypted = fn[: -len(ENCRYPTED_SUFFIX)], True
            elif fn.endswith(ARCHIVE_SUFFIX):
                name, encrypted = fn[: -len(ARCHIVE_SUFFIX)], False
            else:
                continue
            path = os.path.join(self.backup_dir, fn)
            if not name or not os.path.isfile(path):
                continue
            try:
                entry = self._entry(name, path, encrypted)
            except OSError as e:
                self.logger.warning(f"Skipping unreadable backup path={path}: {e}")
                continue
            prev = found.get(name)
            if prev is None or os.path.getmtime(path) > os.path.getmtime(prev.path):
                found[name] = entry
        return sorted(found.values(), key=lambda e: (e.created_at, e.name), reverse=True)

    def get(self, name: str) -> BackupEntry:
        _check_backup_name(name)
        for entry in self.list():
            if entry.name == name:
                return entry
        raise NotFoundError(f"Backup '{name}' not found.", name=name, dir=self.backup_dir)

    # ---- restore ----
    def restore(self, name: str, *, force: bool = False) -> RestoreResult:
        entry = self.get(name)
        if not force and is_in_use(self.config_dir):
            raise InUseError(
                "Configuration is in use; retry when idle or pass force.", name=name, path=lock_path(self.config_dir)
            )

        manifest = read_manifest(self.manifest_path(name)) if os.path.isfile(self.manifest_path(name)) else None
        if manifest is None:
            self.logger.warning(f"No checksum file for backup name={name}; restoring unverified")

        safety = None
        staging = make_staging_dir(self.config_dir)
        plain_copy = staging + ARCHIVE_SUFFIX
        try:
            source = entry.path
            if entry.encrypted:
                # authenticated before anything reaches the staging dir
                decrypt_file(entry.path, plain_copy, self._require_key(name))
                source = plain_copy
            checked = stage_archive(source, staging, manifest)

            # only a verified archive may displace the live tree
            if not force:
                safety = self.create_safety_backup().name
                self.logger.info(f"Safety backup created name={safety} before restoring {name}")

            moved = carry_over(self.config_dir, staging, self._excludes)
            try:
                swap_into_place(self.config_dir, staging)
            except FoundryError:
                undo_carry_over(moved, self.logger)
                raise
        finally:
            self._cleanup([plain_copy])
            if os.path.isdir(staging):
                shutil.rmtree(staging, ignore_errors=True)

        self.logger.info(f"Restored backup name={name} into {self.config_dir} verified={manifest is not None}")
        return RestoreResult(
            name=name,
            config_dir=self.config_dir,
            safety_backup=safety,
            verified=manifest is not None,
            file_count=checked,
        )

    # ---- rotate / delete ----
    def rotate(self, max_age: Optional[timedelta] = None, max_count: Optional[int] = None) -> List[str]:
        """
        Delete regular backups past max_count (newest first) or older than
        max_age. Safety backups are never rotated out.
        """
        if max_age is None:
            max_age = self.settings.max_age
        if max_count is None:
            max_count = self.settings.max_backups
        now = self._now()
        deleted: List[str] = []
        regular = [e for e in self.list() if not e.is_safety]
        for idx, entry in enumerate(regular):
            too_many = bool(max_count) and idx >= max_count
            too_old = bool(max_age) and now - entry.created_at > max_age
            if not (too_many or too_old):
                continue
            try:
                self.delete(entry.name)
            except FoundryError as e:
                self.logger.warning(f"Failed to rotate backup name={entry.name}: {e}")
                continue
            deleted.append(entry.name)
        if deleted:
            self.logger.info(f"Rotated {len(deleted)} backup(s): {', '.join(deleted)}")
        return deleted

    def delete(self, name: str) -> None:
        _check_backup_name(name)
        archives = self._existing_archives(name)
        if not archives:
            raise NotFoundError(f"Backup '{name}' not found.", name=name, dir=self.backup_dir)
        try:
            for p in archives + [self.manifest_path(name), self.meta_path(name)]:
                _remove_if_present(p)
        except OSError as e:
            raise FilesystemError("Unable to delete backup.", name=name, error=str(e)) from e
        self.logger.info(f"Deleted backup name={name}")

    # ---- encryption in place ----
    def encrypt_backup(self, name: str, key_path: str) -> BackupEntry:
        entry = self.get(name)
        if entry.encrypted:
            raise ValidationError(f"Backup '{name}' is already encrypted.", name=name)
        key = read_key_file(key_path)
        dst = self.archive_path(name, encrypted=True)
        encrypt_file(entry.path, dst, key)
        _remove_if_present(entry.path)
        self._update_meta_flag(name, encrypted=True)
        self.logger.info(f"Encrypted backup name={name}")
        return self.get(name)

    def decrypt_backup(self, name: str, key_path: str) -> BackupEntry:
        entry = self.get(name)
        if not entry.encrypted:
            raise ValidationError(f"Backup '{name}' is not encrypted.", name=name)
        key = read_key_file(key_path)
        dst = self.archive_path(name)
        decrypt_file(entry.path, dst, key)
        _remove_if_present(entry.path)
        self._update_meta_flag(name, encrypted=False)
        self.logger.info(f"Decrypted backup name={name}")
        return self.get(name)

    def _update_meta_flag(self, name: str, *, encrypted: bool) -> None:
        meta = self._read_meta(name)
        if meta is None:
            return
        meta.encrypted = encrypted
        atomic_write_text(self.meta_path(name), meta.model_dump_json(indent=2) + "\n")

    # ---- export ----
    def export(self, name: str, dest_dir: str) -> str:
        """Copy the archive and its checksum file out of the backup directory."""
        entry = self.get(name)
        out = os.path.join(dest_dir, os.path.basename(entry.path))
        atomic_copy(entry.path, out)
        if os.path.isfile(self.manifest_path(name)):
            atomic_copy(self.manifest_path(name), os.path.join(dest_dir, name + MANIFEST_SUFFIX))
        return out

    # ---- helpers ----
    def _require_key(self, name: str) -> bytes:
        if self.key_provider is None:
            raise EncryptionError("Backup is encrypted but no key provider is configured.", name=name)
        return self.key_provider.get_key()
