from __future__ import annotations

import os
import tarfile
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Iterable, List, Set, Union

from foundry.core.backup.collector import walk_tree
from foundry.core.errors import FilesystemError, ValidationError

Target = Union[str, BinaryIO]


@dataclass(frozen=True)
class ArchiveStats:
    file_count: int
    uncompressed_size: int


def write_archive(root: str, dest: Target, *, exclude: Iterable[str] = (), compresslevel: int = 6) -> ArchiveStats:
    """
    Write root as tar+gzip to a path or an open binary file.

    Members are stored relative to root. Symlinks are stored as links, never
    dereferenced; directories and files keep their mode bits.
    """
    if not 1 <= int(compresslevel) <= 9:
        raise ValidationError("Compression level must be between 1 and 9.", compresslevel=compresslevel)
    entries = walk_tree(root, exclude=exclude)
    files = 0
    total = 0
    try:
        if isinstance(dest, str):
            tf = tarfile.open(dest, mode="w:gz", compresslevel=int(compresslevel))
        else:
            tf = tarfile.open(fileobj=dest, mode="w:gz", compresslevel=int(compresslevel))
        with tf:
            for ent in entries:
                # lstat-based: symlinks become SYMTYPE members
                tf.add(ent.abs_path, arcname=ent.rel_path, recursive=False)
                if ent.kind == "file":
                    files += 1
                    total += os.path.getsize(ent.abs_path)
    except OSError as e:
        raise FilesystemError("Unable to write archive.", root=root, error=str(e)) from e
    return ArchiveStats(file_count=files, uncompressed_size=total)


def _check_member(member: tarfile.TarInfo, links: Set[str]) -> str:
    name = member.name
    if name.startswith("/") or name.startswith("\\") or os.path.isabs(name):
        raise ValidationError("Archive member has an absolute path.", member=name)
    parts = [p for p in name.replace("\\", "/").split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        raise ValidationError("Archive member escapes the destination.", member=name)
    for i in range(1, len(parts)):
        if "/".join(parts[:i]) in links:
            raise ValidationError("Archive member is nested under a symlink.", member=name)
    if not (member.isfile() or member.isdir() or member.issym()):
        raise ValidationError("Unsupported archive member type.", member=name)
    return "/".join(parts)


def extract_archive(src: Target, dest: str) -> List[str]:
    """Extract into dest after vetting every member name; returns member names."""
    os.makedirs(dest, exist_ok=True)
    try:
        if isinstance(src, str):
            tf = tarfile.open(src, mode="r:gz")
        else:
            tf = tarfile.open(fileobj=src, mode="r:gz")
        with tf:
            members = tf.getmembers()
            links: Set[str] = set()
            names: List[str] = []
            for m in members:
                clean = _check_member(m, links)
                if m.issym():
                    links.add(clean)
                names.append(clean)
            try:
                tf.extractall(dest, members=members, filter="tar")
            except tarfile.FilterError as e:
                raise ValidationError("Archive member rejected.", error=str(e)) from e
    except (tarfile.TarError, zlib.error, EOFError) as e:
        raise ValidationError("Archive is corrupt or not a gzip tarball.", error=str(e)) from e
    except OSError as e:
        raise FilesystemError("Unable to extract archive.", dest=dest, error=str(e)) from e
    return names
