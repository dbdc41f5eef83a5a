from __future__ import annotations

import hashlib
import os
from typing import Iterable, List

from foundry.core.backup.collector import walk_tree
from foundry.core.backup.models import ChecksumManifest, ManifestFileEntry
from foundry.core.errors import ChecksumMismatchError, FilesystemError, NotFoundError, ValidationError
from foundry.core.fsops import atomic_write_text

_CHUNK = 1024 * 1024
_HEX_LEN = 64


def sha256_file(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def generate_manifest(root: str, *, exclude: Iterable[str] = ()) -> ChecksumManifest:
    """Digest every regular file under root; symlinks and directories are not hashed."""
    entries: List[ManifestFileEntry] = []
    for ent in walk_tree(root, exclude=exclude):
        if ent.kind != "file":
            continue
        try:
            digest = sha256_file(ent.abs_path)
            size = os.path.getsize(ent.abs_path)
        except OSError as e:
            raise FilesystemError("Unable to checksum file.", path=ent.abs_path, error=str(e)) from e
        entries.append(ManifestFileEntry(path=ent.rel_path, sha256=digest, size=size))
    return ChecksumManifest(entries=entries)


def verify_manifest(root: str, manifest: ChecksumManifest) -> int:
    """Raises on the first missing or altered file; returns the number checked."""
    checked = 0
    for ent in sorted(manifest.entries, key=lambda e: e.path):
        path = os.path.join(root, *ent.path.split("/"))
        if not os.path.isfile(path):
            raise ChecksumMismatchError(f"File missing: {ent.path}", path=ent.path)
        try:
            actual = sha256_file(path)
        except OSError as e:
            raise FilesystemError("Unable to checksum file.", path=path, error=str(e)) from e
        if actual != ent.sha256:
            raise ChecksumMismatchError(
                f"Checksum mismatch for {ent.path}", path=ent.path, expected=ent.sha256, actual=actual
            )
        checked += 1
    return checked


# ---- sidecar format (sha256sum compatible) ----
def format_manifest(manifest: ChecksumManifest) -> str:
    lines = [f"{e.sha256}  {e.path}\n" for e in sorted(manifest.entries, key=lambda e: e.path)]
    return "".join(lines)


def parse_manifest(text: str, *, source: str = "<string>") -> ChecksumManifest:
    entries: List[ManifestFileEntry] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        digest, sep, rel = line.partition("  ")
        digest = digest.strip().lower()
        if not sep or not rel or len(digest) != _HEX_LEN or any(c not in "0123456789abcdef" for c in digest):
            raise ValidationError("Malformed checksum line.", path=source, line=lineno)
        entries.append(ManifestFileEntry(path=rel, sha256=digest))
    return ChecksumManifest(entries=entries)


def write_manifest(path: str, manifest: ChecksumManifest) -> None:
    atomic_write_text(path, format_manifest(manifest))


def read_manifest(path: str) -> ChecksumManifest:
    if not os.path.exists(path):
        raise NotFoundError("Checksum file not found.", path=path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise FilesystemError("Unable to read checksum file.", path=path, error=str(e)) from e
    return parse_manifest(text, source=path)
