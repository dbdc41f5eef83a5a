from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, List

from foundry.core.fsops import is_temp_artifact

LOCK_MARKER = ".lock"


@dataclass(frozen=True)
class TreeEntry:
    abs_path: str
    rel_path: str  # always "/"-separated
    kind: str  # "dir" | "file" | "symlink"


def relative_excludes(root: str, paths: Iterable[str]) -> List[str]:
    """Turn absolute paths into root-relative excludes; paths outside root are dropped."""
    out: List[str] = []
    root_abs = os.path.abspath(root)
    for p in paths:
        rel = os.path.relpath(os.path.abspath(p), root_abs)
        if rel == "." or rel.startswith(".."):
            continue
        out.append(rel.replace(os.sep, "/"))
    return out


def _excluded(rel: str, excludes: List[str]) -> bool:
    for ex in excludes:
        if rel == ex or rel.startswith(ex + "/"):
            return True
    return False


def walk_tree(root: str, *, exclude: Iterable[str] = ()) -> List[TreeEntry]:
    """
    Sorted listing of everything under root.

    Symlinks are reported as symlinks and never followed. The lock marker and
    temp files left by interrupted atomic writes are always skipped; exclude
    holds extra root-relative paths to skip together with their contents.
    """
    excludes = [e.strip("/") for e in exclude if e and e.strip("/")]
    excludes.append(LOCK_MARKER)
    entries: List[TreeEntry] = []

    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        rel_dir = os.path.relpath(dirpath, root)
        rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/")

        keep = []
        for d in sorted(dirnames):
            rel = f"{rel_dir}/{d}" if rel_dir else d
            if _excluded(rel, excludes):
                continue
            abs_path = os.path.join(dirpath, d)
            if os.path.islink(abs_path):
                entries.append(TreeEntry(abs_path=abs_path, rel_path=rel, kind="symlink"))
                continue
            entries.append(TreeEntry(abs_path=abs_path, rel_path=rel, kind="dir"))
            keep.append(d)
        dirnames[:] = keep

        for fn in sorted(filenames):
            rel = f"{rel_dir}/{fn}" if rel_dir else fn
            if is_temp_artifact(fn) or _excluded(rel, excludes):
                continue
            abs_path = os.path.join(dirpath, fn)
            if os.path.islink(abs_path):
                kind = "symlink"
            elif os.path.isfile(abs_path):
                kind = "file"
            else:
                # sockets, fifos, devices
                continue
            entries.append(TreeEntry(abs_path=abs_path, rel_path=rel, kind=kind))

    entries.sort(key=lambda e: e.rel_path)
    return entries
