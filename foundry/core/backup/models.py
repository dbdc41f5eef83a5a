from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

SAFETY_PREFIX = "pre-restore-"
ARCHIVE_SUFFIX = ".tar.gz"
ENCRYPTED_SUFFIX = ARCHIVE_SUFFIX + ".enc"
MANIFEST_SUFFIX = ".sha256"
META_SUFFIX = ".meta.json"


class ManifestFileEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str
    sha256: str
    # not carried by the sidecar text format
    size: Optional[int] = None


class ChecksumManifest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entries: List[ManifestFileEntry] = Field(default_factory=list)

    def by_path(self) -> Dict[str, str]:
        return {e.path: e.sha256 for e in self.entries}

    def __len__(self) -> int:
        return len(self.entries)


class BackupMeta(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    created_at: datetime
    uncompressed_size: int = 0
    file_count: int = 0
    encrypted: bool = False
    tool_version: str = "unknown"


class BackupEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    created_at: datetime
    size: int
    uncompressed_size: Optional[int] = None
    path: str
    encrypted: bool = False

    @property
    def is_safety(self) -> bool:
        return self.name.startswith(SAFETY_PREFIX)


@dataclass(frozen=True)
class RestoreResult:
    name: str
    config_dir: str
    safety_backup: Optional[str]
    verified: bool
    file_count: int
