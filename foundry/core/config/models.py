from __future__ import annotations

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from foundry.core.logger import BACKUP_COUNT, FILE_FORMAT, LOG_FILE_NAME, MAX_BYTES

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: Any) -> timedelta:
    """Go-style durations: "24h", "1h30m", "90s", "500ms". Bare numbers are seconds."""
    if value is None or value == "":
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=float(value))
    text = str(value).strip()
    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(text) or not text:
        raise ValueError(f"invalid duration {text!r}")
    return timedelta(seconds=total)


def format_duration(td: timedelta) -> str:
    total_ms = int(round(td.total_seconds() * 1000))
    if total_ms == 0:
        return "0s"
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, ms = divmod(rem, 1000)
    out = ""
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    if seconds:
        out += f"{seconds}s"
    if ms:
        out += f"{ms}ms"
    return out


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class Scope(str, Enum):
    USER = "user"
    TEAM = "team"
    PROJECT = "project"


class Metadata(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str = Field(min_length=1)
    description: str = ""
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    priority: Optional[int] = None


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    # empty string / zero interval mean "unset" for inheritance purposes
    shell: str = ""
    log_level: str = Field(default="", alias="logLevel")
    auto_update: bool = Field(default=False, alias="autoUpdate")
    update_interval: timedelta = Field(default=timedelta(0), alias="updateInterval")

    @field_validator("update_interval", mode="before")
    @classmethod
    def _parse_interval(cls, v: Any) -> timedelta:
        return parse_duration(v)

    @field_serializer("update_interval", when_used="json")
    def _dump_interval(self, v: timedelta) -> str:
        return format_duration(v)


class Script(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str = Field(min_length=1)
    description: str = ""
    commands: str = ""


class PackageSet(BaseModel):
    model_config = ConfigDict(extra="forbid")
    core: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)

    @field_validator("core", "optional", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("core", "optional")
    @classmethod
    def _unique(cls, v: List[str]) -> List[str]:
        return _dedupe(v)

    def combined(self) -> List[str]:
        return _dedupe(list(self.core) + list(self.optional))


class NixSection(BaseModel):
    model_config = ConfigDict(extra="forbid")
    manager: str = ""
    packages: PackageSet = Field(default_factory=PackageSet)
    scripts: List[Script] = Field(default_factory=list)

    @field_validator("scripts", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("scripts")
    @classmethod
    def _unique_script_names(cls, v: List[Script]) -> List[Script]:
        seen = set()
        for s in v:
            if s.name in seen:
                raise ValueError(f"duplicate script name: {s.name}")
            seen.add(s.name)
        return v


class Configuration(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    version: str = "v1"
    kind: str = "NixConfig"
    scope: Scope = Field(default=Scope.USER, alias="type")
    metadata: Metadata
    base: Optional[str] = None
    settings: Settings = Field(default_factory=Settings)
    nix: NixSection = Field(default_factory=NixSection)

    @field_validator("base", mode="before")
    @classmethod
    def _blank_base(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def name(self) -> str:
        return self.metadata.name

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def default_configuration(scope: Scope, name: str, *, base: Optional[str] = None, now: Optional[datetime] = None) -> Configuration:
    ts = now or datetime.now().astimezone()
    return Configuration(
        scope=scope,
        metadata=Metadata(name=name, description=f"{scope.value} configuration", created=ts, updated=ts),
        base=base,
        settings=Settings(shell="zsh", log_level="info", auto_update=True, update_interval=timedelta(hours=24)),
        nix=NixSection(manager="nix-env", packages=PackageSet(core=["git"], optional=[])),
    )


# ---- tool settings sections (foundry.yaml) ----
class BackupSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    max_backups: int = Field(default=10, ge=1, alias="maxBackups")
    max_age_days: int = Field(default=30, ge=1, alias="maxAgeDays")
    compression_level: int = Field(default=6, ge=1, le=9, alias="compressionLevel")
    encrypt: bool = False
    key_source: str = Field(default="file", pattern="^(file|keyring|ephemeral)$", alias="keySource")
    key_path: str = Field(default="", alias="keyPath")
    keyring_service: str = Field(default="nix-foundry", alias="keyringService")

    @property
    def max_age(self) -> timedelta:
        return timedelta(days=self.max_age_days)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    dir: str = ""
    file_name: str = Field(default=LOG_FILE_NAME, min_length=1, pattern=r"^[^/\\]+$", alias="fileName")
    fmt: str = Field(default=FILE_FORMAT, min_length=1, alias="format")
    max_bytes: int = Field(default=MAX_BYTES, ge=1024, alias="maxBytes")
    backup_count: int = Field(default=BACKUP_COUNT, ge=0, alias="backupCount")

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v
