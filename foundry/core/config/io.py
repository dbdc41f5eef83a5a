from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml  # PyYAML

from foundry.core.errors import FilesystemError, ValidationError
from foundry.core.fsops import atomic_write_text


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None


class _BlockStyleDumper(yaml.SafeDumper):
    """Emits multi-line strings (script bodies) as literal blocks."""


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockStyleDumper.add_representer(str, _str_representer)


def dump_yaml(data: Dict[str, Any]) -> str:
    return yaml.dump(data, Dumper=_BlockStyleDumper, sort_keys=False, allow_unicode=True, default_flow_style=False, width=4096)


def load_yaml(text: str, *, path: str = "<string>") -> Dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError("Configuration is not valid YAML.", path=path, error=str(e)) from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(f"Configuration root must be a mapping, got {type(data).__name__}.", path=path)
    return data


def read_yaml_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise FilesystemError("Unable to read configuration.", path=path, error=str(e)) from e
    return ReadResult(ok=True, data=load_yaml(text, path=path))


def write_yaml_file(path: str, data: Dict[str, Any]) -> None:
    atomic_write_text(path, dump_yaml(data))
