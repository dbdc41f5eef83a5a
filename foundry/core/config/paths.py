from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from foundry.core.config.models import Scope

TOOL_NAME = "nix-foundry"
USER_CONFIG_NAME = "config"


def default_root() -> str:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, TOOL_NAME)


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = ""
    project_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.root:
            object.__setattr__(self, "root", default_root())

    @property
    def user_config(self) -> str:
        return os.path.join(self.root, f"{USER_CONFIG_NAME}.yaml")

    @property
    def teams_dir(self) -> str:
        return os.path.join(self.root, "teams")

    @property
    def projects_dir(self) -> str:
        if self.project_dir:
            return os.path.join(self.project_dir, f".{TOOL_NAME}")
        return os.path.join(self.root, "projects")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.root, "backups")

    @property
    def settings_file(self) -> str:
        return os.path.join(self.root, "foundry.yaml")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def default_key_path(self) -> str:
        return os.path.join(self.root, "backup.key")

    @property
    def lock_marker(self) -> str:
        return os.path.join(self.root, ".lock")

    def scope_dir(self, scope: Scope) -> str:
        if scope == Scope.USER:
            return self.root
        if scope == Scope.TEAM:
            return self.teams_dir
        return self.projects_dir

    def config_path(self, scope: Scope, name: Optional[str] = None) -> str:
        if scope == Scope.USER:
            return self.user_config
        if not name:
            raise ValueError(f"{scope.value} configurations require a name")
        return os.path.join(self.scope_dir(scope), f"{name}.yaml")
