from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from foundry.core.config.io import read_yaml_file, write_yaml_file
from foundry.core.config.models import Configuration, Script, Scope, Settings, default_configuration
from foundry.core.config.paths import USER_CONFIG_NAME, ConfigFsPaths
from foundry.core.errors import AlreadyExistsError, FilesystemError, NotFoundError, ValidationError
from foundry.core.logger import LOGGER_NAME

_PACKAGE_GROUPS = ("core", "optional")


def _now() -> datetime:
    return datetime.now().astimezone()


def _check_name(scope: Scope, name: Optional[str]) -> str:
    if scope == Scope.USER:
        return name or USER_CONFIG_NAME
    if not name or not name.strip():
        raise ValidationError(f"A {scope.value} configuration requires a name.", scope=scope.value)
    if "/" in name or "\\" in name or name.startswith("."):
        raise ValidationError("Configuration names must be plain file names.", scope=scope.value, name=name)
    return name


def parse_configuration(data: Any, *, path: str = "<memory>") -> Configuration:
    try:
        return Configuration.model_validate(data)
    except PydanticValidationError as e:
        errs = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ValidationError("Configuration failed validation.", path=path, errors=errs) from e


class ConfigStore:
    """
    Loads and persists scoped configuration documents.

    User configuration lives at <root>/config.yaml; team and project documents
    are one file per name under their scope directory.
    """

    def __init__(
        self,
        *,
        fs: Optional[ConfigFsPaths] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fs = fs or ConfigFsPaths()
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._clock = clock or _now

    def path_for(self, scope: Scope, name: Optional[str] = None) -> str:
        return self.fs.config_path(scope, _check_name(scope, name))

    # ---------- read ----------
    def exists(self, scope: Scope, name: Optional[str] = None) -> bool:
        return os.path.isfile(self.path_for(scope, name))

    def load(self, scope: Scope, name: Optional[str] = None) -> Configuration:
        name = _check_name(scope, name)
        path = self.fs.config_path(scope, name)
        rr = read_yaml_file(path)
        if not rr.ok:
            raise NotFoundError(f"No {scope.value} configuration named '{name}'.", scope=scope.value, name=name, path=path)
        cfg = parse_configuration(rr.data, path=path)
        if cfg.scope != scope:
            raise ValidationError(
                f"Document declares type '{cfg.scope.value}' but was loaded as '{scope.value}'.", path=path
            )
        return cfg

    def load_user(self) -> Configuration:
        return self.load(Scope.USER)

    def list_names(self, scope: Scope) -> List[str]:
        if scope == Scope.USER:
            return [USER_CONFIG_NAME] if os.path.isfile(self.fs.user_config) else []
        d = self.fs.scope_dir(scope)
        if not os.path.isdir(d):
            return []
        names = []
        for fn in os.listdir(d):
            if fn.endswith(".yaml") and not fn.startswith("."):
                names.append(fn[: -len(".yaml")])
        return sorted(names)

    # ---------- write ----------
    def save(self, config: Configuration) -> str:
        name = _check_name(config.scope, config.name)
        path = self.fs.config_path(config.scope, name)
        config.metadata.updated = self._clock()
        if config.metadata.created is None:
            config.metadata.created = config.metadata.updated
        write_yaml_file(path, config.to_document())
        self.logger.info(f"Saved {config.scope.value} configuration name={name} path={path}")
        return path

    def init(self, scope: Scope, name: Optional[str] = None, *, base: Optional[str] = None, force: bool = False) -> Configuration:
        name = _check_name(scope, name)
        path = self.fs.config_path(scope, name)
        if os.path.exists(path) and not force:
            raise AlreadyExistsError(f"{scope.value} configuration '{name}' already exists.", path=path)
        cfg = default_configuration(scope, name, base=base, now=self._clock())
        self.save(cfg)
        return cfg

    def delete(self, scope: Scope, name: Optional[str] = None) -> None:
        name = _check_name(scope, name)
        path = self.fs.config_path(scope, name)
        if not os.path.isfile(path):
            raise NotFoundError(f"No {scope.value} configuration named '{name}'.", path=path)
        try:
            os.remove(path)
        except OSError as e:
            raise FilesystemError("Unable to delete configuration.", path=path, error=str(e)) from e
        self.logger.info(f"Deleted {scope.value} configuration name={name}")

    # ---------- mutation helpers ----------
    def _mutate(self, scope: Scope, name: Optional[str], fn: Callable[[Configuration], None]) -> Configuration:
        cfg = self.load(scope, name)
        fn(cfg)
        # re-validate the whole document after in-place edits
        cfg = parse_configuration(cfg.model_dump(by_alias=True), path=self.path_for(scope, name))
        self.save(cfg)
        return cfg

    def add_packages(self, scope: Scope, name: Optional[str], packages: Iterable[str], group: str = "core") -> Configuration:
        if group not in _PACKAGE_GROUPS:
            raise ValidationError(f"Unknown package group '{group}'.", group=group)
        new = [p.strip() for p in packages if p and p.strip()]

        def _apply(cfg: Configuration) -> None:
            current = getattr(cfg.nix.packages, group)
            setattr(cfg.nix.packages, group, list(dict.fromkeys(current + new)))

        return self._mutate(scope, name, _apply)

    def remove_packages(self, scope: Scope, name: Optional[str], packages: Iterable[str], group: Optional[str] = None) -> Configuration:
        if group is not None and group not in _PACKAGE_GROUPS:
            raise ValidationError(f"Unknown package group '{group}'.", group=group)
        drop = set(packages)
        groups = (group,) if group else _PACKAGE_GROUPS

        def _apply(cfg: Configuration) -> None:
            for g in groups:
                setattr(cfg.nix.packages, g, [p for p in getattr(cfg.nix.packages, g) if p not in drop])

        return self._mutate(scope, name, _apply)

    def upsert_script(self, scope: Scope, name: Optional[str], script: Script) -> Configuration:
        def _apply(cfg: Configuration) -> None:
            for i, s in enumerate(cfg.nix.scripts):
                if s.name == script.name:
                    cfg.nix.scripts[i] = script
                    return
            cfg.nix.scripts.append(script)

        return self._mutate(scope, name, _apply)

    def remove_script(self, scope: Scope, name: Optional[str], script_name: str) -> Configuration:
        cfg = self.load(scope, name)
        if not any(s.name == script_name for s in cfg.nix.scripts):
            raise NotFoundError(f"No script named '{script_name}'.", name=cfg.name, script=script_name)

        def _apply(c: Configuration) -> None:
            c.nix.scripts = [s for s in c.nix.scripts if s.name != script_name]

        return self._mutate(scope, name, _apply)

    def set_setting(self, scope: Scope, name: Optional[str], key: str, value: Any) -> Configuration:
        """key is the document field name (shell, logLevel, autoUpdate, updateInterval)."""
        fields = {f.alias or k: k for k, f in Settings.model_fields.items()}
        if key not in fields:
            raise ValidationError(f"Unknown setting '{key}'.", key=key, allowed=", ".join(sorted(fields)))

        def _apply(cfg: Configuration) -> None:
            doc = cfg.settings.model_dump(by_alias=True)
            doc[key] = value
            try:
                cfg.settings = Settings.model_validate(doc)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid value for setting '{key}'.", key=key, error=str(e)) from e

        return self._mutate(scope, name, _apply)
