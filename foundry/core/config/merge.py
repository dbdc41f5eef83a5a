from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from foundry.core.config.models import Configuration, NixSection, PackageSet, Script, Scope, Settings
from foundry.core.config.store import ConfigStore
from foundry.core.errors import NotFoundError, ValidationError

_BASE_SCOPES = (Scope.TEAM, Scope.PROJECT)


@dataclass(frozen=True)
class BaseRef:
    scope: Optional[Scope]
    name: str


def parse_base_ref(ref: str) -> BaseRef:
    """
    "team/<name>" or "project/<name>" pin a scope; a bare "<name>" is looked up
    in team scope first, then project scope.
    """
    text = (ref or "").strip()
    if not text:
        raise ValidationError("Empty base reference.")
    if "/" not in text:
        return BaseRef(scope=None, name=text)
    prefix, _, name = text.partition("/")
    if not name or "/" in name:
        raise ValidationError("Malformed base reference.", base=ref)
    try:
        scope = Scope(prefix)
    except ValueError as e:
        raise ValidationError(f"Unknown scope '{prefix}' in base reference.", base=ref) from e
    if scope not in _BASE_SCOPES:
        raise ValidationError("A base must be a team or project configuration.", base=ref)
    return BaseRef(scope=scope, name=name)


def _union(base: List[str], override: List[str]) -> List[str]:
    return list(dict.fromkeys(list(base) + list(override)))


def merge_scripts(base: List[Script], override: List[Script]) -> List[Script]:
    out = [s.model_copy(deep=True) for s in base]
    index = {s.name: i for i, s in enumerate(out)}
    for s in override:
        if s.name in index:
            out[index[s.name]] = s.model_copy(deep=True)
        else:
            index[s.name] = len(out)
            out.append(s.model_copy(deep=True))
    return out


def merge_settings(base: Settings, override: Settings) -> Settings:
    return Settings(
        shell=override.shell or base.shell,
        log_level=override.log_level or base.log_level,
        auto_update=override.auto_update,
        update_interval=override.update_interval if override.update_interval != timedelta(0) else base.update_interval,
    )


def merge_configurations(base: Configuration, override: Configuration) -> Configuration:
    """Two-layer merge; the result carries the override's identity and no base."""
    nix = NixSection(
        manager=override.nix.manager or base.nix.manager,
        packages=PackageSet(
            core=_union(base.nix.packages.core, override.nix.packages.core),
            optional=_union(base.nix.packages.optional, override.nix.packages.optional),
        ),
        scripts=merge_scripts(base.nix.scripts, override.nix.scripts),
    )
    return Configuration(
        version=override.version,
        kind=override.kind,
        scope=override.scope,
        metadata=override.metadata.model_copy(deep=True),
        base=None,
        settings=merge_settings(base.settings, override.settings),
        nix=nix,
    )


class MergeResolver:
    def __init__(self, store: ConfigStore):
        self.store = store

    def load_base(self, ref: str) -> Tuple[Scope, Configuration]:
        br = parse_base_ref(ref)
        scopes = (br.scope,) if br.scope is not None else _BASE_SCOPES
        for scope in scopes:
            if self.store.exists(scope, br.name):
                return scope, self.store.load(scope, br.name)
        raise NotFoundError(f"Base configuration '{ref}' not found.", base=ref, scopes=",".join(s.value for s in scopes))

    def resolve(self, leaf: Configuration) -> Configuration:
        if not leaf.base:
            return leaf.model_copy(deep=True)
        _, base = self.load_base(leaf.base)
        if base.base:
            raise ValidationError(
                "Base configurations may not declare a base of their own.", leaf=leaf.name, base=leaf.base, nested=base.base
            )
        self.store.logger.debug(f"Resolving configuration leaf={leaf.name} base={leaf.base}")
        return merge_configurations(base, leaf)

    def resolve_user(self) -> Configuration:
        return self.resolve(self.store.load_user())
