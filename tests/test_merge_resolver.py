from __future__ import annotations

from datetime import timedelta

import pytest

from foundry.core.config.io import write_yaml_file
from foundry.core.config.merge import MergeResolver, merge_configurations, parse_base_ref
from foundry.core.config.models import Configuration, Scope
from foundry.core.errors import NotFoundError, ValidationError
from tests.helpers.config_builders import build_config_doc_v1, build_script


def _cfg(**kwargs) -> Configuration:
    return Configuration.model_validate(build_config_doc_v1(**kwargs))


def _team(fs, name: str, **kwargs) -> None:
    write_yaml_file(fs.config_path(Scope.TEAM, name), build_config_doc_v1(scope="team", name=name, **kwargs))


def test_no_base_returns_copy(store):
    leaf = _cfg(core=["git"])
    out = MergeResolver(store).resolve(leaf)
    assert out == leaf
    assert out is not leaf
    out.nix.packages.core.append("curl")
    assert leaf.nix.packages.core == ["git"]


def test_settings_and_manager_rules():
    base = _cfg(
        scope="team",
        name="backend",
        settings={"shell": "bash", "logLevel": "debug", "autoUpdate": True, "updateInterval": "12h"},
        manager="nix-env",
    )
    leaf = _cfg(settings={"shell": "", "logLevel": "warn", "autoUpdate": False, "updateInterval": "0s"}, manager="")
    out = merge_configurations(base, leaf)
    assert out.settings.shell == "bash"
    assert out.settings.log_level == "warn"
    # autoUpdate: override always wins, even when false
    assert out.settings.auto_update is False
    assert out.settings.update_interval == timedelta(hours=12)
    assert out.nix.manager == "nix-env"

    leaf2 = _cfg(settings={"updateInterval": "1h"}, manager="nix-profile")
    out2 = merge_configurations(base, leaf2)
    assert out2.settings.update_interval == timedelta(hours=1)
    assert out2.nix.manager == "nix-profile"


def test_packages_are_unioned_without_duplicates():
    base = _cfg(scope="team", name="backend", core=["git", "curl"], optional=["jq"])
    leaf = _cfg(core=["curl", "ripgrep"], optional=["jq", "neovim"])
    out = merge_configurations(base, leaf)
    assert set(out.nix.packages.core) == {"git", "curl", "ripgrep"}
    assert len(out.nix.packages.core) == 3
    assert set(out.nix.packages.optional) == {"jq", "neovim"}


def test_override_script_replaces_base_script_in_place():
    base = _cfg(
        scope="team",
        name="backend",
        scripts=[build_script("a", "base a\n"), build_script("b", "base b\n")],
    )
    leaf = _cfg(scripts=[build_script("c", "leaf c\n"), build_script("a", "leaf a\n")])
    out = merge_configurations(base, leaf)
    assert [s.name for s in out.nix.scripts] == ["a", "b", "c"]
    assert out.nix.scripts[0].commands == "leaf a\n"
    names = [s.name for s in out.nix.scripts]
    assert len(names) == len(set(names))


def test_result_keeps_leaf_identity_and_drops_base(store, fs):
    _team(fs, "backend", core=["git", "curl"])
    leaf = _cfg(name="me", base="team/backend", core=["neovim"])
    out = MergeResolver(store).resolve(leaf)
    assert out.base is None
    assert out.scope == Scope.USER
    assert out.metadata.name == "me"
    assert set(out.nix.packages.core) == {"git", "curl", "neovim"}


def test_bare_base_name_prefers_team_then_project(store, fs):
    write_yaml_file(
        fs.config_path(Scope.PROJECT, "shared"), build_config_doc_v1(scope="project", name="shared", core=["from-project"])
    )
    leaf = _cfg(base="shared")
    assert MergeResolver(store).resolve(leaf).nix.packages.core == ["from-project"]

    _team(fs, "shared", core=["from-team"])
    assert MergeResolver(store).resolve(leaf).nix.packages.core == ["from-team"]


def test_missing_base_is_not_found(store):
    with pytest.raises(NotFoundError):
        MergeResolver(store).resolve(_cfg(base="team/ghost"))


def test_chain_deeper_than_two_is_rejected(store, fs):
    _team(fs, "root")
    _team(fs, "middle", base="team/root")
    with pytest.raises(ValidationError):
        MergeResolver(store).resolve(_cfg(base="team/middle"))


@pytest.mark.parametrize("ref", ["user/me", "team/", "team/a/b", "galaxy/x"])
def test_malformed_base_refs(ref):
    with pytest.raises(ValidationError):
        parse_base_ref(ref)


def test_merge_is_deterministic(store, fs):
    _team(fs, "backend", core=["git", "curl"], scripts=[build_script("a")], settings={"shell": "bash"})
    leaf = _cfg(base="team/backend", core=["jq"], scripts=[build_script("b")])
    r = MergeResolver(store)
    assert r.resolve(leaf) == r.resolve(leaf)
