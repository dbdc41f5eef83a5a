from __future__ import annotations

import pytest

from foundry.core.config.models import Configuration
from foundry.core.packages.diff import PackageDiff, desired_packages, diff, plan
from tests.helpers.config_builders import build_config_doc_v1
from tests.helpers.fakes import FakeLister


def test_diff_is_sorted_set_difference():
    d = diff(["vim", "git", "htop"], ["git", "curl", "bat"])
    assert d.to_install == ("bat", "curl")
    assert d.to_remove == ("htop", "vim")
    assert not d.is_empty


def test_empty_diff_when_in_sync():
    d = diff(["git", "curl"], ["curl", "git"])
    assert d.is_empty
    assert d == PackageDiff()


def test_package_in_core_and_optional_counts_once():
    cfg = Configuration.model_validate(build_config_doc_v1(core=["git", "jq"], optional=["jq", "neovim"]))
    assert sorted(desired_packages(cfg)) == ["git", "jq", "neovim"]
    assert diff([], desired_packages(cfg)).to_install == ("git", "jq", "neovim")


@pytest.mark.parametrize(
    "installed,desired",
    [
        ([], ["git"]),
        (["git", "curl"], []),
        (["a", "b", "c"], ["b", "c", "d", "e"]),
        (["x", "x", "y"], ["y", "z", "z"]),
    ],
)
def test_applying_a_diff_converges(installed, desired):
    d = diff(installed, desired)
    after = d.apply_to(installed)
    assert diff(after, desired).is_empty


def test_plan_uses_lister():
    cfg = Configuration.model_validate(build_config_doc_v1(core=["git", "curl"]))
    lister = FakeLister(installed=["git", "emacs"])
    d = plan(cfg, lister)
    assert lister.calls == 1
    assert d.to_install == ("curl",)
    assert d.to_remove == ("emacs",)
