from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Protocol, Tuple

from foundry.core.config.models import Configuration


class PackageLister(Protocol):
    """Whatever can report the package names currently installed."""

    def list_installed(self) -> List[str]: ...


@dataclass(frozen=True)
class PackageDiff:
    to_install: Tuple[str, ...] = ()
    to_remove: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.to_install and not self.to_remove

    def apply_to(self, installed: Iterable[str]) -> List[str]:
        """The installed set after carrying out this diff."""
        remove = set(self.to_remove)
        out = [p for p in dict.fromkeys(installed) if p not in remove]
        out.extend(p for p in self.to_install if p not in out)
        return out


def desired_packages(config: Configuration) -> List[str]:
    return config.nix.packages.combined()


def diff(installed: Iterable[str], desired: Iterable[str]) -> PackageDiff:
    have = {p for p in installed if p}
    want = {p for p in desired if p}
    return PackageDiff(to_install=tuple(sorted(want - have)), to_remove=tuple(sorted(have - want)))


def plan(config: Configuration, lister: PackageLister) -> PackageDiff:
    return diff(lister.list_installed(), desired_packages(config))
