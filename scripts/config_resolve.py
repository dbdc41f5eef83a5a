from __future__ import annotations

import argparse
import sys

from foundry.core.config.io import dump_yaml
from foundry.core.config.models import Scope
from foundry.core.config.validation import ensure_valid
from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for


def main() -> int:
    ap = argparse.ArgumentParser(description="Print the active (merged) nix-foundry configuration as YAML")
    ap.add_argument("--scope", default="user", choices=[s.value for s in Scope])
    ap.add_argument("--name", default=None, help="Team or project name (user scope has a single document)")
    ap.add_argument("--project-dir", default=None)
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    try:
        ctx = build_context(root=args.root, project_dir=args.project_dir, log=False)
        leaf = ctx.store.load(Scope(args.scope), args.name)
        ensure_valid(leaf)
        active = ctx.resolver.resolve(leaf)
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)
    sys.stdout.write(dump_yaml(active.to_document()))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
