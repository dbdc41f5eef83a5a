from __future__ import annotations

import argparse
import sys

from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for
from foundry.core.packages.diff import desired_packages, diff


def main() -> int:
    ap = argparse.ArgumentParser(description="Diff installed package names (one per line on stdin) against the active configuration")
    ap.add_argument("--project-dir", default=None)
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    installed = [line.strip() for line in sys.stdin if line.strip()]
    try:
        ctx = build_context(root=args.root, project_dir=args.project_dir, log=False)
        active = ctx.resolver.resolve_user()
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)

    d = diff(installed, desired_packages(active))
    for p in d.to_install:
        print(f"+ {p}")
    for p in d.to_remove:
        print(f"- {p}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
