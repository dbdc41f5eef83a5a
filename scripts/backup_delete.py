from __future__ import annotations

import argparse
import sys

from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for


def main() -> int:
    ap = argparse.ArgumentParser(description="nix-foundry backup delete")
    ap.add_argument("name")
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    try:
        build_context(root=args.root).backups.delete(args.name)
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
