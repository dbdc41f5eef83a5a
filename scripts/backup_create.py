from __future__ import annotations

import argparse
import sys

from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for


def main() -> int:
    ap = argparse.ArgumentParser(description="nix-foundry backup create")
    ap.add_argument("name", nargs="?", default=None, help="Backup name (defaults to a UTC timestamp)")
    ap.add_argument("--force", action="store_true", help="Overwrite an existing backup with the same name.")
    ap.add_argument("--root", default=None, help="Configuration root (defaults to ~/.config/nix-foundry)")
    args = ap.parse_args()

    try:
        ctx = build_context(root=args.root)
        entry = ctx.backups.create(args.name, force=bool(args.force))
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)
    print(entry.path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
