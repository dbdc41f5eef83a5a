from __future__ import annotations

import argparse
import sys

from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for


def main() -> int:
    ap = argparse.ArgumentParser(description="nix-foundry backup restore")
    ap.add_argument("name")
    ap.add_argument(
        "--force", action="store_true", help="Skip the in-use check and the pre-restore safety backup."
    )
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    try:
        res = build_context(root=args.root).backups.restore(args.name, force=bool(args.force))
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)
    print(f"restored {res.name} into {res.config_dir} (verified={res.verified}, files={res.file_count})")
    if res.safety_backup:
        print(f"safety backup: {res.safety_backup}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
