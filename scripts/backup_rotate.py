from __future__ import annotations

import argparse
import sys
from datetime import timedelta

from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for


def main() -> int:
    ap = argparse.ArgumentParser(description="nix-foundry backup rotate (defaults from foundry.yaml)")
    ap.add_argument("--max-age-days", type=int, default=None)
    ap.add_argument("--max-count", type=int, default=None)
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    max_age = timedelta(days=args.max_age_days) if args.max_age_days is not None else None
    try:
        deleted = build_context(root=args.root).backups.rotate(max_age=max_age, max_count=args.max_count)
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)
    for name in deleted:
        print(name)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
