from __future__ import annotations

import argparse
import json
import sys

from foundry.core.context import build_context
from foundry.core.errors import FoundryError, exit_code_for


def main() -> int:
    ap = argparse.ArgumentParser(description="nix-foundry backup list")
    ap.add_argument("--json", action="store_true", help="Machine readable output.")
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    try:
        entries = build_context(root=args.root, log=False).backups.list()
    except FoundryError as e:
        print(str(e), file=sys.stderr)
        return exit_code_for(e)

    if args.json:
        print(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return 0
    for e in entries:
        flags = ("enc " if e.encrypted else "") + ("safety" if e.is_safety else "")
        print(f"{e.name:<32} {e.created_at.isoformat():<26} {e.size:>10}  {flags.strip()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
