from __future__ import annotations

import argparse
import os

from foundry.core.config.paths import ConfigFsPaths
from foundry.core.config.sections import SectionRegistry
from foundry.core.crypto import generate_key, key_id_from_key_bytes, write_key_file


def main() -> int:
    ap = argparse.ArgumentParser(description="Create the AES-256 key file used for encrypted backups")
    ap.add_argument("--path", default=None, help="Key file (defaults to backup.keyPath from foundry.yaml)")
    ap.add_argument("--root", default=None)
    args = ap.parse_args()

    settings = SectionRegistry(fs=ConfigFsPaths(args.root or "")).backup_settings()
    key_path = os.path.expanduser(args.path or settings.key_path)

    if os.path.exists(key_path):
        print(f"Backup key already exists at: {key_path}")
        return 0

    key = generate_key()
    write_key_file(key_path, key)
    print(f"Created backup key at: {key_path}")
    print(f"Key fingerprint (key_id): {key_id_from_key_bytes(key)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
