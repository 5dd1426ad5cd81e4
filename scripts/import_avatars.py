#!/usr/bin/env python3
"""
Import an avatar parts tree.

Expected layout: {gender}/{part type}/{file}.glb, e.g. male/hair/short_bob.glb.
Gender directories are male, female or unisex; the part type comes from the
part directory name (hair, tops, bottoms, shoes, accessories, body, fullset).

Usage:
    python scripts/import_avatars.py --dir ./avatars
    python scripts/import_avatars.py --dir ./avatars --admin <admin-id>
    python scripts/import_avatars.py --dir ./avatars --storage memory
"""

import sys
from pathlib import Path

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from asset_import.cli import main as cli_main  # noqa: E402


def main():
    """Main entry point for avatar import."""
    return cli_main(["avatars", *sys.argv[1:]], prog="import_avatars.py")


if __name__ == "__main__":
    sys.exit(main())
