#!/usr/bin/env python3
"""
Import a flat directory of animation files.

Gender is inferred from each file name ("female" before "male", otherwise
unisex) and decides the destination folder.

Usage:
    python scripts/import_animations.py --dir ./animations
    python scripts/import_animations.py --dir ./animations --admin <admin-id>
    python scripts/import_animations.py --dir ./animations --on-conflict fail
"""

import sys
from pathlib import Path

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from asset_import.cli import main as cli_main  # noqa: E402


def main():
    """Main entry point for animation import."""
    return cli_main(["animations", *sys.argv[1:]], prog="import_animations.py")


if __name__ == "__main__":
    sys.exit(main())
