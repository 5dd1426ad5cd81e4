#!/usr/bin/env python3
"""
Import a directory tree of 3D assets.

Every sub-directory becomes a category; every .glb/.gltf/.png/.jpg/.jpeg/
.hdr/.dds file below it is uploaded and registered as a resource.

Usage:
    python scripts/import_assets.py --root ../myroom-system/public/models
    python scripts/import_assets.py --root ./models --project room-42
    python scripts/import_assets.py --config jobs/furniture.yaml --storage memory
"""

import sys
from pathlib import Path

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from asset_import.cli import main as cli_main  # noqa: E402


def main():
    """Main entry point for resource import."""
    return cli_main(["resources", *sys.argv[1:]], prog="import_assets.py")


if __name__ == "__main__":
    sys.exit(main())
