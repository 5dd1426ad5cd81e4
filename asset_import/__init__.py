"""
Asset Import

Bulk import of 3D model and animation files into an asset catalogue: each
file is uploaded to an object store and registered as a Resource or
Animation record, with the source directory tree mirrored as a category
hierarchy.

Components:
- storage: content store gateway (Google Cloud Storage, in-memory)
- categories: idempotent category tree resolution
- registrar: Resource and Animation record persistence
- importer: tree walk orchestration and run summaries
- utils: logging, configuration, retry and metrics

See README.md for usage.
"""

__version__ = "0.1.0"

from asset_import.utils.logging import setup_logging

# Initialize default logging configuration
setup_logging()
