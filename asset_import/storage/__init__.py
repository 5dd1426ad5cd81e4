"""
Content store gateway.

Uploads binary payloads to the object store under deterministic keys and
reports whether an existing object was reused.
"""

from typing import Optional

from asset_import.storage.gateway import (
    ContentStore,
    PutOptions,
    PutResult,
    derive_key,
    guess_content_type,
)
from asset_import.storage.memory import InMemoryContentStore
from asset_import.utils.config import ImportConfig
from asset_import.utils.logging import get_logger
from asset_import.utils.metrics import ImportMetrics

logger = get_logger(__name__)


def create_content_store(
    config: ImportConfig, metrics: Optional[ImportMetrics] = None
) -> ContentStore:
    """
    Build the content store selected by `config.storage_backend`.

    Raises:
        ValueError: Unknown backend or invalid backend settings
    """
    max_size_bytes = config.max_upload_size_mb * 1024 * 1024

    if config.storage_backend == "memory":
        logger.warning("Using in-memory content store: nothing will be persisted")
        return InMemoryContentStore(
            on_conflict=config.on_conflict,
            max_size_bytes=max_size_bytes,
            metrics=metrics,
        )

    if config.storage_backend == "gcs":
        from asset_import.storage.gcs import GCSContentStore

        return GCSContentStore(
            bucket_name=config.gcs_bucket or "",
            public_base_url=config.public_base_url,
            timeout_seconds=config.upload_timeout_seconds,
            on_conflict=config.on_conflict,
            max_size_bytes=max_size_bytes,
            metrics=metrics,
        )

    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}")


__all__ = [
    "ContentStore",
    "InMemoryContentStore",
    "PutOptions",
    "PutResult",
    "create_content_store",
    "derive_key",
    "guess_content_type",
]
