"""
Content store gateway.

Wraps an object store behind a single `put` operation: derive (or accept) a
deterministic destination key, write the payload at most once, and report
whether an existing object was reused instead.

Keys are derived from owner tag, category and file name, never from the
payload, so the same logical path always maps to the same object.

Example usage:
    >>> from asset_import.storage import InMemoryContentStore, PutOptions
    >>> store = InMemoryContentStore()
    >>> result = store.put(
    ...     b"glTF...",
    ...     "chair.glb",
    ...     "admin-1",
    ...     PutOptions(specific_key="models/items/furniture/chair.glb"),
    ... )
    >>> result.key, result.reused
    ('models/items/furniture/chair.glb', False)
"""

import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Optional

from asset_import.errors import InvalidPayload, ObjectExists, StorageError
from asset_import.utils.logging import get_logger
from asset_import.utils.metrics import ImportMetrics, get_metrics

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_KEY_LENGTH = 1024

# Formats the platform mimetypes table may not know
_EXTRA_CONTENT_TYPES = {
    ".glb": "model/gltf-binary",
    ".gltf": "model/gltf+json",
    ".hdr": "image/vnd.radiance",
    ".dds": "image/vnd-ms.dds",
}

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def guess_content_type(file_name: str) -> str:
    """
    Resolve a MIME type from the file extension.

    Example:
        >>> guess_content_type("Chair.GLB")
        'model/gltf-binary'
        >>> guess_content_type("notes.unknownext")
        'application/octet-stream'
    """
    extension = PurePosixPath(file_name).suffix.lower()
    if extension in _EXTRA_CONTENT_TYPES:
        return _EXTRA_CONTENT_TYPES[extension]
    content_type, _ = mimetypes.guess_type(f"file{extension}")
    return content_type or DEFAULT_CONTENT_TYPE


def derive_key(file_name: str, owner_tag: str, category: Optional[str] = None) -> str:
    """
    Derive the default destination key for a payload.

    The key depends only on owner tag, category label and file name, so
    identical paths collide even when their content differs.

    Example:
        >>> derive_key("Old Chair (v2).glb", "admin-1", "furniture")
        'owners/admin-1/furniture/Old_Chair__v2_.glb'
    """
    path = PurePosixPath(file_name)
    extension = path.suffix
    base_name = path.name[: -len(extension)] if extension else path.name
    sanitized = _UNSAFE_NAME_CHARS.sub("_", base_name)
    owner = _UNSAFE_NAME_CHARS.sub("_", owner_tag) or "unknown"
    return "/".join(["owners", owner, category or "general", f"{sanitized}{extension}"])


@dataclass
class PutOptions:
    """
    Options for a single put.

    Attributes:
        content_type: MIME type (resolved from the file name if None)
        metadata: Free-form metadata stored with the object
        specific_key: Explicit destination key overriding derivation
        ignore_if_exists: Reuse an existing object instead of writing
    """

    content_type: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    specific_key: Optional[str] = None
    ignore_if_exists: bool = True


@dataclass
class PutResult:
    """Locator of a stored object and whether the write was skipped."""

    url: str
    key: str
    size: int
    reused: bool


class ContentStore:
    """
    Base class for object store backends.

    Subclasses implement `exists`, `get_size`, `url_for` and `_write`; the
    key selection, validation, conflict policy and metrics live here.

    Args:
        on_conflict: What a put with ignore_if_exists=False does when the
            key already exists: "overwrite" writes again (reused=False),
            "fail" raises ObjectExists
        max_size_bytes: Largest payload accepted
        metrics: Metrics sink (global instance if None)
    """

    backend_name = "abstract"

    def __init__(
        self,
        on_conflict: str = "overwrite",
        max_size_bytes: int = 500 * 1024 * 1024,
        metrics: Optional[ImportMetrics] = None,
    ) -> None:
        if on_conflict not in ("overwrite", "fail"):
            raise ValueError(f"on_conflict must be 'overwrite' or 'fail', got {on_conflict!r}")
        self.on_conflict = on_conflict
        self.max_size_bytes = max_size_bytes
        self.metrics = metrics if metrics is not None else get_metrics()

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def get_size(self, key: str) -> int:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError

    def _write(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Dict[str, str],
        if_absent: bool,
    ) -> None:
        """
        Write one object.

        With `if_absent` the write must not replace an existing object and
        raises ObjectExists instead.
        """
        raise NotImplementedError

    def put(
        self,
        data: bytes,
        original_file_name: str,
        owner_tag: str,
        options: Optional[PutOptions] = None,
    ) -> PutResult:
        """
        Store a payload and return its locator.

        Args:
            data: Payload bytes
            original_file_name: Source file name, used for key derivation,
                content type resolution and object metadata
            owner_tag: Owner of the object (operator id, "system", ...)
            options: PutOptions (defaults if None)

        Returns:
            PutResult with url, key, size and reused flag

        Raises:
            InvalidPayload: Empty or oversized payload, invalid key
            ObjectExists: Key exists, ignore_if_exists=False and the store
                is configured with on_conflict="fail"
            StorageUnavailable: Backend failure
        """
        options = options or PutOptions()

        key = self._resolve_key(original_file_name, owner_tag, options)
        self._validate_payload(data, key)

        if options.ignore_if_exists and self.exists(key):
            size = self.get_size(key)
            logger.info(
                f"Object already exists, skipping upload: {key}",
                extra={"key": key, "original_name": original_file_name},
            )
            self.metrics.record_upload(size, reused=True)
            return PutResult(url=self.url_for(key), key=key, size=size, reused=True)

        content_type = options.content_type or guess_content_type(original_file_name)
        metadata = {
            "originalName": original_file_name,
            "ownerTag": owner_tag,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        }
        metadata.update({str(k): str(v) for k, v in options.metadata.items()})

        if_absent = not options.ignore_if_exists and self.on_conflict == "fail"

        try:
            with self.metrics.track_upload():
                self._write(key, data, content_type, metadata, if_absent)
        except ObjectExists as e:
            logger.info(f"Object already exists and overwrite is disabled: {key}")
            e.url = e.url or self.url_for(key)
            raise
        except StorageError as e:
            self.metrics.record_storage_error("put", type(e).__name__)
            raise

        logger.info(
            f"Stored {len(data)} bytes at {key} ({self.backend_name})",
            extra={"key": key, "size": len(data), "content_type": content_type},
        )
        self.metrics.record_upload(len(data), reused=False)
        return PutResult(url=self.url_for(key), key=key, size=len(data), reused=False)

    def _resolve_key(
        self, original_file_name: str, owner_tag: str, options: PutOptions
    ) -> str:
        if options.specific_key is not None:
            key = options.specific_key.strip().lstrip("/")
        else:
            key = derive_key(
                original_file_name, owner_tag, options.metadata.get("category")
            )

        if not key or key.endswith("/"):
            raise InvalidPayload(f"Invalid destination key: {options.specific_key!r}")
        if len(key) > MAX_KEY_LENGTH:
            raise InvalidPayload(f"Destination key too long: {len(key)} > {MAX_KEY_LENGTH}")
        if any(part in ("", ".", "..") for part in key.split("/")):
            raise InvalidPayload(f"Destination key has empty or relative segments: {key}")
        return key

    def _validate_payload(self, data: bytes, key: str) -> None:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidPayload(f"Payload for {key} must be bytes, got {type(data).__name__}")
        if len(data) == 0:
            raise InvalidPayload(f"Refusing to store empty payload at {key}")
        if len(data) > self.max_size_bytes:
            raise InvalidPayload(
                f"Payload too large for {key}: {len(data)} > {self.max_size_bytes} bytes"
            )
