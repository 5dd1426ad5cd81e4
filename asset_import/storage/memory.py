"""In-process content store used for dry runs and as a test double."""

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from asset_import.errors import ObjectExists
from asset_import.storage.gateway import ContentStore
from asset_import.utils.metrics import ImportMetrics


@dataclass
class StoredObject:
    data: bytes
    content_type: str
    metadata: Dict[str, str]


class InMemoryContentStore(ContentStore):
    """
    Dict-backed content store.

    `writes` counts physical writes, so tests can assert that a rerun did
    not upload anything.
    """

    backend_name = "memory"

    def __init__(
        self,
        on_conflict: str = "overwrite",
        max_size_bytes: int = 500 * 1024 * 1024,
        metrics: Optional[ImportMetrics] = None,
        base_url: str = "memory://objects",
    ) -> None:
        super().__init__(
            on_conflict=on_conflict, max_size_bytes=max_size_bytes, metrics=metrics
        )
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, StoredObject] = {}
        self.writes = 0
        self._lock = threading.Lock()

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self.objects

    def get_size(self, key: str) -> int:
        with self._lock:
            return len(self.objects[key].data)

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def _write(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Dict[str, str],
        if_absent: bool,
    ) -> None:
        with self._lock:
            if if_absent and key in self.objects:
                raise ObjectExists(key, size=len(self.objects[key].data))
            self.objects[key] = StoredObject(bytes(data), content_type, dict(metadata))
            self.writes += 1
