"""
Google Cloud Storage backend for the content store gateway.

Writes go through `retry_with_backoff` (transient errors only) and a shared
`CircuitBreaker`; whatever is still failing afterwards surfaces as
StorageUnavailable so the importer can isolate it per file.

Example usage:
    >>> from asset_import.storage.gcs import GCSContentStore
    >>> store = GCSContentStore(bucket_name="myroom-assets")
    >>> store.put(data, "chair.glb", "admin-1", PutOptions(specific_key=key))
"""

import time
from typing import Any, Callable, Dict, Optional

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from asset_import.errors import ObjectExists, StorageUnavailable
from asset_import.storage.gateway import ContentStore
from asset_import.utils.logging import get_logger
from asset_import.utils.metrics import ImportMetrics
from asset_import.utils.retry import (
    CircuitBreaker,
    is_transient_error,
    retry_with_backoff,
)

logger = get_logger(__name__)

MAX_RETRIES = 3
PUBLIC_URL_ROOT = "https://storage.googleapis.com"


def validate_bucket_name(bucket_name: str) -> bool:
    """
    Validate a GCS bucket name against the basic naming rules.

    Does NOT verify bucket existence.

    Example:
        >>> validate_bucket_name("myroom-assets")
        True
        >>> validate_bucket_name("invalid..bucket")
        False
    """
    if not bucket_name:
        logger.error("Bucket name cannot be empty")
        return False

    if len(bucket_name) < 3 or len(bucket_name) > 63:
        logger.error(f"Bucket name length must be 3-63 characters: {bucket_name!r}")
        return False

    if bucket_name.startswith("goog") or bucket_name.startswith("g00g"):
        logger.error(f"Bucket name cannot start with 'goog': {bucket_name}")
        return False

    if ".." in bucket_name or "._" in bucket_name:
        logger.error(f"Invalid characters in bucket name: {bucket_name}")
        return False

    if bucket_name != bucket_name.lower() or "/" in bucket_name:
        logger.error(f"Bucket name must be lowercase with no slashes: {bucket_name}")
        return False

    return True


class GCSContentStore(ContentStore):
    """
    Content store backed by a GCS bucket.

    Args:
        bucket_name: Bucket name (without gs:// prefix)
        client: google.cloud.storage.Client (created on first use if None)
        public_base_url: URL prefix for stored objects (defaults to the
            storage.googleapis.com public URL of the bucket)
        timeout_seconds: Per-request upload timeout
        make_public: Make each written object publicly readable
        breaker: Circuit breaker shared by all requests of this store
        sleep: Backoff sleep function (injectable for tests)
    """

    backend_name = "gcs"

    def __init__(
        self,
        bucket_name: str,
        client: Optional[Any] = None,
        public_base_url: Optional[str] = None,
        timeout_seconds: int = 300,
        make_public: bool = False,
        on_conflict: str = "overwrite",
        max_size_bytes: int = 500 * 1024 * 1024,
        metrics: Optional[ImportMetrics] = None,
        breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not validate_bucket_name(bucket_name):
            raise ValueError(f"Invalid GCS bucket name: {bucket_name!r}")

        super().__init__(
            on_conflict=on_conflict, max_size_bytes=max_size_bytes, metrics=metrics
        )
        self.bucket_name = bucket_name
        self.public_base_url = (
            public_base_url.rstrip("/")
            if public_base_url
            else f"{PUBLIC_URL_ROOT}/{bucket_name}"
        )
        self.timeout_seconds = timeout_seconds
        self.make_public = make_public
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=5,
            timeout=60.0,
            excluded_exceptions=(gcs_exceptions.PreconditionFailed, gcs_exceptions.NotFound),
        )
        self._client = client
        self._bucket = None
        self._sleep = sleep

    @property
    def bucket(self) -> Any:
        if self._bucket is None:
            if self._client is None:
                self._client = storage.Client()
            self._bucket = self._client.bucket(self.bucket_name)
        return self._bucket

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def exists(self, key: str) -> bool:
        try:
            return bool(self._call(self.bucket.blob(key).exists, timeout=self.timeout_seconds))
        except Exception as e:
            self.metrics.record_storage_error("exists", type(e).__name__)
            raise StorageUnavailable(f"Could not check gs://{self.bucket_name}/{key}: {e}") from e

    def get_size(self, key: str) -> int:
        try:
            blob = self._call(self.bucket.get_blob, key, timeout=self.timeout_seconds)
        except Exception as e:
            self.metrics.record_storage_error("stat", type(e).__name__)
            raise StorageUnavailable(f"Could not stat gs://{self.bucket_name}/{key}: {e}") from e
        if blob is None:
            raise StorageUnavailable(f"Object vanished: gs://{self.bucket_name}/{key}")
        return int(blob.size or 0)

    def _write(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Dict[str, str],
        if_absent: bool,
    ) -> None:
        blob = self.bucket.blob(key)
        blob.metadata = metadata

        upload_kwargs: Dict[str, Any] = {
            "content_type": content_type,
            "timeout": self.timeout_seconds,
        }
        if if_absent:
            # generation 0 matches only when no live object exists
            upload_kwargs["if_generation_match"] = 0

        logger.debug(
            f"Uploading {len(data)} bytes to gs://{self.bucket_name}/{key} "
            f"(timeout: {self.timeout_seconds}s)"
        )

        try:
            self._call(blob.upload_from_string, bytes(data), **upload_kwargs)
        except gcs_exceptions.PreconditionFailed as e:
            raise ObjectExists(key) from e
        except Exception as e:
            raise StorageUnavailable(
                f"GCS upload failed for gs://{self.bucket_name}/{key}: {e}"
            ) from e

        if self.make_public:
            blob.make_public()
            logger.info(f"Made blob public: {key}")

    def _call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run one GCS request through the retry policy and the breaker."""

        @retry_with_backoff(
            max_attempts=MAX_RETRIES,
            base_delay=2.0,
            max_delay=30.0,
            retry_if=is_transient_error,
            sleep=self._sleep,
        )
        def attempt() -> Any:
            return self.breaker.call(func, *args, **kwargs)

        return attempt()
