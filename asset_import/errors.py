"""
Exception hierarchy for the asset import pipeline.

Fatal errors (FatalImportError subclasses) abort a run before any side
effect. Storage and registration errors are per-item: the orchestrator
catches them, records the failure and moves on to the next file.
"""

from typing import Optional


class ImportPipelineError(Exception):
    """Base class for all pipeline errors."""


class FatalImportError(ImportPipelineError):
    """Error that aborts the whole run."""


class OperatorNotFound(FatalImportError):
    """No admin identity could be resolved for the run."""


class SourceUnavailable(FatalImportError):
    """Source directory is missing, not a directory, or unreadable."""


class StorageError(ImportPipelineError):
    """Base class for content store failures."""


class StorageUnavailable(StorageError):
    """The object store could not be reached or rejected the write."""


class InvalidPayload(StorageError):
    """Payload or destination key is not acceptable for upload."""


class ObjectExists(StorageError):
    """Destination key already exists and the store is configured to fail."""

    def __init__(self, key: str, url: Optional[str] = None, size: int = 0) -> None:
        super().__init__(f"Object already exists: {key}")
        self.key = key
        self.url = url
        self.size = size


class RegistrationError(ImportPipelineError):
    """Persisting a record failed after its payload was uploaded."""

    def __init__(self, message: str, storage_key: Optional[str] = None) -> None:
        super().__init__(message)
        self.storage_key = storage_key


class StorageKeyConflict(ImportPipelineError):
    """
    Destination key already belongs to a different source file.

    Raised when two source names normalize to the same storage key. The
    existing object and its record are left untouched.
    """

    def __init__(self, storage_key: str, source: str, owner: str) -> None:
        super().__init__(
            f"Storage key {storage_key} already belongs to {owner}; "
            f"refusing to import {source} over it"
        )
        self.storage_key = storage_key
        self.source = source
        self.owner = owner
