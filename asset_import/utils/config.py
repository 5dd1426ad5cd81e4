"""
Environment configuration loader for the asset import pipeline.

Loads configuration from a .env file or environment variables for the
relational database, the object store and import tuning knobs.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

VALID_STORAGE_BACKENDS = ["gcs", "memory"]
VALID_CONFLICT_POLICIES = ["overwrite", "fail"]

DEFAULT_RESOURCE_EXTENSIONS = [".glb", ".gltf", ".png", ".jpg", ".jpeg", ".hdr", ".dds"]
DEFAULT_ANIMATION_EXTENSIONS = [".glb"]
DEFAULT_AVATAR_EXTENSIONS = [".glb"]


@dataclass
class ImportConfig:
    """Import pipeline configuration."""

    # Relational persistence
    database_url: str = "sqlite:///asset_import.db"

    # Object storage
    storage_backend: str = "gcs"
    gcs_bucket: Optional[str] = None
    public_base_url: Optional[str] = None
    on_conflict: str = "overwrite"
    max_upload_size_mb: int = 500
    upload_timeout_seconds: int = 300

    # Import behaviour
    key_prefix: str = "models/items"
    animation_prefix: str = "models"
    avatar_prefix: str = "models"
    owner_project_id: Optional[str] = None
    max_workers: int = 1
    run_timeout_seconds: Optional[float] = None
    resource_extensions: List[str] = field(
        default_factory=lambda: list(DEFAULT_RESOURCE_EXTENSIONS)
    )
    animation_extensions: List[str] = field(
        default_factory=lambda: list(DEFAULT_ANIMATION_EXTENSIONS)
    )
    avatar_extensions: List[str] = field(
        default_factory=lambda: list(DEFAULT_AVATAR_EXTENSIONS)
    )

    def validate(self) -> None:
        """
        Check cross-field consistency.

        Raises:
            ValueError: If a value is out of range or a required value for
                the chosen storage backend is missing
        """
        if self.storage_backend not in VALID_STORAGE_BACKENDS:
            raise ValueError(
                f"STORAGE_BACKEND must be one of {VALID_STORAGE_BACKENDS}, "
                f"got {self.storage_backend!r}"
            )
        if self.storage_backend == "gcs" and not self.gcs_bucket:
            raise ValueError(
                "GCS_BUCKET environment variable is required for the gcs "
                "storage backend. Set it in .env or export it."
            )
        if self.on_conflict not in VALID_CONFLICT_POLICIES:
            raise ValueError(
                f"STORAGE_ON_CONFLICT must be one of {VALID_CONFLICT_POLICIES}, "
                f"got {self.on_conflict!r}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            raise ValueError(
                f"run_timeout_seconds must be positive, got {self.run_timeout_seconds}"
            )

    @classmethod
    def from_env(cls, validate: bool = True) -> "ImportConfig":
        """
        Load configuration from environment variables.

        Loads the project's .env file first when present, then reads from
        os.environ.

        Returns:
            ImportConfig instance with loaded values (validated unless
            `validate` is False, for callers that apply overrides first)

        Raises:
            ValueError: If a variable is malformed or a backend requirement
                is missing
        """
        env_path = Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        run_timeout = os.getenv("IMPORT_RUN_TIMEOUT_SECONDS")

        config = cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///asset_import.db"),
            storage_backend=os.getenv("STORAGE_BACKEND", "gcs").lower(),
            gcs_bucket=os.getenv("GCS_BUCKET"),
            public_base_url=os.getenv("STORAGE_PUBLIC_BASE_URL"),
            on_conflict=os.getenv("STORAGE_ON_CONFLICT", "overwrite").lower(),
            max_upload_size_mb=int(os.getenv("MAX_UPLOAD_SIZE_MB", "500")),
            upload_timeout_seconds=int(os.getenv("UPLOAD_TIMEOUT_SECONDS", "300")),
            key_prefix=os.getenv("IMPORT_KEY_PREFIX", "models/items").strip("/"),
            owner_project_id=os.getenv("OWNER_PROJECT_ID"),
            max_workers=int(os.getenv("IMPORT_MAX_WORKERS", "1")),
            run_timeout_seconds=float(run_timeout) if run_timeout else None,
        )
        if validate:
            config.validate()
        return config


# Global config instance (lazy-loaded)
_config: Optional[ImportConfig] = None


def get_config() -> ImportConfig:
    """
    Get or create the configuration singleton.

    Example:
        >>> config = get_config()
        >>> print(config.storage_backend)
        gcs
    """
    global _config
    if _config is None:
        _config = ImportConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None
