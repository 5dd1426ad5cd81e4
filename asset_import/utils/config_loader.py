"""
Import job file loader and validator.

Loads YAML job files describing one import run and validates them against
the expected schema before any side effect happens.

Example job file (jobs/furniture.yaml):
    ```yaml
    version: "1.0"
    workflow: resource_import

    source: ../myroom-system/public/models
    admin: 6f1c2a7e-0d4b-4c43-9a53-1f0b3c9a2d11
    project: myroom
    workers: 4
    timeout: 3600
    extensions: [.glb, .png]

    storage:
      backend: gcs
      on_conflict: overwrite
    ```

Usage:
    >>> from asset_import.utils.config_loader import load_config, validate_config
    >>> job = load_config("jobs/furniture.yaml")
    >>> errors = validate_config(job)
    >>> if not errors:
    ...     print(f"Importing from {job['source']}")
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from asset_import.utils.config import VALID_CONFLICT_POLICIES, VALID_STORAGE_BACKENDS
from asset_import.utils.logging import get_logger

logger = get_logger(__name__)


SUPPORTED_VERSIONS = ["1.0"]

VALID_WORKFLOWS = [
    "resource_import",
    "animation_import",
    "avatar_import",
]


@dataclass
class ConfigError:
    """Validation error in a job file."""

    field: str
    message: str
    value: Optional[Any] = None

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value})"
        return f"{self.field}: {self.message}"


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load an import job from a YAML file.

    Args:
        config_path: Path to YAML job file

    Returns:
        Dictionary containing the parsed job

    Raises:
        FileNotFoundError: If the job file doesn't exist
        ValueError: If the path is not a file, the file is empty or its top
            level is not a mapping
        yaml.YAMLError: If YAML is malformed
    """
    path = Path(config_path)
    logger.info(f"Loading import job from: {path}")

    if not path.exists():
        raise FileNotFoundError(f"Job file not found: {path}")

    if not path.is_file():
        raise ValueError(f"Job path is not a file: {path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise

    if config is None:
        raise ValueError("Job file is empty")

    if not isinstance(config, dict):
        raise ValueError(f"Job file must contain a mapping, got {type(config).__name__}")

    logger.info(f"Import job loaded: {config.get('workflow', 'unknown')}")
    return dict(config)


def validate_config(config: Dict[str, Any]) -> List[ConfigError]:
    """
    Validate an import job against the expected schema.

    Args:
        config: Job dictionary to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[ConfigError] = []

    if "version" not in config:
        errors.append(ConfigError("version", "Missing required field"))
    elif str(config["version"]) not in SUPPORTED_VERSIONS:
        errors.append(
            ConfigError(
                "version",
                f"Unsupported version (supported: {SUPPORTED_VERSIONS})",
                config["version"],
            )
        )

    if "workflow" not in config:
        errors.append(ConfigError("workflow", "Missing required field"))
    elif config["workflow"] not in VALID_WORKFLOWS:
        errors.append(
            ConfigError(
                "workflow",
                f"Invalid workflow type (valid: {VALID_WORKFLOWS})",
                config["workflow"],
            )
        )

    if not config.get("source"):
        errors.append(ConfigError("source", "Missing required field"))
    elif not isinstance(config["source"], str):
        errors.append(
            ConfigError("source", "Must be a string", type(config["source"]).__name__)
        )

    errors.extend(_validate_run_options(config))
    errors.extend(_validate_storage(config))

    if errors:
        logger.warning(f"Job validation failed with {len(errors)} errors")
    else:
        logger.info("Job validation passed")

    return errors


def _validate_run_options(config: Dict[str, Any]) -> List[ConfigError]:
    errors: List[ConfigError] = []

    if "workers" in config:
        workers = config["workers"]
        if not isinstance(workers, int) or isinstance(workers, bool):
            errors.append(ConfigError("workers", "Must be an integer", type(workers).__name__))
        elif workers < 1:
            errors.append(ConfigError("workers", "Must be at least 1", workers))

    if "timeout" in config:
        timeout = config["timeout"]
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool):
            errors.append(ConfigError("timeout", "Must be a number", type(timeout).__name__))
        elif timeout <= 0:
            errors.append(ConfigError("timeout", "Must be positive", timeout))

    if "extensions" in config:
        extensions = config["extensions"]
        if not isinstance(extensions, list) or not extensions:
            errors.append(ConfigError("extensions", "Must be a non-empty list"))
        else:
            for i, ext in enumerate(extensions):
                if not isinstance(ext, str) or not ext.startswith("."):
                    errors.append(
                        ConfigError(f"extensions[{i}]", "Must start with '.'", ext)
                    )

    for key in ("admin", "project"):
        if key in config and config[key] is not None and not isinstance(config[key], str):
            errors.append(ConfigError(key, "Must be a string", type(config[key]).__name__))

    return errors


def _validate_storage(config: Dict[str, Any]) -> List[ConfigError]:
    errors: List[ConfigError] = []

    storage = config.get("storage")
    if storage is None:
        return errors

    if not isinstance(storage, dict):
        errors.append(ConfigError("storage", "Must be a mapping", type(storage).__name__))
        return errors

    backend = storage.get("backend")
    if backend is not None and backend not in VALID_STORAGE_BACKENDS:
        errors.append(
            ConfigError(
                "storage.backend",
                f"Invalid backend (valid: {VALID_STORAGE_BACKENDS})",
                backend,
            )
        )

    on_conflict = storage.get("on_conflict")
    if on_conflict is not None and on_conflict not in VALID_CONFLICT_POLICIES:
        errors.append(
            ConfigError(
                "storage.on_conflict",
                f"Invalid policy (valid: {VALID_CONFLICT_POLICIES})",
                on_conflict,
            )
        )

    return errors


def apply_job(job: Dict[str, Any], config: Any) -> None:
    """
    Copy run options from a validated job onto an ImportConfig in place.

    Only keys present in the job are applied, so environment defaults stay
    in effect for everything the job leaves out.
    """
    if "project" in job:
        config.owner_project_id = job["project"]
    if "workers" in job:
        config.max_workers = job["workers"]
    if "timeout" in job:
        config.run_timeout_seconds = float(job["timeout"])
    if "extensions" in job:
        extensions = [ext.lower() for ext in job["extensions"]]
        if job.get("workflow") == "animation_import":
            config.animation_extensions = extensions
        elif job.get("workflow") == "avatar_import":
            config.avatar_extensions = extensions
        else:
            config.resource_extensions = extensions

    storage = job.get("storage") or {}
    if "backend" in storage:
        config.storage_backend = storage["backend"]
    if "on_conflict" in storage:
        config.on_conflict = storage["on_conflict"]
