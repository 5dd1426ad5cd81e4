"""Tests for import job loader and validator."""

from pathlib import Path

import pytest
import yaml

from asset_import.utils.config import ImportConfig
from asset_import.utils.config_loader import (
    ConfigError,
    apply_job,
    load_config,
    validate_config,
)


def valid_job(**overrides):
    job = {
        "version": "1.0",
        "workflow": "resource_import",
        "source": "./models",
    }
    job.update(overrides)
    return job


class TestConfigLoader:
    """Tests for load_config function."""

    def test_load_valid_yaml(self, tmp_path: Path):
        """Test loading valid YAML job file."""
        job_file = tmp_path / "job.yaml"
        job_file.write_text(
            """
version: "1.0"
workflow: resource_import
source: ../myroom-system/public/models
workers: 4
storage:
  backend: memory
"""
        )

        job = load_config(job_file)
        assert job["version"] == "1.0"
        assert job["workflow"] == "resource_import"
        assert job["workers"] == 4
        assert job["storage"] == {"backend": "memory"}

    def test_load_nonexistent_file(self):
        """Test loading non-existent file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config("nonexistent.yaml")

    def test_load_directory(self, tmp_path: Path):
        with pytest.raises(ValueError, match="not a file"):
            load_config(tmp_path)

    def test_load_empty_file(self, tmp_path: Path):
        """Test loading empty file raises ValueError."""
        job_file = tmp_path / "empty.yaml"
        job_file.write_text("")

        with pytest.raises(ValueError, match="empty"):
            load_config(job_file)

    def test_load_invalid_yaml(self, tmp_path: Path):
        """Test loading malformed YAML raises YAMLError."""
        job_file = tmp_path / "invalid.yaml"
        job_file.write_text('version: "1.0"\nworkflow: [unclosed bracket\n')

        with pytest.raises(yaml.YAMLError):
            load_config(job_file)

    def test_load_non_mapping(self, tmp_path: Path):
        job_file = tmp_path / "list.yaml"
        job_file.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config(job_file)


class TestConfigValidation:
    """Tests for validate_config function."""

    def test_valid_job(self):
        assert validate_config(valid_job()) == []

    def test_valid_job_with_all_options(self):
        job = valid_job(
            workflow="animation_import",
            admin="admin-1",
            project="room-42",
            workers=2,
            timeout=600,
            extensions=[".glb"],
            storage={"backend": "gcs", "on_conflict": "fail"},
        )
        assert validate_config(job) == []

    def test_missing_required_fields(self):
        errors = validate_config({})
        fields = {e.field for e in errors}
        assert fields == {"version", "workflow", "source"}

    def test_unsupported_version(self):
        errors = validate_config(valid_job(version="2.0"))
        assert len(errors) == 1
        assert errors[0].field == "version"

    def test_avatar_workflow(self):
        assert validate_config(valid_job(workflow="avatar_import")) == []

    def test_invalid_workflow(self):
        errors = validate_config(valid_job(workflow="blend_batch"))
        assert [e.field for e in errors] == ["workflow"]

    @pytest.mark.parametrize("workers", [0, -1, "4", True])
    def test_invalid_workers(self, workers):
        errors = validate_config(valid_job(workers=workers))
        assert [e.field for e in errors] == ["workers"]

    @pytest.mark.parametrize("timeout", [0, -5, "soon"])
    def test_invalid_timeout(self, timeout):
        errors = validate_config(valid_job(timeout=timeout))
        assert [e.field for e in errors] == ["timeout"]

    def test_invalid_extensions(self):
        assert [e.field for e in validate_config(valid_job(extensions=[]))] == ["extensions"]

        errors = validate_config(valid_job(extensions=[".glb", "png"]))
        assert [e.field for e in errors] == ["extensions[1]"]

    def test_invalid_storage(self):
        errors = validate_config(valid_job(storage={"backend": "s3", "on_conflict": "skip"}))
        assert {e.field for e in errors} == {"storage.backend", "storage.on_conflict"}

        errors = validate_config(valid_job(storage="gcs"))
        assert [e.field for e in errors] == ["storage"]

    def test_non_string_admin(self):
        errors = validate_config(valid_job(admin=42))
        assert [e.field for e in errors] == ["admin"]

    def test_config_error_str(self):
        assert str(ConfigError("workers", "Must be at least 1", 0)) == (
            "workers: Must be at least 1 (got: 0)"
        )
        assert str(ConfigError("source", "Missing required field")) == (
            "source: Missing required field"
        )


class TestApplyJob:
    """Tests for apply_job function."""

    def test_apply_resource_job(self):
        config = ImportConfig(storage_backend="gcs", gcs_bucket="bucket")
        job = valid_job(
            project="room-42",
            workers=3,
            timeout=120,
            extensions=[".GLB", ".png"],
            storage={"backend": "memory", "on_conflict": "fail"},
        )

        apply_job(job, config)

        assert config.owner_project_id == "room-42"
        assert config.max_workers == 3
        assert config.run_timeout_seconds == 120.0
        assert config.resource_extensions == [".glb", ".png"]
        assert config.animation_extensions == [".glb"]
        assert config.storage_backend == "memory"
        assert config.on_conflict == "fail"

    def test_apply_animation_extensions(self):
        config = ImportConfig()
        apply_job(valid_job(workflow="animation_import", extensions=[".gltf"]), config)

        assert config.animation_extensions == [".gltf"]
        assert ".png" in config.resource_extensions

    def test_apply_avatar_extensions(self):
        config = ImportConfig()
        apply_job(valid_job(workflow="avatar_import", extensions=[".GLB"]), config)

        assert config.avatar_extensions == [".glb"]
        assert config.animation_extensions == [".glb"]

    def test_absent_keys_keep_defaults(self):
        config = ImportConfig(max_workers=5, on_conflict="fail")
        apply_job(valid_job(), config)

        assert config.max_workers == 5
        assert config.on_conflict == "fail"
