"""Tests for the import CLI and its scripts."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from asset_import.cli import build_parser, main

# Project paths
project_root = Path(__file__).parent.parent
scripts_dir = project_root / "scripts"

CLI_SCRIPTS = ["import_assets.py", "import_animations.py", "import_avatars.py"]

GLB = b"glTF\x02\x00\x00\x00"


def run_script(*args):
    env = dict(os.environ, PYTHONIOENCODING="utf-8")
    return subprocess.run(
        [sys.executable, *args],
        capture_output=True,
        text=True,
        cwd=project_root,
        env=env,
    )


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'catalogue.db'}"


@pytest.fixture
def bootstrap_admin(database_url, capsys):
    assert main(["create-admin", "--name", "Ops", "--email", "ops@example.com",
                 "--database-url", database_url]) == 0
    return capsys.readouterr().out.strip().splitlines()[-1]


class TestImportAssetsScript:
    """Tests for import_assets.py CLI script."""

    def test_help_message(self):
        """Test that --help works."""
        result = run_script(str(scripts_dir / "import_assets.py"), "--help")
        assert result.returncode == 0
        assert "Import a directory tree of generic resources" in result.stdout
        assert "--root" in result.stdout
        assert "--project" in result.stdout

    def test_invalid_workers_type(self):
        result = run_script(str(scripts_dir / "import_assets.py"), "--workers", "many")
        assert result.returncode != 0
        assert "invalid int value" in result.stderr


class TestImportAnimationsScript:
    """Tests for import_animations.py CLI script."""

    def test_help_message(self):
        """Test that --help works."""
        result = run_script(str(scripts_dir / "import_animations.py"), "--help")
        assert result.returncode == 0
        assert "Import a flat directory of animations" in result.stdout
        assert "--dir" in result.stdout
        assert "--on-conflict" in result.stdout

    def test_invalid_storage_choice(self):
        result = run_script(str(scripts_dir / "import_animations.py"), "--storage", "s3")
        assert result.returncode != 0
        assert "invalid choice" in result.stderr


class TestImportAvatarsScript:
    """Tests for import_avatars.py CLI script."""

    def test_help_message(self):
        """Test that --help works."""
        result = run_script(str(scripts_dir / "import_avatars.py"), "--help")
        assert result.returncode == 0
        assert "Import an avatar parts tree" in result.stdout
        assert "--dir" in result.stdout


class TestModuleEntryPoint:
    def test_missing_command(self):
        """Test that a missing sub-command returns an error."""
        result = run_script("-m", "asset_import.cli")
        assert result.returncode != 0
        assert "required" in result.stderr.lower()

    def test_help_lists_commands(self):
        result = run_script("-m", "asset_import.cli", "--help")
        assert result.returncode == 0
        for command in ("resources", "animations", "avatars", "create-admin"):
            assert command in result.stdout


class TestMain:
    def test_parser_defaults(self):
        args = build_parser().parse_args(["resources", "--root", "models"])
        assert args.command == "resources"
        assert args.source == "models"
        assert args.workers is None
        assert args.storage is None

    def test_missing_source(self, database_url, capsys):
        code = main(["resources", "--storage", "memory", "--database-url", database_url])
        assert code == 1
        assert "--root is required" in capsys.readouterr().out

    def test_configuration_error(self, monkeypatch, tmp_path, capsys):
        monkeypatch.delenv("GCS_BUCKET", raising=False)
        monkeypatch.delenv("STORAGE_BACKEND", raising=False)
        code = main(["resources", "--root", str(tmp_path)])
        assert code == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_no_admin_is_fatal(self, database_url, tmp_path, capsys):
        (tmp_path / "models" / "furniture").mkdir(parents=True)
        code = main([
            "resources",
            "--root", str(tmp_path / "models"),
            "--storage", "memory",
            "--database-url", database_url,
        ])
        assert code == 1
        assert "No admin" in capsys.readouterr().out

    def test_missing_source_directory_is_fatal(self, database_url, bootstrap_admin, tmp_path, capsys):
        code = main([
            "resources",
            "--root", str(tmp_path / "nowhere"),
            "--storage", "memory",
            "--database-url", database_url,
        ])
        assert code == 1
        assert "does not exist" in capsys.readouterr().out

    def test_resource_import_with_summary(self, database_url, bootstrap_admin, tmp_path, capsys):
        root = tmp_path / "models"
        for relative in ("furniture/chair.glb", "furniture/tables/desk.glb", "stray.glb"):
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(GLB)
        summary_path = tmp_path / "reports" / "summary.json"

        code = main([
            "resources",
            "--root", str(root),
            "--storage", "memory",
            "--database-url", database_url,
            "--project", "room-42",
            "--summary-json", str(summary_path),
        ])

        assert code == 0
        output = capsys.readouterr().out
        assert "Import Summary (resources)" in output

        report = json.loads(summary_path.read_text())
        assert report["admin_id"] == bootstrap_admin
        assert report["items"]["created"] == 2
        assert report["items"]["skipped"] == 1
        assert report["categories"]["created"] == 2

    def test_rerun_reports_existing(self, database_url, bootstrap_admin, tmp_path):
        root = tmp_path / "models"
        (root / "furniture").mkdir(parents=True)
        (root / "furniture" / "chair.glb").write_bytes(GLB)
        args = ["resources", "--root", str(root), "--storage", "memory",
                "--database-url", database_url]
        summary_path = tmp_path / "second.json"

        assert main(args) == 0
        assert main(args + ["--summary-json", str(summary_path)]) == 0

        report = json.loads(summary_path.read_text())
        # The memory store does not survive the process run, the records do
        assert report["items"]["existing"] == 1
        assert report["items"]["created"] == 0

    def test_animation_import_from_job_file(self, database_url, bootstrap_admin, tmp_path):
        animations = tmp_path / "animations"
        animations.mkdir()
        (animations / "walk_female_01.glb").write_bytes(GLB)
        (animations / "wave.glb").write_bytes(GLB)
        job = tmp_path / "job.yaml"
        job.write_text(
            f"""
version: "1.0"
workflow: animation_import
source: {animations.as_posix()}
admin: {bootstrap_admin}
workers: 2
storage:
  backend: memory
  on_conflict: fail
"""
        )
        summary_path = tmp_path / "animations.json"

        code = main([
            "animations",
            "--config", str(job),
            "--database-url", database_url,
            "--summary-json", str(summary_path),
        ])

        assert code == 0
        report = json.loads(summary_path.read_text())
        assert report["kind"] == "animations"
        assert report["items"]["created"] == 2

    def test_avatar_import(self, database_url, bootstrap_admin, tmp_path, capsys):
        avatars = tmp_path / "avatars"
        for relative in ("male/hair/short_bob.glb", "female/tops/tee.glb", "kids/hair/cap.glb"):
            path = avatars / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(GLB)
        summary_path = tmp_path / "avatars.json"

        code = main([
            "avatars",
            "--dir", str(avatars),
            "--storage", "memory",
            "--database-url", database_url,
            "--summary-json", str(summary_path),
        ])

        assert code == 0
        assert "Import Summary (avatars)" in capsys.readouterr().out
        report = json.loads(summary_path.read_text())
        assert report["kind"] == "avatars"
        assert report["items"]["created"] == 2
        assert report["items"]["failed"] == 1
        assert report["categories"]["created"] == 4

    def test_job_workflow_mismatch(self, database_url, tmp_path, capsys):
        job = tmp_path / "job.yaml"
        job.write_text('version: "1.0"\nworkflow: animation_import\nsource: ./anims\n')

        code = main(["resources", "--config", str(job), "--storage", "memory",
                     "--database-url", database_url])

        assert code == 1
        assert "does not match" in capsys.readouterr().out

    def test_invalid_job_file(self, database_url, tmp_path, capsys):
        job = tmp_path / "job.yaml"
        job.write_text('version: "9.9"\nworkflow: resource_import\nsource: ./models\n')

        code = main(["resources", "--config", str(job), "--storage", "memory",
                     "--database-url", database_url])

        assert code == 1
        assert "Invalid job file" in capsys.readouterr().out

    def test_create_admin_is_idempotent(self, database_url, bootstrap_admin, capsys):
        code = main(["create-admin", "--name", "Ops", "--email", "ops@example.com",
                     "--database-url", database_url])
        assert code == 0
        assert capsys.readouterr().out.strip().splitlines()[-1] == bootstrap_admin


class TestScriptFiles:
    def test_scripts_have_shebang(self):
        """Verify all scripts have proper shebang."""
        for script_name in CLI_SCRIPTS:
            with open(scripts_dir / script_name, "r") as f:
                first_line = f.readline().strip()
            assert first_line == "#!/usr/bin/env python3", f"{script_name} missing proper shebang"

    def test_scripts_have_docstring(self):
        """Verify all scripts have module docstrings."""
        for script_name in CLI_SCRIPTS:
            with open(scripts_dir / script_name, "r") as f:
                lines = f.readlines()
            assert any(line.strip().startswith('"""') for line in lines[1:5]), (
                f"{script_name} missing module docstring"
            )
